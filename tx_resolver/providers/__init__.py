"""Provider adapter implementations."""

from tx_resolver.providers.base import BaseProviderAdapter
from tx_resolver.providers.etherscan import EtherscanAdapter
from tx_resolver.providers.moralis import MoralisAdapter
from tx_resolver.providers.node import NodeRpcAdapter

__all__ = [
    "BaseProviderAdapter",
    "EtherscanAdapter",
    "MoralisAdapter",
    "NodeRpcAdapter",
]
