"""
Transaction Resolver Package - multi-chain EVM lookups for an LLM tool layer.

Resolves wallet histories and transaction hashes across EVM chains using a
hosted indexer (Moralis), a block explorer (Etherscan) and public JSON-RPC
nodes, and returns normalized, tagged results.

Features:
- Chain-agnostic hash search with public node fallback
- Native + token history merge with synthesized token-only entries
- Local ERC-20 / ERC-721 / ERC-1155 log decoding
- Fail-soft USD price enrichment
- Short-lived result cache

Quick Start:
    from tx_resolver import create_resolver

    async def lookup():
        async with create_resolver() as resolver:
            result = await resolver.get_transaction_by_hash(
                "0x5c504ed432cb51138bcf09aa5e8a410dd4a1e204ef84bfed1be16dfba1b22060",
                provider="rpc",
            )
            print(result.to_dict())

LLM tools:
    from tx_resolver import TOOL_DEFINITIONS, ToolDispatcher

    dispatcher = ToolDispatcher(resolver)
    payload = await dispatcher.dispatch("get_wallet_transactions", {"address": "0x...", "chain": "all"})
"""

from tx_resolver.chains import ChainRegistry, default_chain_registry
from tx_resolver.config import ResolverConfig, load_config
from tx_resolver.exceptions import (
    AuthenticationError,
    ChainNotSupportedError,
    ConfigurationError,
    DecodeError,
    NoAvailableProviderError,
    ProviderError,
    RateLimitError,
    ResolverError,
    TransientNetworkError,
    UnsupportedOperationError,
)
from tx_resolver.models import (
    ChainDescriptor,
    ErrorResult,
    InternalTransfer,
    NFTTransfer,
    NormalizedTransaction,
    Operation,
    ProviderKind,
    ReceiptStatus,
    ResolutionResult,
    SingleTransactionResult,
    TokenTransfer,
    TokenTransferResult,
    WalletHistoryResult,
)
from tx_resolver.registry import ProviderRegistry, build_default_registry
from tx_resolver.resolver import ResultCache, TransactionResolver, create_resolver
from tx_resolver.tools import TOOL_DEFINITIONS, ToolDispatcher


__all__ = [
    # Entry points
    "create_resolver",
    "TransactionResolver",
    "ResultCache",
    "ToolDispatcher",
    "TOOL_DEFINITIONS",
    # Configuration
    "ResolverConfig",
    "load_config",
    "ChainRegistry",
    "default_chain_registry",
    "ProviderRegistry",
    "build_default_registry",
    # Models
    "ChainDescriptor",
    "ProviderKind",
    "Operation",
    "ReceiptStatus",
    "NormalizedTransaction",
    "TokenTransfer",
    "NFTTransfer",
    "InternalTransfer",
    "ResolutionResult",
    "WalletHistoryResult",
    "TokenTransferResult",
    "SingleTransactionResult",
    "ErrorResult",
    # Exceptions
    "ResolverError",
    "ConfigurationError",
    "ProviderError",
    "AuthenticationError",
    "RateLimitError",
    "TransientNetworkError",
    "DecodeError",
    "ChainNotSupportedError",
    "UnsupportedOperationError",
    "NoAvailableProviderError",
]

__version__ = "1.0.0"
