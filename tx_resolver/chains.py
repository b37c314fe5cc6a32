"""
Chain Registry - the fixed set of supported EVM networks.

Canonical chain ids are hex EVM chain ids ("0x1", "0x89", ...). Aliases
resolve case-insensitively; anything unrecognized passes through
``normalize()`` unchanged so a provider can still try it as a literal id.
"""

import logging
from typing import Iterable, Optional, Sequence

from tx_resolver.models import ALL_CHAINS, ChainDescriptor


logger = logging.getLogger(__name__)


DEFAULT_CHAIN = "0x1"

ETH = "0x1"
GOERLI = "0x5"
SEPOLIA = "0xaa36a7"
BSC = "0x38"
BSC_TESTNET = "0x61"
POLYGON = "0x89"
MUMBAI = "0x13881"
AVAX = "0xa86a"
FANTOM = "0xfa"
ARBITRUM = "0xa4b1"
OPTIMISM = "0xa"
BASE = "0x2105"
CRONOS = "0x19"
LINEA = "0xe708"
SCROLL = "0x82750"
BLAST = "0x13e31"
ZKSYNC = "0x144"
GNOSIS = "0x64"
MOONBEAM = "0x504"
CELO = "0xa4ec"


DEFAULT_CHAINS: tuple[ChainDescriptor, ...] = (
    ChainDescriptor(
        chain_id=ETH,
        display_name="Ethereum",
        aliases=("eth", "ethereum", "mainnet"),
        rpc_urls=("https://eth.llamarpc.com", "https://rpc.ankr.com/eth"),
        wrapped_native="0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
        native_symbol="ETH",
    ),
    ChainDescriptor(
        chain_id=BSC,
        display_name="BSC",
        aliases=("bsc", "binance", "bnb"),
        rpc_urls=("https://binance.llamarpc.com", "https://bsc-dataseed.binance.org"),
        wrapped_native="0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c",
        native_symbol="BNB",
    ),
    ChainDescriptor(
        chain_id=POLYGON,
        display_name="Polygon",
        aliases=("polygon", "matic"),
        rpc_urls=("https://polygon.llamarpc.com", "https://polygon-rpc.com"),
        wrapped_native="0x0d500B1d8E8eF31E21C99d1Db9A6444d3ADf1270",
        native_symbol="POL",
    ),
    ChainDescriptor(
        chain_id=AVAX,
        display_name="Avalanche",
        aliases=("avax", "avalanche"),
        rpc_urls=("https://avalanche.llamarpc.com", "https://api.avax.network/ext/bc/C/rpc"),
        wrapped_native="0xB31f66AA3C1e785363F0875A1B74E27b85FD66c7",
        native_symbol="AVAX",
    ),
    ChainDescriptor(
        chain_id=FANTOM,
        display_name="Fantom",
        aliases=("fantom", "ftm"),
        rpc_urls=("https://fantom.llamarpc.com", "https://rpc.ftm.tools"),
        wrapped_native="0x21be370D5312f44cB42ce377BC9b8a0cEF1A4C83",
        native_symbol="FTM",
    ),
    ChainDescriptor(
        chain_id=ARBITRUM,
        display_name="Arbitrum",
        aliases=("arbitrum", "arb"),
        rpc_urls=("https://arbitrum.llamarpc.com", "https://arb1.arbitrum.io/rpc"),
        wrapped_native="0x82aF49447D8a07e3bd95BD0d56f35241523fBab1",
        native_symbol="ETH",
    ),
    ChainDescriptor(
        chain_id=OPTIMISM,
        display_name="Optimism",
        aliases=("optimism", "op"),
        rpc_urls=("https://optimism.llamarpc.com", "https://mainnet.optimism.io"),
        native_symbol="ETH",
    ),
    ChainDescriptor(
        chain_id=BASE,
        display_name="Base",
        aliases=("base",),
        rpc_urls=("https://base.llamarpc.com", "https://mainnet.base.org"),
        wrapped_native="0x4200000000000000000000000000000000000006",
        native_symbol="ETH",
    ),
    ChainDescriptor(
        chain_id=CRONOS,
        display_name="Cronos",
        aliases=("cronos", "cro"),
        rpc_urls=("https://cronos.drpc.org",),
        native_symbol="CRO",
    ),
    ChainDescriptor(
        chain_id=LINEA,
        display_name="Linea",
        aliases=("linea",),
        rpc_urls=("https://linea.drpc.org",),
        native_symbol="ETH",
    ),
    ChainDescriptor(
        chain_id=SCROLL,
        display_name="Scroll",
        aliases=("scroll",),
        rpc_urls=("https://rpc.scroll.io",),
        native_symbol="ETH",
    ),
    ChainDescriptor(
        chain_id=BLAST,
        display_name="Blast",
        aliases=("blast",),
        rpc_urls=("https://rpc.blast.io",),
        native_symbol="ETH",
    ),
    ChainDescriptor(
        chain_id=ZKSYNC,
        display_name="ZkSync Era",
        aliases=("zksync", "zksync era", "era"),
        rpc_urls=("https://mainnet.era.zksync.io",),
        native_symbol="ETH",
    ),
    ChainDescriptor(
        chain_id=GNOSIS,
        display_name="Gnosis",
        aliases=("gnosis", "xdai"),
        rpc_urls=("https://rpc.gnosischain.com",),
        native_symbol="xDAI",
    ),
    ChainDescriptor(
        chain_id=MOONBEAM,
        display_name="Moonbeam",
        aliases=("moonbeam", "glmr"),
        rpc_urls=("https://rpc.api.moonbeam.network",),
        native_symbol="GLMR",
    ),
    ChainDescriptor(
        chain_id=CELO,
        display_name="Celo",
        aliases=("celo",),
        rpc_urls=("https://forno.celo.org",),
        native_symbol="CELO",
    ),
    ChainDescriptor(
        chain_id=SEPOLIA,
        display_name="Sepolia",
        aliases=("sepolia",),
        rpc_urls=("https://rpc.sepolia.org",),
        native_symbol="ETH",
    ),
    ChainDescriptor(
        chain_id=GOERLI,
        display_name="Goerli",
        aliases=("goerli",),
        native_symbol="ETH",
    ),
    ChainDescriptor(
        chain_id=BSC_TESTNET,
        display_name="BSC Testnet",
        aliases=("bsc testnet", "bsc-testnet"),
        native_symbol="BNB",
    ),
    ChainDescriptor(
        chain_id=MUMBAI,
        display_name="Mumbai",
        aliases=("mumbai",),
        native_symbol="POL",
    ),
)

# Multi-chain wallet scan
DEFAULT_SCAN_ORDER = (ETH, BSC, POLYGON, ARBITRUM, OPTIMISM, BASE, AVAX, FANTOM)

# Provider hash search
DEFAULT_SEARCH_ORDER = (
    ETH, BSC, POLYGON, ARBITRUM, OPTIMISM, AVAX, BASE, FANTOM,
    LINEA, BLAST, SCROLL, CRONOS, GNOSIS, ZKSYNC, SEPOLIA,
)

# Direct-node hash search
DEFAULT_NODE_SEARCH_ORDER = (
    ETH, BSC, POLYGON, ARBITRUM, OPTIMISM, BASE, AVAX, FANTOM,
    LINEA, BLAST, SCROLL, CRONOS, GNOSIS, ZKSYNC,
)


class ChainRegistry:
    """
    Read-only lookup over a fixed set of chain descriptors.

    Usage:
        chains = ChainRegistry()
        chains.normalize("Polygon")     # -> "0x89"
        chains.normalize("all")         # -> "all"
        chains.display_name("0x2105")   # -> "Base"
    """

    def __init__(
        self,
        descriptors: Iterable[ChainDescriptor] = DEFAULT_CHAINS,
        scan_order: Optional[Sequence[str]] = None,
        search_order: Optional[Sequence[str]] = None,
        node_search_order: Optional[Sequence[str]] = None,
    ) -> None:
        self._by_id: dict[str, ChainDescriptor] = {}
        self._by_alias: dict[str, ChainDescriptor] = {}

        for descriptor in descriptors:
            key = descriptor.chain_id.lower()
            if key in self._by_id:
                raise ValueError(f"Duplicate chain id: {descriptor.chain_id}")
            self._by_id[key] = descriptor
            self._by_alias[descriptor.display_name.lower()] = descriptor
            for alias in descriptor.aliases:
                self._by_alias[alias.lower()] = descriptor

        self._scan_order = self._known(scan_order, DEFAULT_SCAN_ORDER)
        self._search_order = self._known(search_order, DEFAULT_SEARCH_ORDER)
        self._node_search_order = self._known(node_search_order, DEFAULT_NODE_SEARCH_ORDER)

    def _known(self, order: Optional[Sequence[str]], default: Sequence[str]) -> tuple[str, ...]:
        """Keep only ids present in this registry, preserving order."""
        chosen = default if order is None else order
        return tuple(c for c in chosen if c.lower() in self._by_id)

    # ─────────────────────────────────────────────────────────────
    # Lookup
    # ─────────────────────────────────────────────────────────────

    def resolve(self, alias_or_id: Optional[str]) -> Optional[ChainDescriptor]:
        """Find a descriptor by canonical id, display name or alias."""
        if not alias_or_id:
            return None
        key = str(alias_or_id).strip().lower()
        return self._by_id.get(key) or self._by_alias.get(key)

    def normalize(self, alias_or_id: Optional[str]) -> str:
        """
        Map user input to a canonical chain id.

        Empty input gives the default chain, "all" gives ``ALL_CHAINS`` and
        unknown strings are returned as-is.
        """
        if alias_or_id is None or str(alias_or_id).strip() == "":
            return DEFAULT_CHAIN

        text = str(alias_or_id).strip()
        if text.lower() == ALL_CHAINS:
            return ALL_CHAINS

        descriptor = self.resolve(text)
        if descriptor is None:
            logger.debug(f"Unrecognized chain '{text}', passing through")
            return text
        return descriptor.chain_id

    def get(self, chain_id: str) -> Optional[ChainDescriptor]:
        """Get a descriptor by canonical id only."""
        return self._by_id.get(str(chain_id).lower())

    def endpoints(self, chain_id: str) -> list[str]:
        """Ordered node RPC endpoints for a chain (empty if none)."""
        descriptor = self.resolve(chain_id)
        return list(descriptor.rpc_urls) if descriptor else []

    def display_name(self, chain_id: str) -> str:
        """Human name for a chain, or the id itself if unknown."""
        descriptor = self.resolve(chain_id)
        return descriptor.display_name if descriptor else str(chain_id)

    def chain_id_for_name(self, display_name: str) -> Optional[str]:
        """Reverse lookup from display name (or alias) to canonical id."""
        descriptor = self.resolve(display_name)
        return descriptor.chain_id if descriptor else None

    def wrapped_native(self, chain_id: str) -> Optional[str]:
        """Wrapped native token contract used for native pricing."""
        descriptor = self.resolve(chain_id)
        return descriptor.wrapped_native if descriptor else None

    def native_symbol(self, chain_id: str) -> str:
        descriptor = self.resolve(chain_id)
        return descriptor.native_symbol if descriptor else "ETH"

    def list_chains(self) -> list[str]:
        """All canonical ids in registration order."""
        return [d.chain_id for d in self._by_id.values()]

    # ─────────────────────────────────────────────────────────────
    # Ordered chain lists
    # ─────────────────────────────────────────────────────────────

    @property
    def scan_order(self) -> tuple[str, ...]:
        """Chains fanned out over for an all-chains wallet scan."""
        return self._scan_order

    @property
    def search_order(self) -> tuple[str, ...]:
        """Chains tried in order when a provider searches for a hash."""
        return self._search_order

    @property
    def node_search_order(self) -> tuple[str, ...]:
        """Chains tried in order by the direct-node hash search."""
        return self._node_search_order

    def __contains__(self, chain_id: str) -> bool:
        return self.resolve(chain_id) is not None

    def __len__(self) -> int:
        return len(self._by_id)

    def __repr__(self) -> str:
        return f"<ChainRegistry(chains={len(self._by_id)})>"


_default_chains: Optional[ChainRegistry] = None


def default_chain_registry() -> ChainRegistry:
    """Get or create the process-wide chain registry."""
    global _default_chains
    if _default_chains is None:
        _default_chains = ChainRegistry()
    return _default_chains
