"""
Transaction Resolver - multi-provider, multi-chain orchestration.

Turns a wallet address or transaction hash into a tagged result:
- Picks chain(s) and provider
- Falls back across chains and onto public nodes for hash lookups
- Merges native and token views of a wallet's history
- Attaches spot prices

Every public operation returns a ResolutionResult; failures surface as an
ErrorResult with a short message, never as an exception.
"""

import asyncio
import copy
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from tx_resolver.chains import ChainRegistry, default_chain_registry
from tx_resolver.config import ResolverConfig, load_config
from tx_resolver.exceptions import ConfigurationError, ResolverError
from tx_resolver.merge import merge_transactions
from tx_resolver.models import (
    ALL_CHAINS,
    MULTI_CHAIN_LABEL,
    CacheEntry,
    DateRange,
    ErrorResult,
    NormalizedTransaction,
    Operation,
    ProviderKind,
    ResolutionResult,
    SingleTransactionResult,
    TokenTransferResult,
    TokenTransfersRequest,
    TransactionLookupRequest,
    WalletHistoryRequest,
    WalletHistoryResult,
)
from tx_resolver.pricing import PriceEnricher
from tx_resolver.providers.base import BaseProviderAdapter, is_fatal
from tx_resolver.providers.node import NodeRpcAdapter
from tx_resolver.registry import ProviderRegistry, build_default_registry


logger = logging.getLogger(__name__)


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def sort_newest_first(transactions: list[NormalizedTransaction]) -> list[NormalizedTransaction]:
    """Sort by block timestamp descending; unknown timestamps go last."""
    return sorted(
        transactions,
        key=lambda tx: (tx.block_timestamp is not None, tx.block_timestamp or _EPOCH),
        reverse=True,
    )


# ─────────────────────────────────────────────────────────────
# Result cache
# ─────────────────────────────────────────────────────────────

class ResultCache:
    """
    Short-lived cache of successful results.

    Entries are deep copies in both directions so callers can mutate what
    they get back. Error results are never stored.
    """

    def __init__(
        self,
        ttl_seconds: int = 60,
        max_entries: int = 256,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._entries: dict[tuple, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    @property
    def enabled(self) -> bool:
        return self._ttl > 0

    @staticmethod
    def make_key(operation: str, *args: Any) -> tuple:
        return (operation, *args)

    def get(self, key: tuple) -> Optional[ResolutionResult]:
        """Get a copy of a live entry, or None."""
        if not self.enabled:
            return None

        entry = self._entries.get(key)
        now = self._clock()
        if entry is None or entry.is_expired(now):
            if entry is not None:
                del self._entries[key]
            self._misses += 1
            return None

        entry.hits += 1
        self._hits += 1
        logger.debug(f"Cache hit for {key[0]} (age={entry.age_seconds(now):.1f}s)")
        return copy.deepcopy(entry.data)

    def put(self, key: tuple, result: ResolutionResult) -> None:
        """Store a copy of a successful result."""
        if not self.enabled or result.is_error:
            return

        now = self._clock()
        self._entries[key] = CacheEntry(
            data=copy.deepcopy(result),
            created_at=now,
            expires_at=now + timedelta(seconds=self._ttl),
        )

        if len(self._entries) > self._max_entries:
            self._evict(now)

    def _evict(self, now: datetime) -> None:
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]
        while len(self._entries) > self._max_entries:
            oldest = min(self._entries, key=lambda k: self._entries[k].created_at)
            del self._entries[oldest]

    def clear(self) -> None:
        """Clear all cache entries."""
        self._entries.clear()
        logger.info("Result cache cleared")

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        total_requests = self._hits + self._misses
        hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0

        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate_percent": round(hit_rate, 2),
        }

    def __len__(self) -> int:
        return len(self._entries)


# ─────────────────────────────────────────────────────────────
# Resolver
# ─────────────────────────────────────────────────────────────

class TransactionResolver:
    """
    Orchestrates providers over chains for the three public operations.

    Usage:
        async with create_resolver() as resolver:
            result = await resolver.get_transaction_by_hash("0xabc...")
            print(result.to_dict())
    """

    def __init__(
        self,
        providers: ProviderRegistry,
        chains: Optional[ChainRegistry] = None,
        pricing: Optional[PriceEnricher] = None,
        cache: Optional[ResultCache] = None,
        default_wallet_limit: int = 50,
        default_token_limit: int = 20,
    ) -> None:
        self._providers = providers
        self._chains = chains if chains is not None else default_chain_registry()
        self._pricing = pricing or PriceEnricher(providers, self._chains)
        self._cache = cache if cache is not None else ResultCache(ttl_seconds=0)
        self._default_wallet_limit = default_wallet_limit
        self._default_token_limit = default_token_limit

    @property
    def chains(self) -> ChainRegistry:
        return self._chains

    @property
    def providers(self) -> ProviderRegistry:
        return self._providers

    @property
    def cache(self) -> ResultCache:
        return self._cache

    # ─────────────────────────────────────────────────────────────
    # Wallet history
    # ─────────────────────────────────────────────────────────────

    async def get_wallet_transactions(
        self,
        address: str,
        chain: Optional[str] = None,
        limit: Optional[int] = None,
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
        direction: Optional[str] = None,
        stablecoins_only: Optional[bool] = None,
        provider: Optional[str] = None,
    ) -> ResolutionResult:
        """
        Wallet history on one chain, or on every scan chain with chain="all".

        Direction and stablecoin filters are echoed back, not applied.
        """
        try:
            request = WalletHistoryRequest(
                address=address,
                chain=self._chains.normalize(chain),
                limit=limit if limit is not None else self._default_wallet_limit,
                date_range=DateRange.parse(from_date, to_date),
                direction=direction,
                stablecoins_only=stablecoins_only,
                provider=ProviderKind.parse(provider),
            )
            request.validate()
        except ValueError as e:
            return ErrorResult(str(e), operation="get_wallet_transactions")

        key = ResultCache.make_key(
            "wallet", request.address.lower(), request.chain, request.limit,
            from_date, to_date, direction, stablecoins_only, request.provider.value,
        )
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        result = await self._wallet_history(request)
        self._cache.put(key, result)
        return result

    async def _wallet_history(self, request: WalletHistoryRequest) -> ResolutionResult:
        adapter = self._providers.get(request.provider)
        if adapter is None:
            return ErrorResult(
                f"Provider '{request.provider.value}' is not available.",
                operation="get_wallet_transactions",
            )

        if request.is_multi_chain and not adapter.supports(Operation.MULTI_CHAIN_SCAN):
            return ErrorResult(
                f"{adapter.metadata().display_name} cannot scan a wallet across all chains. "
                "Pick a specific chain, or use the moralis or etherscan provider.",
                operation="get_wallet_transactions",
            )

        error = self._capability_error(adapter, request.provider, Operation.WALLET_TRANSACTIONS)
        if error:
            return error

        try:
            adapter.ensure_configured()
        except ConfigurationError as e:
            return ErrorResult(e.message, operation="get_wallet_transactions")

        if request.is_multi_chain:
            return await self._multi_chain_history(adapter, request)

        chain_name = self._chains.display_name(request.chain)
        try:
            transactions = await self._fetch_chain_history(adapter, request, request.chain)
        except ResolverError as e:
            logger.warning(f"[{adapter.name}] Wallet history failed on {chain_name}: {e}")
            return ErrorResult(
                f"Could not fetch wallet transactions on {chain_name}: {e.message}",
                operation="get_wallet_transactions",
            )

        native_price = await self._pricing.native_price(request.chain)
        return WalletHistoryResult(
            transactions=sort_newest_first(transactions),
            searched_address=request.address,
            chain_label=chain_name,
            price_map={chain_name: native_price},
            native_price=native_price,
            filters=request.filters(),
            provider=adapter.name,
        )

    async def _multi_chain_history(
        self,
        adapter: BaseProviderAdapter,
        request: WalletHistoryRequest,
    ) -> ResolutionResult:
        """Fan out over the scan list; a failing chain contributes nothing."""
        scan = self._chains.scan_order
        logger.info(f"[{adapter.name}] Scanning {len(scan)} chains for {request.address}")

        per_chain = await asyncio.gather(
            *(self._scan_chain(adapter, request, chain) for chain in scan)
        )

        aggregated = [tx for chain_txs in per_chain for tx in chain_txs]
        aggregated = sort_newest_first(aggregated)

        present = [chain for chain, chain_txs in zip(scan, per_chain) if chain_txs]
        price_map = await self._pricing.price_map(present)

        return WalletHistoryResult(
            transactions=aggregated,
            searched_address=request.address,
            chain_label=MULTI_CHAIN_LABEL,
            price_map=price_map,
            filters=request.filters(),
            provider=adapter.name,
        )

    async def _scan_chain(
        self,
        adapter: BaseProviderAdapter,
        request: WalletHistoryRequest,
        chain: str,
    ) -> list[NormalizedTransaction]:
        try:
            return await self._fetch_chain_history(adapter, request, chain)
        except Exception as e:
            logger.warning(
                f"[{adapter.name}] Skipping {self._chains.display_name(chain)} in multi-chain scan: {e}"
            )
            return []

    async def _fetch_chain_history(
        self,
        adapter: BaseProviderAdapter,
        request: WalletHistoryRequest,
        chain: str,
    ) -> list[NormalizedTransaction]:
        """Native + token fetch for one chain, merged. Token failures are soft."""
        native_call = adapter.list_wallet_transactions(
            request.address, chain, request.limit, request.date_range
        )

        if adapter.supports(Operation.TOKEN_TRANSFERS):
            native, tokens = await asyncio.gather(
                native_call,
                adapter.list_token_transfers(request.address, chain, request.limit),
                return_exceptions=True,
            )
        else:
            native, tokens = await native_call, []

        if isinstance(native, BaseException):
            raise native

        if isinstance(tokens, BaseException):
            logger.warning(
                f"[{adapter.name}] Token transfers failed on "
                f"{self._chains.display_name(chain)}, continuing without them: {tokens}"
            )
            tokens = []

        if request.date_range:
            tokens = [t for t in tokens if request.date_range.contains(t.block_timestamp)]

        return merge_transactions(
            native,
            tokens,
            chain_id=chain,
            provider=adapter.name,
            detected_chain=self._chains.display_name(chain),
        )

    # ─────────────────────────────────────────────────────────────
    # Token transfers
    # ─────────────────────────────────────────────────────────────

    async def get_token_transfers(
        self,
        address: str,
        chain: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> ResolutionResult:
        """ERC-20 transfers of a wallet on one chain, no merge."""
        try:
            request = TokenTransfersRequest(
                address=address,
                chain=self._chains.normalize(chain),
                limit=limit if limit is not None else self._default_token_limit,
            )
            request.validate()
        except ValueError as e:
            return ErrorResult(str(e), operation="get_token_transfers")

        key = ResultCache.make_key("tokens", request.address.lower(), request.chain, request.limit)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        adapter = self._providers.first_for(Operation.TOKEN_TRANSFERS)
        if adapter is None:
            return ErrorResult(
                "No configured provider supports token transfers. "
                "Set MORALIS_API_KEY or ETHERSCAN_API_KEY.",
                operation="get_token_transfers",
            )

        chain_name = self._chains.display_name(request.chain)
        try:
            transfers = await adapter.list_token_transfers(request.address, request.chain, request.limit)
        except ResolverError as e:
            logger.warning(f"[{adapter.name}] Token transfers failed on {chain_name}: {e}")
            return ErrorResult(
                f"Could not fetch token transfers on {chain_name}: {e.message}",
                operation="get_token_transfers",
            )

        result = TokenTransferResult(
            transfers=transfers,
            searched_address=request.address,
            chain_label=chain_name,
            provider=adapter.name,
        )
        self._cache.put(key, result)
        return result

    # ─────────────────────────────────────────────────────────────
    # Hash lookup
    # ─────────────────────────────────────────────────────────────

    async def get_transaction_by_hash(
        self,
        tx_hash: str,
        chain: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> ResolutionResult:
        """
        Resolve one transaction, searching chains when none is given.

        Provider path first (unless the caller chose rpc), then the public
        node search. The hit is enriched with whatever transfers and prices
        the source did not already provide.
        """
        try:
            normalized_chain = self._chains.normalize(chain) if chain else None
            if normalized_chain == ALL_CHAINS:
                normalized_chain = None
            request = TransactionLookupRequest(
                hash=tx_hash,
                chain=normalized_chain,
                provider=ProviderKind.parse(provider),
            )
            request.validate()
        except ValueError as e:
            return ErrorResult(str(e), operation="get_transaction_by_hash")

        key = ResultCache.make_key("tx", request.hash.lower(), request.chain, request.provider.value)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        result = await self._lookup(request)
        self._cache.put(key, result)
        return result

    async def _lookup(self, request: TransactionLookupRequest) -> ResolutionResult:
        tx: Optional[NormalizedTransaction] = None
        failure: Optional[ResolverError] = None

        if request.provider != ProviderKind.RPC:
            adapter = self._providers.get(request.provider)
            error = self._capability_error(adapter, request.provider, Operation.TRANSACTION)
            if error:
                return error
            tx, failure = await self._provider_search(adapter, request)

        if tx is None:
            node = self._providers.get(ProviderKind.RPC)
            if isinstance(node, NodeRpcAdapter):
                if request.provider != ProviderKind.RPC:
                    logger.warning(f"Provider path found nothing for {request.hash}, trying public RPC nodes")
                tx = await node.find_transaction(request.hash, self._node_search_chains(request.chain))

        if tx is None:
            if request.provider == ProviderKind.RPC:
                message = "Transaction not found on any public RPC node."
            elif failure is not None:
                message = f"Transaction not found. {failure.provider or 'Provider'} error: {failure.message}"
            else:
                message = "Transaction not found."
            return ErrorResult(message, operation="get_transaction_by_hash")

        await self._enrich(tx)
        return SingleTransactionResult(transaction=tx, searched_hash=request.hash)

    async def _provider_search(
        self,
        adapter: BaseProviderAdapter,
        request: TransactionLookupRequest,
    ) -> tuple[Optional[NormalizedTransaction], Optional[ResolverError]]:
        """
        Exact chain when given, else the search order until a hit.

        Auth/config failures end the search at once. Returns the hit (or
        None) and the last error seen.
        """
        chains = [request.chain] if request.chain else list(self._chains.search_order)
        last_error: Optional[ResolverError] = None

        for chain in chains:
            try:
                adapter.ensure_configured()
                tx = await adapter.get_transaction(request.hash, chain)
            except ResolverError as e:
                last_error = e
                if is_fatal(e):
                    logger.warning(f"[{adapter.name}] Aborting hash search: {e}")
                    break
                logger.debug(f"[{adapter.name}] Lookup failed on {chain}, moving on: {e}")
                continue

            if tx is not None:
                return tx, None

        return None, last_error

    def _node_search_chains(self, chain: Optional[str]) -> list[str]:
        order = list(self._chains.node_search_order)
        if chain:
            return [chain] + [c for c in order if c != chain]
        return order

    async def _enrich(self, tx: NormalizedTransaction) -> None:
        """Fill in whatever the resolving source did not provide. Fail-soft."""
        chain = tx.chain_id or "0x1"
        tx.detected_chain = tx.detected_chain or self._chains.display_name(chain)

        if tx.token_transfers is None:
            tx.token_transfers = await self._optional(
                Operation.TRANSACTION_TOKEN_TRANSFERS,
                lambda a: a.get_transaction_token_transfers(tx.hash, chain),
            )
        if tx.nft_transfers is None:
            tx.nft_transfers = await self._optional(
                Operation.TRANSACTION_NFT_TRANSFERS,
                lambda a: a.get_transaction_nft_transfers(tx.hash, chain),
            )
        if tx.internal_transfers is None:
            tx.internal_transfers = await self._optional(
                Operation.INTERNAL_TRANSFERS,
                lambda a: a.get_internal_transfers(tx.hash, chain),
            )

        tx.native_price = await self._pricing.native_price(chain)
        if tx.token_transfers:
            tx.token_price = await self._pricing.token_price(tx.token_transfers[0].address, chain)

    async def _optional(self, operation: Operation, call: Callable) -> Optional[list]:
        """First configured provider offering an operation; None if none can."""
        adapter = self._providers.first_for(operation)
        if adapter is None:
            return None
        try:
            return await call(adapter)
        except ResolverError as e:
            logger.warning(f"[{adapter.name}] Enrichment {operation.value} failed: {e}")
            return None

    def _capability_error(
        self,
        adapter: Optional[BaseProviderAdapter],
        kind: ProviderKind,
        operation: Operation,
    ) -> Optional[ErrorResult]:
        if adapter is None:
            return ErrorResult(f"Provider '{kind.value}' is not available.", operation=operation.value)
        if not adapter.supports(operation):
            return ErrorResult(
                f"{adapter.metadata().display_name} does not support {operation.value.replace('_', ' ')}.",
                operation=operation.value,
            )
        return None

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close all provider sessions."""
        await self._providers.close()

    async def __aenter__(self) -> "TransactionResolver":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()


def create_resolver(
    config: Optional[ResolverConfig] = None,
    chains: Optional[ChainRegistry] = None,
) -> TransactionResolver:
    """
    Build a resolver with the default chain set and all three providers.

    Without an explicit config, reads .env and the environment.
    """
    config = config or load_config()
    chains = chains if chains is not None else default_chain_registry()
    providers = build_default_registry(config, chains)

    return TransactionResolver(
        providers=providers,
        chains=chains,
        pricing=PriceEnricher(providers, chains),
        cache=ResultCache(ttl_seconds=config.cache_ttl_seconds),
        default_wallet_limit=config.default_wallet_limit,
        default_token_limit=config.default_token_limit,
    )
