"""
Provider Registry - closed provider enum to adapter, plus capability queries.

The resolver never touches adapter classes directly; it asks the registry
for "the moralis adapter" or "adapters that can price a token".
"""

import logging
from typing import TYPE_CHECKING, Optional

from tx_resolver.chains import ChainRegistry
from tx_resolver.exceptions import NoAvailableProviderError
from tx_resolver.models import Operation, ProviderHealth, ProviderKind, ProviderMetadata
from tx_resolver.providers.base import BaseProviderAdapter

if TYPE_CHECKING:
    from tx_resolver.config import ResolverConfig


logger = logging.getLogger(__name__)


class ProviderRegistry:
    """
    Registry of provider adapters keyed by ``ProviderKind``.

    Usage:
        registry = ProviderRegistry()
        registry.register(MoralisAdapter(api_key="..."))
        registry.register(NodeRpcAdapter())

        moralis = registry.get(ProviderKind.MORALIS)
        pricers = registry.providers_for(Operation.NATIVE_PRICE)
    """

    def __init__(self) -> None:
        self._adapters: dict[ProviderKind, BaseProviderAdapter] = {}
        self._order: list[ProviderKind] = []
        self._priorities: dict[ProviderKind, int] = {}

    def register(
        self,
        adapter: BaseProviderAdapter,
        priority: Optional[int] = None,
    ) -> None:
        """
        Register a provider adapter.

        Args:
            adapter: Adapter instance
            priority: Lower = higher priority (defaults to metadata priority)
        """
        kind = adapter.kind

        if kind in self._adapters:
            logger.warning(f"Provider '{kind.value}' already registered, replacing")
            self._order.remove(kind)

        self._adapters[kind] = adapter

        if priority is None:
            priority = adapter.metadata().priority
        self._priorities[kind] = priority

        # Insert in priority order
        insert_idx = len(self._order)
        for i, existing in enumerate(self._order):
            if priority < self._priorities[existing]:
                insert_idx = i
                break
        self._order.insert(insert_idx, kind)

        logger.info(f"Registered provider '{kind.value}' with priority {priority}")

    def unregister(self, kind: ProviderKind) -> Optional[BaseProviderAdapter]:
        """Unregister an adapter."""
        if kind in self._adapters:
            adapter = self._adapters.pop(kind)
            self._order.remove(kind)
            self._priorities.pop(kind, None)
            logger.info(f"Unregistered provider '{kind.value}'")
            return adapter
        return None

    def get(self, kind: ProviderKind) -> Optional[BaseProviderAdapter]:
        """Get the adapter for a provider kind."""
        return self._adapters.get(kind)

    def require(self, kind: ProviderKind) -> BaseProviderAdapter:
        """Get the adapter for a provider kind or raise."""
        adapter = self._adapters.get(kind)
        if adapter is None:
            raise NoAvailableProviderError(
                message=f"Provider '{kind.value}' is not registered",
                attempted_providers=[kind.value],
            )
        return adapter

    def list_providers(self) -> list[ProviderKind]:
        """Registered kinds in priority order."""
        return self._order.copy()

    def providers_for(
        self,
        operation: Operation,
        configured_only: bool = True,
    ) -> list[BaseProviderAdapter]:
        """Adapters supporting an operation, in priority order."""
        result = []
        for kind in self._order:
            adapter = self._adapters[kind]
            if not adapter.supports(operation):
                continue
            if configured_only and not adapter.is_configured():
                continue
            result.append(adapter)
        return result

    def first_for(self, operation: Operation) -> Optional[BaseProviderAdapter]:
        """Highest-priority configured adapter supporting an operation."""
        candidates = self.providers_for(operation)
        return candidates[0] if candidates else None

    def get_all_metadata(self) -> dict[str, ProviderMetadata]:
        """Get metadata for all adapters."""
        return {kind.value: adapter.metadata() for kind, adapter in self._adapters.items()}

    def get_all_health(self) -> dict[str, ProviderHealth]:
        """Get health for all adapters."""
        return {kind.value: adapter.get_health() for kind, adapter in self._adapters.items()}

    async def close(self) -> None:
        """Close all adapters."""
        for adapter in self._adapters.values():
            try:
                await adapter.close()
            except Exception as e:
                logger.error(f"Error closing provider {adapter.name}: {e}")

        self._adapters.clear()
        self._order.clear()
        self._priorities.clear()
        logger.info("Provider registry closed")

    async def __aenter__(self) -> "ProviderRegistry":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def __contains__(self, kind: ProviderKind) -> bool:
        return kind in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)


def build_default_registry(
    config: "ResolverConfig",
    chains: Optional[ChainRegistry] = None,
) -> ProviderRegistry:
    """
    Registry with all three providers wired from configuration.

    Providers without credentials are still registered; they report
    ``is_configured() == False`` and raise ConfigurationError when used.
    """
    from tx_resolver.providers.etherscan import EtherscanAdapter
    from tx_resolver.providers.moralis import MoralisAdapter
    from tx_resolver.providers.node import NodeRpcAdapter

    registry = ProviderRegistry()
    registry.register(MoralisAdapter(
        api_key=config.moralis_api_key,
        base_url=config.moralis_base_url,
        timeout=config.request_timeout_seconds,
        page_size=config.moralis_page_size,
        max_records=config.max_wallet_records,
        chains=chains,
    ))
    registry.register(EtherscanAdapter(
        api_key=config.etherscan_api_key,
        base_url=config.etherscan_base_url,
        timeout=config.request_timeout_seconds,
        chains=chains,
    ))
    registry.register(NodeRpcAdapter(
        rpc_timeout=config.rpc_timeout_seconds,
        chains=chains,
    ))
    return registry
