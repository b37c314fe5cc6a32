"""
Price Enricher - fail-soft USD spot prices.

A price is decoration on a result, never a precondition for returning it:
every lookup that cannot be answered comes back as Decimal(0).
"""

import asyncio
import logging
from decimal import Decimal
from typing import Iterable

from tx_resolver.chains import ChainRegistry
from tx_resolver.exceptions import ResolverError
from tx_resolver.models import Operation
from tx_resolver.registry import ProviderRegistry


logger = logging.getLogger(__name__)


class PriceEnricher:
    """Resolves spot prices through the first configured price-capable provider."""

    def __init__(self, providers: ProviderRegistry, chains: ChainRegistry) -> None:
        self._providers = providers
        self._chains = chains

    async def native_price(self, chain: str) -> Decimal:
        """USD price of a chain's native asset, 0 when unavailable."""
        if not self._chains.wrapped_native(chain):
            return Decimal(0)

        adapter = self._providers.first_for(Operation.NATIVE_PRICE)
        if adapter is None:
            return Decimal(0)

        try:
            return await adapter.get_native_price(chain)
        except ResolverError as e:
            logger.warning(f"[{adapter.name}] Native price lookup failed on {chain}: {e}")
            return Decimal(0)

    async def token_price(self, contract: str, chain: str) -> Decimal:
        """USD price of a token contract, 0 when unavailable."""
        if not contract:
            return Decimal(0)

        adapter = self._providers.first_for(Operation.TOKEN_PRICE)
        if adapter is None:
            return Decimal(0)

        try:
            return await adapter.get_token_price(contract, chain)
        except ResolverError as e:
            logger.warning(f"[{adapter.name}] Token price lookup failed for {contract}: {e}")
            return Decimal(0)

    async def price_map(self, chains: Iterable[str]) -> dict[str, Decimal]:
        """Native prices for several chains at once, keyed by display name."""
        unique = list(dict.fromkeys(chains))
        prices = await asyncio.gather(*(self.native_price(chain) for chain in unique))
        return {
            self._chains.display_name(chain): price
            for chain, price in zip(unique, prices)
        }
