"""
Base Provider Adapter - Abstract interface for all transaction data providers.

All adapters:
- Speak the same operation surface and return normalized models
- Map HTTP / network failures onto the resolver error taxonomy
- Return None / [] for "not found", never raise for it
- Raise UnsupportedOperationError for operations they do not offer
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

import aiohttp

from tx_resolver.chains import ChainRegistry, default_chain_registry
from tx_resolver.codec import hex_to_dec, parse_timestamp
from tx_resolver.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ProviderError,
    RateLimitError,
    TransientNetworkError,
    UnsupportedOperationError,
)
from tx_resolver.models import (
    DateRange,
    InternalTransfer,
    NFTTransfer,
    NormalizedTransaction,
    Operation,
    ProviderHealth,
    ProviderKind,
    ProviderMetadata,
    ProviderStatus,
    ReceiptStatus,
    TokenTransfer,
)


logger = logging.getLogger(__name__)


class BaseProviderAdapter(ABC):
    """
    Abstract base class for all provider adapters.

    Each adapter must:
    1. Declare ``kind`` and ``name``
    2. Implement metadata() - display name, capabilities, priority
    3. Override the operations it supports

    Features:
    - Owned aiohttp session, closed via close() / ``async with``
    - Limited retry with backoff for transient failures
    - Health tracking by consecutive failures
    """

    # Configuration defaults
    DEFAULT_TIMEOUT = 30.0
    MAX_RETRIES = 2
    RETRY_BACKOFF_BASE = 1.5
    DEGRADED_THRESHOLD = 3
    UNAVAILABLE_THRESHOLD = 5

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        chains: Optional[ChainRegistry] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._chains = chains if chains is not None else default_chain_registry()
        self._session = session
        self._owns_session = session is None

        # Health tracking
        self._health = ProviderHealth(
            status=ProviderStatus.UNKNOWN,
            last_check=datetime.now(timezone.utc),
        )
        self._last_successful_request: Optional[datetime] = None

    @property
    @abstractmethod
    def kind(self) -> ProviderKind:
        """Which upstream this adapter talks to."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Label attached to results as ``_provider``."""
        pass

    @abstractmethod
    def metadata(self) -> ProviderMetadata:
        """
        Return adapter metadata.

        Returns:
            ProviderMetadata with capabilities and priority
        """
        pass

    @property
    def chains(self) -> ChainRegistry:
        return self._chains

    # ─────────────────────────────────────────────────────────────
    # Capabilities & credentials
    # ─────────────────────────────────────────────────────────────

    def supports(self, operation: Operation) -> bool:
        """Check if this adapter offers an operation."""
        return self.metadata().supports(operation)

    def is_configured(self) -> bool:
        """True when every credential the adapter needs is present."""
        return bool(self._api_key) or not self.metadata().requires_api_key

    def ensure_configured(self) -> None:
        """Fail fast when a required credential is missing."""
        if not self.is_configured():
            raise ConfigurationError(
                message=f"{self.metadata().display_name} API key is not configured",
                provider=self.name,
                config_key=f"{self.kind.name}_API_KEY",
            )

    def _unsupported(self, operation: Operation) -> UnsupportedOperationError:
        return UnsupportedOperationError(
            message=f"{self.metadata().display_name} does not support {operation.value}",
            provider=self.name,
            operation=operation.value,
        )

    # ─────────────────────────────────────────────────────────────
    # Operation surface (override what the provider supports)
    # ─────────────────────────────────────────────────────────────

    async def list_wallet_transactions(
        self,
        address: str,
        chain: str,
        limit: int,
        date_range: Optional[DateRange] = None,
    ) -> list[NormalizedTransaction]:
        """Native transactions of a wallet, newest first."""
        raise self._unsupported(Operation.WALLET_TRANSACTIONS)

    async def list_token_transfers(
        self,
        address: str,
        chain: str,
        limit: int,
    ) -> list[TokenTransfer]:
        """Fungible token transfers touching a wallet, newest first."""
        raise self._unsupported(Operation.TOKEN_TRANSFERS)

    async def get_transaction(self, tx_hash: str, chain: str) -> Optional[NormalizedTransaction]:
        """One transaction, or None when the chain does not know the hash."""
        raise self._unsupported(Operation.TRANSACTION)

    async def get_transaction_token_transfers(self, tx_hash: str, chain: str) -> list[TokenTransfer]:
        raise self._unsupported(Operation.TRANSACTION_TOKEN_TRANSFERS)

    async def get_transaction_nft_transfers(self, tx_hash: str, chain: str) -> list[NFTTransfer]:
        raise self._unsupported(Operation.TRANSACTION_NFT_TRANSFERS)

    async def get_internal_transfers(self, tx_hash: str, chain: str) -> list[InternalTransfer]:
        raise self._unsupported(Operation.INTERNAL_TRANSFERS)

    async def get_native_price(self, chain: str) -> Decimal:
        """USD spot price of the chain's native asset."""
        raise self._unsupported(Operation.NATIVE_PRICE)

    async def get_token_price(self, contract: str, chain: str) -> Decimal:
        """USD spot price of a token contract."""
        raise self._unsupported(Operation.TOKEN_PRICE)

    # ─────────────────────────────────────────────────────────────
    # HTTP Helpers
    # ─────────────────────────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers=self._get_default_headers(),
            )
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> dict[str, str]:
        """Get default HTTP headers."""
        return {
            "Accept": "application/json",
            "User-Agent": "tx-resolver/1.0",
        }

    async def _make_request(
        self,
        method: str,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        json_body: Optional[Any] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Make HTTP request with error mapping. Returns parsed JSON."""
        session = await self._get_session()
        extra: dict[str, Any] = {}
        if timeout:
            extra["timeout"] = aiohttp.ClientTimeout(total=timeout)

        start_time = time.time()
        try:
            async with session.request(
                method,
                url,
                params=params,
                headers=headers,
                json=json_body,
                **extra,
            ) as response:
                self._health.latency_ms = (time.time() - start_time) * 1000
                self._health.requests_made += 1

                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise RateLimitError(
                        message="Rate limit exceeded",
                        provider=self.name,
                        retry_after_seconds=int(retry_after) if retry_after and retry_after.isdigit() else 60,
                        status_code=429,
                        request_url=url,
                    )

                if response.status in (401, 403):
                    body = await response.text()
                    raise AuthenticationError(
                        message=f"{self.metadata().display_name} rejected the API key",
                        provider=self.name,
                        status_code=response.status,
                        response_body=body[:500],
                        request_url=url,
                    )

                if response.status >= 400:
                    body = await response.text()
                    raise ProviderError(
                        message=self._error_message(response.status, body),
                        provider=self.name,
                        status_code=response.status,
                        response_body=body[:500],
                        request_url=url,
                    )

                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise ProviderError(
                        message="Response is not valid JSON",
                        provider=self.name,
                        status_code=response.status,
                        request_url=url,
                        original_error=e,
                    )

        except asyncio.TimeoutError as e:
            raise TransientNetworkError(
                message=f"Timeout after {timeout or self._timeout}s",
                provider=self.name,
                endpoint=url,
                original_error=e,
            )
        except aiohttp.ClientError as e:
            raise TransientNetworkError(
                message=f"Connection error: {e}",
                provider=self.name,
                endpoint=url,
                original_error=e,
            )

    def _error_message(self, status: int, body: str) -> str:
        """Prefer the upstream's own message when it sends one."""
        return f"HTTP {status}: {body[:200]}" if body else f"HTTP {status}"

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> Any:
        """Request with limited retries for transient failures."""
        last_error: Optional[Exception] = None

        for attempt in range(self.MAX_RETRIES):
            try:
                result = await self._make_request(method, url, **kwargs)
                self._on_success()
                return result

            except RateLimitError as e:
                # Don't retry on rate limit
                self._on_error(e)
                raise

            except ProviderError as e:
                if e.status_code is None or 400 <= e.status_code < 500:
                    # Don't retry client errors
                    self._on_error(e)
                    raise
                last_error = e

            except TransientNetworkError as e:
                last_error = e

            if attempt + 1 < self.MAX_RETRIES:
                wait_time = self.RETRY_BACKOFF_BASE ** attempt
                logger.warning(
                    f"[{self.name}] Retry {attempt + 1}/{self.MAX_RETRIES} "
                    f"in {wait_time:.1f}s: {last_error}"
                )
                await asyncio.sleep(wait_time)

        self._on_error(last_error)
        raise last_error

    # ─────────────────────────────────────────────────────────────
    # Health & Error Tracking
    # ─────────────────────────────────────────────────────────────

    def _on_success(self) -> None:
        """Handle successful request."""
        self._last_successful_request = datetime.now(timezone.utc)
        self._health.consecutive_failures = 0
        self._health.last_check = self._last_successful_request

        if self._health.status != ProviderStatus.HEALTHY:
            if self._health.status != ProviderStatus.UNKNOWN:
                logger.info(f"[{self.name}] Recovered to HEALTHY status")
            self._health.status = ProviderStatus.HEALTHY

    def _on_error(self, error: Optional[Exception]) -> None:
        """Handle request error."""
        self._health.error_count += 1
        self._health.consecutive_failures += 1
        self._health.last_error = str(error)
        self._health.last_error_time = datetime.now(timezone.utc)

        if isinstance(error, RateLimitError):
            self._health.status = ProviderStatus.RATE_LIMITED
        elif self._health.consecutive_failures >= self.UNAVAILABLE_THRESHOLD:
            if self._health.status != ProviderStatus.UNAVAILABLE:
                self._health.status = ProviderStatus.UNAVAILABLE
                logger.error(f"[{self.name}] Marked UNAVAILABLE")
        elif self._health.consecutive_failures >= self.DEGRADED_THRESHOLD:
            if self._health.status != ProviderStatus.DEGRADED:
                self._health.status = ProviderStatus.DEGRADED
                logger.warning(f"[{self.name}] Marked DEGRADED")

    def get_health(self) -> ProviderHealth:
        """Get current health status."""
        return self._health

    def is_healthy(self) -> bool:
        """Check if adapter is healthy."""
        return self._health.is_healthy()

    def is_usable(self) -> bool:
        """Check if adapter can be used."""
        return self._health.is_usable()

    def _tag(self, tx: NormalizedTransaction, chain: str) -> NormalizedTransaction:
        """Attach provenance to a normalized transaction."""
        tx.provider = self.name
        tx.chain_id = chain
        tx.detected_chain = self._chains.display_name(chain)
        return tx

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "BaseProviderAdapter":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name}, status={self._health.status.value})>"


def is_fatal(error: BaseException) -> bool:
    """Errors that make trying another chain pointless."""
    return isinstance(error, (AuthenticationError, ConfigurationError))


def transaction_from_rpc(
    tx: dict[str, Any],
    receipt: Optional[dict[str, Any]],
    block: Optional[dict[str, Any]],
) -> NormalizedTransaction:
    """
    Normalize JSON-RPC shaped tx/receipt/block objects (hex quantities).

    A missing receipt leaves the status UNKNOWN; a missing block leaves the
    timestamp None.
    """
    receipt = receipt or {}
    return NormalizedTransaction(
        hash=tx.get("hash") or "",
        nonce=hex_to_dec(tx.get("nonce")),
        transaction_index=hex_to_dec(tx.get("transactionIndex")),
        from_address=(tx.get("from") or "").lower(),
        to_address=tx["to"].lower() if tx.get("to") else None,
        value=hex_to_dec(tx.get("value")),
        gas=hex_to_dec(tx.get("gas")),
        gas_price=hex_to_dec(tx.get("gasPrice") or receipt.get("effectiveGasPrice")),
        input=tx.get("input") or "0x",
        receipt_status=ReceiptStatus.from_raw(receipt.get("status")),
        receipt_cumulative_gas_used=hex_to_dec(receipt.get("cumulativeGasUsed")),
        receipt_gas_used=hex_to_dec(receipt.get("gasUsed")),
        receipt_contract_address=receipt.get("contractAddress") or None,
        block_number=hex_to_dec(tx.get("blockNumber")),
        block_hash=tx.get("blockHash") or "",
        block_timestamp=parse_timestamp(block.get("timestamp")) if block else None,
    )
