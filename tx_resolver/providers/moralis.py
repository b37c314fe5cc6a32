"""
Moralis Provider Adapter - hosted indexer (Web3 Data API v2.2).

Authenticates with the ``X-API-Key`` header and addresses chains by their
hex id. Wallet history is cursor-paginated in pages of 100, capped at 2000
records per call.
"""

import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import aiohttp

from tx_resolver.chains import ChainRegistry
from tx_resolver.codec import parse_timestamp
from tx_resolver.exceptions import ProviderError, ResolverError
from tx_resolver.models import (
    DateRange,
    NFTTransfer,
    NftStandard,
    NormalizedTransaction,
    Operation,
    ProviderKind,
    ProviderMetadata,
    ReceiptStatus,
    TokenTransfer,
)
from tx_resolver.providers.base import BaseProviderAdapter


logger = logging.getLogger(__name__)


class MoralisAdapter(BaseProviderAdapter):
    """
    Moralis hosted-indexer adapter.

    The richest source: wallet history, token transfers, hash lookup,
    per-transaction token/NFT transfers and spot prices.
    """

    BASE_URL = "https://deep-index.moralis.io/api/v2.2"
    PAGE_SIZE = 100
    MAX_RECORDS = 2000

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = BASE_URL,
        timeout: float = 30.0,
        page_size: int = PAGE_SIZE,
        max_records: int = MAX_RECORDS,
        chains: Optional[ChainRegistry] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(api_key, timeout, chains, session)
        self._base_url = base_url.rstrip("/")
        self._page_size = page_size
        self._max_records = max_records

    @property
    def kind(self) -> ProviderKind:
        return ProviderKind.MORALIS

    @property
    def name(self) -> str:
        return "Moralis"

    def metadata(self) -> ProviderMetadata:
        """Return adapter metadata."""
        return ProviderMetadata(
            name=self.name,
            display_name="Moralis",
            kind=self.kind,
            supported_operations=frozenset({
                Operation.WALLET_TRANSACTIONS,
                Operation.TOKEN_TRANSFERS,
                Operation.TRANSACTION,
                Operation.TRANSACTION_TOKEN_TRANSFERS,
                Operation.TRANSACTION_NFT_TRANSFERS,
                Operation.NATIVE_PRICE,
                Operation.TOKEN_PRICE,
                Operation.MULTI_CHAIN_SCAN,
            }),
            requires_api_key=True,
            base_url=self._base_url,
            documentation_url="https://docs.moralis.com/web3-data-api/evm",
            priority=1,
        )

    def _error_message(self, status: int, body: str) -> str:
        # Moralis error bodies are {"message": "..."}
        try:
            message = json.loads(body).get("message")
        except (ValueError, AttributeError):
            message = None
        return message or super()._error_message(status, body)

    async def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        self.ensure_configured()
        return await self._request_with_retry(
            "GET",
            f"{self._base_url}{path}",
            params=params,
            headers={"X-API-Key": self._api_key},
        )

    # ─────────────────────────────────────────────────────────────
    # Wallet history
    # ─────────────────────────────────────────────────────────────

    async def list_wallet_transactions(
        self,
        address: str,
        chain: str,
        limit: int,
        date_range: Optional[DateRange] = None,
    ) -> list[NormalizedTransaction]:
        """
        Native transactions, newest first, auto-paginated.

        A failure on the first page propagates; a failure on a later page
        returns what was collected so far.
        """
        target = min(limit, self._max_records)
        native_symbol = self._chains.native_symbol(chain)
        collected: list[NormalizedTransaction] = []
        cursor: Optional[str] = None

        while len(collected) < target:
            params: dict[str, Any] = {
                "chain": chain,
                "limit": self._page_size,
                "order": "DESC",
            }
            if cursor:
                params["cursor"] = cursor
            if date_range and date_range.from_date:
                params["from_date"] = date_range.from_date.isoformat()
            if date_range and date_range.to_date:
                params["to_date"] = date_range.to_date.isoformat()

            try:
                data = await self._get(f"/{address}", params)
            except ResolverError as e:
                if not collected:
                    raise
                logger.warning(
                    f"[{self.name}] Page fetch failed on {chain} after "
                    f"{len(collected)} records, returning partial history: {e}"
                )
                break

            page = (data or {}).get("result") or []
            for raw in page:
                tx = self._to_transaction(raw, chain)
                tx.token_symbol = native_symbol
                tx.token_decimals = "18"
                collected.append(tx)

            cursor = (data or {}).get("cursor")
            if not cursor or not page:
                break

        return collected[:limit]

    async def list_token_transfers(self, address: str, chain: str, limit: int) -> list[TokenTransfer]:
        """ERC-20 transfers touching a wallet (single page)."""
        data = await self._get(
            f"/{address}/erc20/transfers",
            {"chain": chain, "limit": min(limit, self._page_size)},
        )
        return [self._to_token_transfer(raw) for raw in (data or {}).get("result") or []][:limit]

    # ─────────────────────────────────────────────────────────────
    # Single transaction
    # ─────────────────────────────────────────────────────────────

    async def get_transaction(self, tx_hash: str, chain: str) -> Optional[NormalizedTransaction]:
        """Look up a hash on one chain; 404 means the chain does not know it."""
        try:
            data = await self._get(f"/transaction/{tx_hash}", {"chain": chain})
        except ProviderError as e:
            if e.status_code == 404:
                logger.debug(f"[{self.name}] {tx_hash} not found on {chain}")
                return None
            raise

        if not data or not data.get("hash"):
            return None
        return self._to_transaction(data, chain)

    async def get_transaction_token_transfers(self, tx_hash: str, chain: str) -> list[TokenTransfer]:
        data = await self._get(f"/transaction/{tx_hash}/erc20/transfers", {"chain": chain})
        return [self._to_token_transfer(raw) for raw in (data or {}).get("result") or []]

    async def get_transaction_nft_transfers(self, tx_hash: str, chain: str) -> list[NFTTransfer]:
        data = await self._get(f"/transaction/{tx_hash}/nft/transfers", {"chain": chain})
        return [self._to_nft_transfer(raw) for raw in (data or {}).get("result") or []]

    # ─────────────────────────────────────────────────────────────
    # Prices
    # ─────────────────────────────────────────────────────────────

    async def get_native_price(self, chain: str) -> Decimal:
        """Spot price of the chain's wrapped native token (0 if none registered)."""
        wrapped = self._chains.wrapped_native(chain)
        if not wrapped:
            return Decimal(0)
        return await self.get_token_price(wrapped, chain)

    async def get_token_price(self, contract: str, chain: str) -> Decimal:
        try:
            data = await self._get(f"/erc20/{contract}/price", {"chain": chain})
        except ProviderError as e:
            if e.status_code == 404:
                return Decimal(0)
            raise
        return _to_decimal((data or {}).get("usdPrice"))

    # ─────────────────────────────────────────────────────────────
    # Normalization
    # ─────────────────────────────────────────────────────────────

    def _to_transaction(self, raw: dict[str, Any], chain: str) -> NormalizedTransaction:
        tx = NormalizedTransaction(
            hash=raw.get("hash") or "",
            nonce=str(raw.get("nonce") or "0"),
            transaction_index=str(raw.get("transaction_index") or "0"),
            from_address=(raw.get("from_address") or "").lower(),
            to_address=raw["to_address"].lower() if raw.get("to_address") else None,
            value=str(raw.get("value") or "0"),
            gas=str(raw.get("gas") or "0"),
            gas_price=str(raw.get("gas_price") or "0"),
            input=raw.get("input") or "0x",
            receipt_status=ReceiptStatus.from_raw(raw.get("receipt_status")),
            receipt_cumulative_gas_used=str(raw.get("receipt_cumulative_gas_used") or "0"),
            receipt_gas_used=str(raw.get("receipt_gas_used") or "0"),
            receipt_contract_address=raw.get("receipt_contract_address") or None,
            block_number=str(raw.get("block_number") or "0"),
            block_hash=raw.get("block_hash") or "",
            block_timestamp=parse_timestamp(raw.get("block_timestamp")),
        )
        return self._tag(tx, chain)

    @staticmethod
    def _to_token_transfer(raw: dict[str, Any]) -> TokenTransfer:
        return TokenTransfer(
            address=(raw.get("address") or "").lower(),
            from_address=(raw.get("from_address") or "").lower(),
            to_address=(raw.get("to_address") or "").lower(),
            value=str(raw.get("value") or "0"),
            token_symbol=raw.get("token_symbol") or "Unknown",
            token_name=raw.get("token_name"),
            token_decimals=str(raw.get("token_decimals") or "18"),
            transaction_hash=raw.get("transaction_hash"),
            block_number=str(raw["block_number"]) if raw.get("block_number") else None,
            block_timestamp=parse_timestamp(raw.get("block_timestamp")),
            block_hash=raw.get("block_hash"),
            log_index=str(raw["log_index"]) if raw.get("log_index") is not None else None,
        )

    @staticmethod
    def _to_nft_transfer(raw: dict[str, Any]) -> NFTTransfer:
        contract_type = str(raw.get("contract_type") or "ERC721").upper()
        return NFTTransfer(
            token_address=(raw.get("token_address") or "").lower(),
            token_id=str(raw.get("token_id") or "0"),
            from_address=(raw.get("from_address") or "").lower(),
            to_address=(raw.get("to_address") or "").lower(),
            amount=str(raw.get("amount") or "1"),
            contract_type=NftStandard.ERC1155 if contract_type == "ERC1155" else NftStandard.ERC721,
            token_symbol=raw.get("token_symbol"),
            token_name=raw.get("token_name"),
            transaction_hash=raw.get("transaction_hash"),
        )


def _to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal(0)
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal(0)
