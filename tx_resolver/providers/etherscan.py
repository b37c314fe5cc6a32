"""
Etherscan Provider Adapter - unified multi-chain V2 API.

One endpoint for every chain, selected with ``chainid`` (decimal). Two
response styles come back from it:
- "account" actions (txlist, tokentx, txlistinternal): decimal strings
  wrapped in {"status", "message", "result"}
- "proxy" actions (eth_getTransactionByHash, ...): JSON-RPC objects with
  hex quantities
"""

import logging
from typing import Any, Optional

import aiohttp

from tx_resolver.chains import ChainRegistry
from tx_resolver.codec import parse_timestamp
from tx_resolver.decoder import LogDecoder, RpcTokenMetadataReader
from tx_resolver.exceptions import (
    AuthenticationError,
    ChainNotSupportedError,
    ProviderError,
    RateLimitError,
    TransientNetworkError,
)
from tx_resolver.models import (
    DateRange,
    InternalTransfer,
    NormalizedTransaction,
    Operation,
    ProviderKind,
    ProviderMetadata,
    ReceiptStatus,
    TokenTransfer,
)
from tx_resolver.providers.base import BaseProviderAdapter, transaction_from_rpc


logger = logging.getLogger(__name__)


NO_TRANSACTIONS = "No transactions found"


class EtherscanAdapter(BaseProviderAdapter):
    """
    Etherscan V2 block-explorer adapter.

    Supports wallet history, token transfers, hash lookup (with receipt
    logs decoded locally) and internal transfers. No price endpoint.
    """

    V2_API_URL = "https://api.etherscan.io/v2/api"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = V2_API_URL,
        timeout: float = 30.0,
        chains: Optional[ChainRegistry] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(api_key, timeout, chains, session)
        self._base_url = base_url

    @property
    def kind(self) -> ProviderKind:
        return ProviderKind.ETHERSCAN

    @property
    def name(self) -> str:
        return "Etherscan"

    def metadata(self) -> ProviderMetadata:
        """Return adapter metadata."""
        return ProviderMetadata(
            name=self.name,
            display_name="Etherscan",
            kind=self.kind,
            supported_operations=frozenset({
                Operation.WALLET_TRANSACTIONS,
                Operation.TOKEN_TRANSFERS,
                Operation.TRANSACTION,
                Operation.INTERNAL_TRANSFERS,
                Operation.MULTI_CHAIN_SCAN,
            }),
            requires_api_key=True,
            base_url=self._base_url,
            documentation_url="https://docs.etherscan.io/",
            priority=2,
        )

    def _get_chain_id(self, chain: str) -> int:
        """Decimal chain id for the V2 ``chainid`` parameter."""
        descriptor = self._chains.resolve(chain)
        if descriptor is not None:
            return descriptor.numeric_id
        try:
            return int(chain, 16)
        except (TypeError, ValueError):
            raise ChainNotSupportedError(
                message=f"Chain {chain} cannot be addressed by Etherscan",
                provider=self.name,
                chain=chain,
                supported_chains=self._chains.list_chains(),
            )

    async def _make_etherscan_request(
        self,
        chain: str,
        params: dict[str, Any],
    ) -> Any:
        """Make Etherscan V2 API request with result unwrapping."""
        self.ensure_configured()
        query = {
            "chainid": str(self._get_chain_id(chain)),
            "apikey": self._api_key,
            **params,
        }
        response = await self._request_with_retry("GET", self._base_url, params=query)

        if not isinstance(response, dict):
            raise ProviderError(
                message="Unexpected Etherscan response",
                provider=self.name,
                chain=chain,
                response_body=str(response)[:500],
            )

        # Proxy endpoints answer in JSON-RPC form
        if "jsonrpc" in response:
            if "error" in response:
                error = response.get("error") or {}
                message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
                raise ProviderError(
                    message=f"Etherscan API error: {message}",
                    provider=self.name,
                    chain=chain,
                    response_body=str(response)[:500],
                )
            return response.get("result")

        status = str(response.get("status", "0"))
        message = response.get("message") or ""
        result = response.get("result")

        if status == "1":
            return result

        if message == NO_TRANSACTIONS:
            return []

        # Errors come back as status "0" with the detail in "result"
        detail = result if isinstance(result, str) and result else message
        lowered = detail.lower()

        if "rate limit" in lowered or "max rate" in lowered:
            raise RateLimitError(
                message="Etherscan rate limit exceeded",
                provider=self.name,
                chain=chain,
                retry_after_seconds=1,
                response_body=str(response)[:500],
            )

        if "api key" in lowered or "apikey" in lowered:
            raise AuthenticationError(
                message=f"Etherscan API error: {detail}",
                provider=self.name,
                chain=chain,
                response_body=str(response)[:500],
            )

        if status == "0" and message not in ("OK", ""):
            raise ProviderError(
                message=f"Etherscan API error: {detail}",
                provider=self.name,
                chain=chain,
                response_body=str(response)[:500],
            )

        return result

    # ─────────────────────────────────────────────────────────────
    # Account-style actions
    # ─────────────────────────────────────────────────────────────

    async def list_wallet_transactions(
        self,
        address: str,
        chain: str,
        limit: int,
        date_range: Optional[DateRange] = None,
    ) -> list[NormalizedTransaction]:
        """Native transactions, newest first. Date range is applied locally."""
        result = await self._make_etherscan_request(chain, {
            "module": "account",
            "action": "txlist",
            "address": address,
            "startblock": "0",
            "endblock": "99999999",
            "page": "1",
            "offset": str(limit),
            "sort": "desc",
        })
        native_symbol = self._chains.native_symbol(chain)

        transactions = []
        for raw in result if isinstance(result, list) else []:
            tx = self._to_transaction(raw, chain)
            if date_range and not date_range.contains(tx.block_timestamp):
                continue
            tx.token_symbol = native_symbol
            tx.token_decimals = "18"
            transactions.append(tx)
        return transactions[:limit]

    async def list_token_transfers(self, address: str, chain: str, limit: int) -> list[TokenTransfer]:
        result = await self._make_etherscan_request(chain, {
            "module": "account",
            "action": "tokentx",
            "address": address,
            "page": "1",
            "offset": str(limit),
            "sort": "desc",
        })
        return [self._to_token_transfer(raw) for raw in (result if isinstance(result, list) else [])][:limit]

    async def get_internal_transfers(self, tx_hash: str, chain: str) -> list[InternalTransfer]:
        """Trace-level value movements inside one transaction."""
        result = await self._make_etherscan_request(chain, {
            "module": "account",
            "action": "txlistinternal",
            "txhash": tx_hash,
        })
        return [
            self._to_internal_transfer(raw, tx_hash)
            for raw in (result if isinstance(result, list) else [])
        ]

    # ─────────────────────────────────────────────────────────────
    # Proxy-style actions
    # ─────────────────────────────────────────────────────────────

    async def get_transaction(self, tx_hash: str, chain: str) -> Optional[NormalizedTransaction]:
        """
        Hash lookup through the JSON-RPC proxy.

        Receipt and block are best-effort; receipt logs are decoded into
        token and NFT transfers.
        """
        tx = await self._make_etherscan_request(chain, {
            "module": "proxy",
            "action": "eth_getTransactionByHash",
            "txhash": tx_hash,
        })
        if not isinstance(tx, dict):
            return None

        receipt = await self._best_effort(chain, {
            "module": "proxy",
            "action": "eth_getTransactionReceipt",
            "txhash": tx_hash,
        })

        block = None
        if tx.get("blockNumber"):
            block = await self._best_effort(chain, {
                "module": "proxy",
                "action": "eth_getBlockByNumber",
                "tag": tx["blockNumber"],
                "boolean": "false",
            })

        normalized = transaction_from_rpc(tx, receipt, block)
        if receipt:
            decoder = LogDecoder(RpcTokenMetadataReader(self._proxy_caller(chain)))
            decoded = await decoder.decode(receipt.get("logs"))
            normalized.token_transfers = decoded.token_transfers
            normalized.nft_transfers = decoded.nft_transfers

        return self._tag(normalized, chain)

    async def _best_effort(self, chain: str, params: dict[str, Any]) -> Optional[dict[str, Any]]:
        """Secondary proxy call whose failure must not sink the lookup."""
        try:
            result = await self._make_etherscan_request(chain, params)
        except (RateLimitError, AuthenticationError):
            raise
        except (ProviderError, TransientNetworkError) as e:
            logger.warning(f"[{self.name}] {params['action']} failed on {chain}: {e}")
            return None
        return result if isinstance(result, dict) else None

    def _proxy_caller(self, chain: str):
        """Adapt the proxy ``eth_call`` action to the decoder's RPC callable."""

        async def call(method: str, params: list) -> Any:
            request, tag = params
            return await self._make_etherscan_request(chain, {
                "module": "proxy",
                "action": method,
                "to": request["to"],
                "data": request["data"],
                "tag": tag,
            })

        return call

    # ─────────────────────────────────────────────────────────────
    # Normalization
    # ─────────────────────────────────────────────────────────────

    def _to_transaction(self, raw: dict[str, Any], chain: str) -> NormalizedTransaction:
        status = raw.get("txreceipt_status")
        if status in (None, "") and raw.get("isError") == "1":
            status = "0"

        tx = NormalizedTransaction(
            hash=raw.get("hash") or "",
            nonce=str(raw.get("nonce") or "0"),
            transaction_index=str(raw.get("transactionIndex") or "0"),
            from_address=(raw.get("from") or "").lower(),
            to_address=raw["to"].lower() if raw.get("to") else None,
            value=str(raw.get("value") or "0"),
            gas=str(raw.get("gas") or "0"),
            gas_price=str(raw.get("gasPrice") or "0"),
            input=raw.get("input") or "0x",
            receipt_status=ReceiptStatus.from_raw(status),
            receipt_cumulative_gas_used=str(raw.get("cumulativeGasUsed") or "0"),
            receipt_gas_used=str(raw.get("gasUsed") or "0"),
            receipt_contract_address=raw.get("contractAddress") or None,
            block_number=str(raw.get("blockNumber") or "0"),
            block_hash=raw.get("blockHash") or "",
            block_timestamp=parse_timestamp(raw.get("timeStamp")),
        )
        return self._tag(tx, chain)

    @staticmethod
    def _to_token_transfer(raw: dict[str, Any]) -> TokenTransfer:
        return TokenTransfer(
            address=(raw.get("contractAddress") or "").lower(),
            from_address=(raw.get("from") or "").lower(),
            to_address=(raw.get("to") or "").lower(),
            value=str(raw.get("value") or "0"),
            token_symbol=raw.get("tokenSymbol") or "Unknown",
            token_name=raw.get("tokenName"),
            token_decimals=str(raw.get("tokenDecimal") or "18"),
            transaction_hash=raw.get("hash"),
            block_number=raw.get("blockNumber"),
            block_timestamp=parse_timestamp(raw.get("timeStamp")),
            block_hash=raw.get("blockHash"),
            log_index=raw.get("logIndex"),
        )

    @staticmethod
    def _to_internal_transfer(raw: dict[str, Any], tx_hash: str) -> InternalTransfer:
        return InternalTransfer(
            from_address=(raw.get("from") or "").lower(),
            to_address=raw["to"].lower() if raw.get("to") else None,
            value=str(raw.get("value") or "0"),
            call_type=raw.get("type") or "call",
            gas=str(raw.get("gas") or "0"),
            gas_used=str(raw.get("gasUsed") or "0"),
            is_error=str(raw.get("isError") or "0") == "1",
            trace_id=raw.get("traceId"),
            contract_address=raw.get("contractAddress") or None,
            transaction_hash=raw.get("hash") or tx_hash,
        )
