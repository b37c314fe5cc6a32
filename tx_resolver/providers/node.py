"""
Node RPC Provider Adapter - direct JSON-RPC against public endpoints.

No credential needed. Each chain has an ordered endpoint list; a miss,
timeout or error at one endpoint moves on to the next. Only hash lookup is
offered: scanning an address history through raw node calls is not
economical.
"""

import logging
from functools import partial
from typing import Any, Optional, Sequence

import aiohttp

from tx_resolver.chains import ChainRegistry
from tx_resolver.decoder import LogDecoder, RpcTokenMetadataReader
from tx_resolver.exceptions import ProviderError, ResolverError
from tx_resolver.models import (
    NormalizedTransaction,
    Operation,
    ProviderKind,
    ProviderMetadata,
)
from tx_resolver.providers.base import BaseProviderAdapter, transaction_from_rpc


logger = logging.getLogger(__name__)


class NodeRpcAdapter(BaseProviderAdapter):
    """Public-node adapter with per-endpoint failover."""

    DEFAULT_RPC_TIMEOUT = 6.0

    def __init__(
        self,
        rpc_timeout: float = DEFAULT_RPC_TIMEOUT,
        chains: Optional[ChainRegistry] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(None, rpc_timeout, chains, session)
        self._rpc_timeout = rpc_timeout
        self._request_id = 0

    @property
    def kind(self) -> ProviderKind:
        return ProviderKind.RPC

    @property
    def name(self) -> str:
        return "Public RPC"

    def metadata(self) -> ProviderMetadata:
        """Return adapter metadata."""
        return ProviderMetadata(
            name=self.name,
            display_name="Public RPC",
            kind=self.kind,
            supported_operations=frozenset({Operation.TRANSACTION}),
            requires_api_key=False,
            documentation_url="https://ethereum.org/en/developers/docs/apis/json-rpc/",
            priority=3,
        )

    async def _rpc_call(self, url: str, method: str, params: list) -> Any:
        """
        One JSON-RPC call against one endpoint.

        Returns the ``result`` member (None when absent). Raises
        TransientNetworkError on timeout/connection failure and
        ProviderError on an HTTP or JSON-RPC error.
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }
        response = await self._make_request(
            "POST",
            url,
            json_body=payload,
            headers={"Content-Type": "application/json"},
            timeout=self._rpc_timeout,
        )
        if not isinstance(response, dict):
            return None
        if response.get("error"):
            error = response["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise ProviderError(
                message=f"JSON-RPC error from {url}: {message}",
                provider=self.name,
                request_url=url,
            )
        return response.get("result")

    async def _optional_call(self, url: str, method: str, params: list) -> Any:
        """Secondary call (receipt, block): failure degrades to None."""
        try:
            return await self._rpc_call(url, method, params)
        except ResolverError as e:
            logger.debug(f"[{self.name}] {method} failed at {url}: {e}")
            return None

    async def get_transaction(self, tx_hash: str, chain: str) -> Optional[NormalizedTransaction]:
        """Try each endpoint of the chain in order; None when none has it."""
        endpoints = self._chains.endpoints(chain)
        if not endpoints:
            logger.debug(f"[{self.name}] No endpoints registered for {chain}")
            return None

        for url in endpoints:
            try:
                tx = await self._rpc_call(url, "eth_getTransactionByHash", [tx_hash])
            except ResolverError as e:
                self._on_error(e)
                logger.debug(f"[{self.name}] {url} failed, trying next endpoint: {e}")
                continue

            self._on_success()
            if not isinstance(tx, dict):
                logger.debug(f"[{self.name}] {tx_hash} not known to {url}")
                continue

            receipt = await self._optional_call(url, "eth_getTransactionReceipt", [tx_hash])
            block = None
            if tx.get("blockNumber"):
                block = await self._optional_call(url, "eth_getBlockByNumber", [tx["blockNumber"], False])

            normalized = transaction_from_rpc(
                tx,
                receipt if isinstance(receipt, dict) else None,
                block if isinstance(block, dict) else None,
            )
            if isinstance(receipt, dict):
                decoder = LogDecoder(RpcTokenMetadataReader(partial(self._rpc_call, url)))
                decoded = await decoder.decode(receipt.get("logs"))
                normalized.token_transfers = decoded.token_transfers
                normalized.nft_transfers = decoded.nft_transfers

            return self._tag(normalized, chain)

        return None

    async def find_transaction(
        self,
        tx_hash: str,
        chains: Optional[Sequence[str]] = None,
    ) -> Optional[NormalizedTransaction]:
        """Search chains one after another, stopping at the first hit."""
        for chain in chains if chains is not None else self._chains.node_search_order:
            tx = await self.get_transaction(tx_hash, chain)
            if tx is not None:
                logger.info(f"[{self.name}] Found {tx_hash} on {self._chains.display_name(chain)}")
                return tx
        return None
