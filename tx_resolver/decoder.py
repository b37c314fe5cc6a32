"""
Log Decoder - rebuild token and NFT transfers from raw receipt logs.

Recognized events:
- ``Transfer(address,address,uint256)`` with 3 topics: fungible transfer
- ``Transfer(address,address,uint256)`` with 4 topics: ERC-721 transfer
- ``TransferSingle`` (ERC-1155)
- ``TransferBatch`` (ERC-1155), ABI-decoded with eth_abi

Anything else, or anything malformed, is skipped without stopping the pass.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError

from tx_resolver.codec import hex_to_dec, hex_to_int
from tx_resolver.exceptions import DecodeError
from tx_resolver.models import NFTTransfer, NftStandard, TokenTransfer


logger = logging.getLogger(__name__)


TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
ERC1155_SINGLE_TOPIC = "0xc3d58168c5ae7397731d063d5bbf3d657854427343f4c083240f7aacaa2d0f62"
ERC1155_BATCH_TOPIC = "0x4a39dc06d4c0dbc64b70af90fd698a233a518aa5d07e595d983b8c0526c8f7fb"

SYMBOL_SELECTOR = "0x95d89b41"    # symbol()
DECIMALS_SELECTOR = "0x313ce567"  # decimals()

UNKNOWN_SYMBOL = "Unknown"
DEFAULT_DECIMALS = "18"

WORD_HEX = 64

# (method, params) -> JSON-RPC result or None
RpcCall = Callable[[str, list], Awaitable[Any]]


@dataclass
class TokenMetadata:
    """Symbol and decimals for one token contract."""
    symbol: str = UNKNOWN_SYMBOL
    decimals: str = DEFAULT_DECIMALS


@dataclass
class DecodedTransfers:
    """Transfers recovered from one receipt, in log order."""
    token_transfers: list[TokenTransfer] = field(default_factory=list)
    nft_transfers: list[NFTTransfer] = field(default_factory=list)


class TokenMetadataReader(Protocol):
    """Anything that can look up token metadata for a contract."""

    async def read(self, contract: str) -> TokenMetadata:
        ...


def decode_symbol(result: Any) -> str:
    """
    Decode a ``symbol()`` return value.

    Keeps printable ASCII bytes, then restricts to ``[A-Za-z0-9$]``. Works
    for both ABI-encoded strings and legacy bytes32 symbols.
    """
    if not isinstance(result, str) or result in ("", "0x", "0X"):
        return UNKNOWN_SYMBOL
    text = result[2:] if result.lower().startswith("0x") else result
    try:
        raw = bytes.fromhex(text if len(text) % 2 == 0 else text[:-1])
    except ValueError:
        return UNKNOWN_SYMBOL

    printable = "".join(chr(b) for b in raw if 32 <= b <= 126)
    cleaned = "".join(c for c in printable if c.isascii() and (c.isalnum() or c == "$"))
    return cleaned or UNKNOWN_SYMBOL


def decode_decimals(result: Any) -> str:
    """Decode a ``decimals()`` return value, defaulting to 18."""
    if not isinstance(result, str) or result in ("", "0x", "0X"):
        return DEFAULT_DECIMALS
    try:
        value = hex_to_int(result)
    except ValueError:
        return DEFAULT_DECIMALS
    # uint8 on every sane token
    if value < 0 or value > 255:
        return DEFAULT_DECIMALS
    return str(value)


class RpcTokenMetadataReader:
    """Reads symbol/decimals with two concurrent ``eth_call``s."""

    def __init__(self, call: RpcCall) -> None:
        self._call = call

    async def read(self, contract: str) -> TokenMetadata:
        symbol_result, decimals_result = await asyncio.gather(
            self._call("eth_call", [{"to": contract, "data": SYMBOL_SELECTOR}, "latest"]),
            self._call("eth_call", [{"to": contract, "data": DECIMALS_SELECTOR}, "latest"]),
            return_exceptions=True,
        )
        if isinstance(symbol_result, Exception):
            logger.debug(f"symbol() failed for {contract}: {symbol_result}")
            symbol_result = None
        if isinstance(decimals_result, Exception):
            logger.debug(f"decimals() failed for {contract}: {decimals_result}")
            decimals_result = None

        return TokenMetadata(
            symbol=decode_symbol(symbol_result),
            decimals=decode_decimals(decimals_result),
        )


def _topic_address(topic: str) -> str:
    """Lower 20 bytes of a 32-byte topic as a 0x address."""
    if not isinstance(topic, str) or len(topic) < 40:
        raise DecodeError("Topic too short for an address", raw_data=topic, field_name="topics")
    return "0x" + topic[-40:].lower()


def _data_hex(log: dict[str, Any]) -> str:
    data = log.get("data") or ""
    if not isinstance(data, str):
        raise DecodeError("Log data is not a hex string", raw_data=log, field_name="data")
    return data[2:] if data.lower().startswith("0x") else data


class LogDecoder:
    """
    Turns receipt logs into ``DecodedTransfers``.

    Token metadata is looked up lazily, once per contract per ``decode()``
    call. Without a metadata reader every token gets "Unknown"/"18".
    """

    def __init__(self, metadata_reader: Optional[TokenMetadataReader] = None) -> None:
        self._metadata_reader = metadata_reader

    async def decode(self, logs: Optional[list[dict[str, Any]]]) -> DecodedTransfers:
        """Decode a receipt's logs. Never raises for bad individual logs."""
        result = DecodedTransfers()
        if not isinstance(logs, list):
            return result

        memo: dict[str, TokenMetadata] = {}

        for index, log in enumerate(logs):
            if not isinstance(log, dict):
                continue
            topics = log.get("topics")
            if not topics or not isinstance(topics, list):
                continue

            topic0 = str(topics[0]).lower()
            try:
                if topic0 == TRANSFER_TOPIC and len(topics) == 3:
                    result.token_transfers.append(await self._fungible(log, topics, memo))
                elif topic0 == TRANSFER_TOPIC and len(topics) == 4:
                    result.nft_transfers.append(await self._erc721(log, topics, memo))
                elif topic0 == ERC1155_SINGLE_TOPIC and len(topics) == 4:
                    result.nft_transfers.append(self._erc1155_single(log, topics))
                elif topic0 == ERC1155_BATCH_TOPIC and len(topics) == 4:
                    result.nft_transfers.extend(self._erc1155_batch(log, topics))
            except DecodeError as e:
                logger.debug(f"Skipping log #{index}: {e}")

        return result

    async def _metadata(self, contract: str, memo: dict[str, TokenMetadata]) -> TokenMetadata:
        key = contract.lower()
        if key not in memo:
            if self._metadata_reader is None:
                memo[key] = TokenMetadata()
            else:
                memo[key] = await self._metadata_reader.read(contract)
        return memo[key]

    async def _fungible(
        self,
        log: dict[str, Any],
        topics: list[str],
        memo: dict[str, TokenMetadata],
    ) -> TokenTransfer:
        data = _data_hex(log)
        if len(data) < WORD_HEX:
            raise DecodeError("Transfer data shorter than one word", raw_data=log, field_name="data")
        try:
            value = str(int(data[:WORD_HEX], 16))
        except ValueError as e:
            raise DecodeError("Transfer value is not hex", raw_data=log, field_name="data", original_error=e)

        contract = str(log.get("address") or "").lower()
        meta = await self._metadata(contract, memo)

        return TokenTransfer(
            address=contract,
            from_address=_topic_address(topics[1]),
            to_address=_topic_address(topics[2]),
            value=value,
            token_symbol=meta.symbol,
            token_name=meta.symbol,
            token_decimals=meta.decimals,
            transaction_hash=log.get("transactionHash"),
            block_number=hex_to_dec(log.get("blockNumber")) if log.get("blockNumber") else None,
            block_hash=log.get("blockHash"),
            log_index=hex_to_dec(log.get("logIndex")) if log.get("logIndex") else None,
        )

    async def _erc721(
        self,
        log: dict[str, Any],
        topics: list[str],
        memo: dict[str, TokenMetadata],
    ) -> NFTTransfer:
        try:
            token_id = str(hex_to_int(topics[3]))
        except ValueError as e:
            raise DecodeError("Token id is not hex", raw_data=log, field_name="topics", original_error=e)

        contract = str(log.get("address") or "").lower()
        meta = await self._metadata(contract, memo)

        return NFTTransfer(
            token_address=contract,
            token_id=token_id,
            from_address=_topic_address(topics[1]),
            to_address=_topic_address(topics[2]),
            amount="1",
            contract_type=NftStandard.ERC721,
            token_symbol=meta.symbol,
            transaction_hash=log.get("transactionHash"),
        )

    def _erc1155_single(self, log: dict[str, Any], topics: list[str]) -> NFTTransfer:
        # topics[1] is the operator
        data = _data_hex(log)
        if len(data) < 2 * WORD_HEX:
            raise DecodeError("TransferSingle data shorter than two words", raw_data=log, field_name="data")
        try:
            token_id = str(int(data[:WORD_HEX], 16))
            amount = str(int(data[WORD_HEX:2 * WORD_HEX], 16))
        except ValueError as e:
            raise DecodeError("TransferSingle data is not hex", raw_data=log, field_name="data", original_error=e)

        return NFTTransfer(
            token_address=str(log.get("address") or "").lower(),
            token_id=token_id,
            from_address=_topic_address(topics[2]),
            to_address=_topic_address(topics[3]),
            amount=amount,
            contract_type=NftStandard.ERC1155,
            transaction_hash=log.get("transactionHash"),
        )

    def _erc1155_batch(self, log: dict[str, Any], topics: list[str]) -> list[NFTTransfer]:
        try:
            ids, amounts = abi_decode(["uint256[]", "uint256[]"], bytes.fromhex(_data_hex(log)))
        except (DecodingError, ValueError) as e:
            raise DecodeError("TransferBatch data not ABI-decodable", raw_data=log, field_name="data", original_error=e)

        if len(ids) != len(amounts):
            raise DecodeError("TransferBatch ids/values length mismatch", raw_data=log, field_name="data")

        contract = str(log.get("address") or "").lower()
        from_address = _topic_address(topics[2])
        to_address = _topic_address(topics[3])

        return [
            NFTTransfer(
                token_address=contract,
                token_id=str(token_id),
                from_address=from_address,
                to_address=to_address,
                amount=str(amount),
                contract_type=NftStandard.ERC1155,
                transaction_hash=log.get("transactionHash"),
            )
            for token_id, amount in zip(ids, amounts)
        ]
