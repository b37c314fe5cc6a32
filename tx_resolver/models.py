"""
Resolver Data Models - normalized transactions, requests and tagged results.

The ``to_dict()`` methods produce the wire shape handed to the LLM tool
layer: indexer-style snake_case payload fields plus underscore-prefixed
metadata keys.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Optional


ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")
TX_HASH_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")

ALL_CHAINS = "all"
MULTI_CHAIN_LABEL = "Multi-Chain"


class ProviderKind(Enum):
    """Closed set of upstream data sources."""
    MORALIS = "moralis"        # hosted indexer
    ETHERSCAN = "etherscan"    # block explorer
    RPC = "rpc"                # direct node

    @classmethod
    def parse(cls, value: Any, default: "ProviderKind" = None) -> "ProviderKind":
        """Case-insensitive lookup; None/empty gives the default (moralis)."""
        if isinstance(value, cls):
            return value
        if value is None or str(value).strip() == "":
            return default or cls.MORALIS
        text = str(value).strip().lower()
        for kind in cls:
            if kind.value == text:
                return kind
        raise ValueError(
            f"Unknown provider '{value}', expected one of "
            f"{', '.join(k.value for k in cls)}"
        )


class Operation(Enum):
    """Capabilities a provider adapter may declare."""
    WALLET_TRANSACTIONS = "wallet_transactions"
    TOKEN_TRANSFERS = "token_transfers"
    TRANSACTION = "transaction"
    TRANSACTION_TOKEN_TRANSFERS = "transaction_token_transfers"
    TRANSACTION_NFT_TRANSFERS = "transaction_nft_transfers"
    INTERNAL_TRANSFERS = "internal_transfers"
    NATIVE_PRICE = "native_price"
    TOKEN_PRICE = "token_price"
    MULTI_CHAIN_SCAN = "multi_chain_scan"


class ProviderStatus(Enum):
    """Health status of a provider adapter."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class ReceiptStatus(Enum):
    """Execution outcome of a transaction."""
    SUCCESS = "1"
    FAILED = "0"
    UNKNOWN = ""

    @classmethod
    def from_raw(cls, value: Any) -> "ReceiptStatus":
        """Map "1"/"0"/"0x1"/1/None onto a status."""
        if value is None or value == "":
            return cls.UNKNOWN
        text = str(value).strip().lower()
        if text in ("1", "0x1", "true", "success"):
            return cls.SUCCESS
        if text in ("0", "0x0", "false", "failed"):
            return cls.FAILED
        return cls.UNKNOWN


class NftStandard(Enum):
    """Contract standard of an NFT transfer."""
    ERC721 = "ERC721"
    ERC1155 = "ERC1155"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat().replace("+00:00", "Z") if value else None


def _num(value: Optional[Decimal]) -> Optional[float]:
    # Prices are display-only; base-unit values never go through here
    return float(value) if value is not None else None


# ─────────────────────────────────────────────────────────────
# Chain & provider descriptors
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ChainDescriptor:
    """One supported network. Immutable, loaded once."""
    chain_id: str
    display_name: str
    aliases: tuple[str, ...] = ()
    rpc_urls: tuple[str, ...] = ()
    wrapped_native: Optional[str] = None
    native_symbol: str = "ETH"

    @property
    def numeric_id(self) -> int:
        """Decimal EVM chain id (block explorers want this form)."""
        return int(self.chain_id, 16)


@dataclass
class ProviderHealth:
    """Health status of a provider adapter."""
    status: ProviderStatus
    last_check: datetime
    latency_ms: Optional[float] = None
    error_count: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    consecutive_failures: int = 0
    requests_made: int = 0

    def is_healthy(self) -> bool:
        """Check if provider is operational."""
        return self.status == ProviderStatus.HEALTHY

    def is_usable(self) -> bool:
        """Check if provider can still be used."""
        return self.status in (
            ProviderStatus.HEALTHY,
            ProviderStatus.DEGRADED,
            ProviderStatus.UNKNOWN,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "latency_ms": self.latency_ms,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "consecutive_failures": self.consecutive_failures,
            "requests_made": self.requests_made,
        }


@dataclass
class ProviderMetadata:
    """Metadata about a provider adapter."""
    name: str
    display_name: str
    kind: ProviderKind
    supported_operations: frozenset[Operation]
    requires_api_key: bool = False
    base_url: str = ""
    documentation_url: str = ""
    priority: int = 0

    def supports(self, operation: Operation) -> bool:
        """Check if operation is supported."""
        return operation in self.supported_operations

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "display_name": self.display_name,
            "kind": self.kind.value,
            "supported_operations": sorted(op.value for op in self.supported_operations),
            "requires_api_key": self.requires_api_key,
            "base_url": self.base_url,
            "documentation_url": self.documentation_url,
            "priority": self.priority,
        }


# ─────────────────────────────────────────────────────────────
# Transfers & transactions
# ─────────────────────────────────────────────────────────────

@dataclass
class TokenTransfer:
    """Fungible (ERC-20 style) value movement, value in base units."""
    address: str
    from_address: str
    to_address: str
    value: str
    token_symbol: Optional[str] = None
    token_name: Optional[str] = None
    token_decimals: str = "18"
    transaction_hash: Optional[str] = None
    block_number: Optional[str] = None
    block_timestamp: Optional[datetime] = None
    block_hash: Optional[str] = None
    log_index: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "address": self.address,
            "from_address": self.from_address,
            "to_address": self.to_address,
            "value": self.value,
            "token_symbol": self.token_symbol,
            "token_name": self.token_name,
            "token_decimals": self.token_decimals,
            "transaction_hash": self.transaction_hash,
            "block_number": self.block_number,
            "block_timestamp": _iso(self.block_timestamp),
            "block_hash": self.block_hash,
            "log_index": self.log_index,
        }


@dataclass
class NFTTransfer:
    """ERC-721 / ERC-1155 token movement."""
    token_address: str
    token_id: str
    from_address: str
    to_address: str
    amount: str = "1"
    contract_type: NftStandard = NftStandard.ERC721
    token_symbol: Optional[str] = None
    token_name: Optional[str] = None
    transaction_hash: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "token_address": self.token_address,
            "token_id": self.token_id,
            "from_address": self.from_address,
            "to_address": self.to_address,
            "amount": self.amount,
            "contract_type": self.contract_type.value,
            "token_symbol": self.token_symbol,
            "token_name": self.token_name,
            "transaction_hash": self.transaction_hash,
        }


@dataclass
class InternalTransfer:
    """Value movement from a contract call trace."""
    from_address: str
    to_address: Optional[str]
    value: str
    call_type: str = "call"
    gas: str = "0"
    gas_used: str = "0"
    is_error: bool = False
    trace_id: Optional[str] = None
    contract_address: Optional[str] = None
    transaction_hash: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "from": self.from_address,
            "to": self.to_address,
            "value": self.value,
            "type": self.call_type,
            "gas": self.gas,
            "gasUsed": self.gas_used,
            "isError": "1" if self.is_error else "0",
            "traceId": self.trace_id,
            "contractAddress": self.contract_address,
            "hash": self.transaction_hash,
        }


@dataclass
class NormalizedTransaction:
    """
    One transaction in the canonical shape shared by every provider.

    Attached transfer lists are ``None`` when the source did not provide
    them and ``[]`` when it did and found nothing; enrichment only fills
    the ``None`` ones. ``display_value`` / ``token_*`` hold what should be
    shown as the transaction's amount once a token transfer is promoted.
    """
    hash: str
    from_address: str = ""
    to_address: Optional[str] = None
    value: str = "0"
    nonce: str = "0"
    transaction_index: str = "0"
    gas: str = "0"
    gas_price: str = "0"
    input: str = "0x"
    receipt_status: ReceiptStatus = ReceiptStatus.UNKNOWN
    receipt_cumulative_gas_used: str = "0"
    receipt_gas_used: str = "0"
    receipt_contract_address: Optional[str] = None
    block_number: str = "0"
    block_hash: str = ""
    block_timestamp: Optional[datetime] = None

    token_transfers: Optional[list[TokenTransfer]] = None
    nft_transfers: Optional[list[NFTTransfer]] = None
    internal_transfers: Optional[list[InternalTransfer]] = None

    display_value: Optional[str] = None
    token_symbol: Optional[str] = None
    token_decimals: Optional[str] = None
    token_name: Optional[str] = None

    provider: Optional[str] = None
    chain_id: Optional[str] = None
    detected_chain: Optional[str] = None
    native_price: Optional[Decimal] = None
    token_price: Optional[Decimal] = None
    synthesized: bool = False

    def fee(self) -> str:
        """Gas fee paid, in native base units."""
        try:
            return str(int(self.receipt_gas_used or 0) * int(self.gas_price or 0))
        except ValueError:
            return "0"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (indexer-compatible wire shape)."""
        data: dict[str, Any] = {
            "hash": self.hash,
            "nonce": self.nonce,
            "transaction_index": self.transaction_index,
            "from_address": self.from_address,
            "to_address": self.to_address,
            "value": self.display_value if self.display_value is not None else self.value,
            "native_value": self.value,
            "gas": self.gas,
            "gas_price": self.gas_price,
            "input": self.input,
            "receipt_cumulative_gas_used": self.receipt_cumulative_gas_used,
            "receipt_gas_used": self.receipt_gas_used,
            "transaction_fee": self.fee(),
            "receipt_contract_address": self.receipt_contract_address,
            "receipt_status": self.receipt_status.value,
            "block_timestamp": _iso(self.block_timestamp),
            "block_number": self.block_number,
            "block_hash": self.block_hash,
            "token_symbol": self.token_symbol,
            "token_decimals": self.token_decimals,
            "token_name": self.token_name,
        }
        if self.token_transfers is not None:
            data["erc20_transfers"] = [t.to_dict() for t in self.token_transfers]
        if self.nft_transfers is not None:
            data["nft_transfers"] = [t.to_dict() for t in self.nft_transfers]
        if self.internal_transfers is not None:
            data["internal_transfers"] = [t.to_dict() for t in self.internal_transfers]
        if self.provider:
            data["_provider"] = self.provider
        if self.detected_chain:
            data["_detected_chain"] = self.detected_chain
            data["_chain"] = self.detected_chain
        if self.native_price is not None:
            data["_nativePrice"] = _num(self.native_price)
        if self.token_price is not None:
            data["_tokenPrice"] = _num(self.token_price)
        if self.synthesized:
            data["_synthesized"] = True
        return data


# ─────────────────────────────────────────────────────────────
# Requests
# ─────────────────────────────────────────────────────────────

@dataclass
class DateRange:
    """Inclusive calendar-day bounds for wallet history."""
    from_date: Optional[date] = None
    to_date: Optional[date] = None

    @classmethod
    def parse(cls, from_date: Optional[str], to_date: Optional[str]) -> Optional["DateRange"]:
        """Build from 'YYYY-MM-DD' strings; None when both are empty."""
        if not from_date and not to_date:
            return None
        return cls(
            from_date=date.fromisoformat(from_date) if from_date else None,
            to_date=date.fromisoformat(to_date) if to_date else None,
        )

    def contains(self, moment: Optional[datetime]) -> bool:
        """Check if a timestamp falls in range (unknown timestamps pass)."""
        if moment is None:
            return True
        day = moment.date()
        if self.from_date and day < self.from_date:
            return False
        if self.to_date and day > self.to_date:
            return False
        return True


@dataclass
class ResultFilters:
    """Filters echoed to the consumer, never applied by the resolver."""
    from_date: Optional[str] = None
    to_date: Optional[str] = None
    direction: Optional[str] = None
    stablecoins_only: Optional[bool] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "from": self.from_date,
            "to": self.to_date,
            "direction": self.direction,
            "stablecoinsOnly": self.stablecoins_only,
        }


def _validate_limit(limit: int) -> None:
    if not isinstance(limit, int) or isinstance(limit, bool) or limit < 1:
        raise ValueError("limit must be a positive integer")


@dataclass
class WalletHistoryRequest:
    """Wallet history on one chain or on every chain in the scan list."""
    address: str
    chain: str = "0x1"
    limit: int = 50
    date_range: Optional[DateRange] = None
    direction: Optional[str] = None
    stablecoins_only: Optional[bool] = None
    provider: ProviderKind = ProviderKind.MORALIS

    def validate(self) -> None:
        """Validate request parameters."""
        if not isinstance(self.address, str) or not ADDRESS_PATTERN.match(self.address):
            raise ValueError(f"Invalid wallet address: {self.address}")
        _validate_limit(self.limit)
        if self.direction and str(self.direction).lower() not in ("in", "out", "all"):
            raise ValueError("direction must be 'in', 'out' or 'all'")

    @property
    def is_multi_chain(self) -> bool:
        return self.chain == ALL_CHAINS

    def filters(self) -> ResultFilters:
        return ResultFilters(
            from_date=self.date_range.from_date.isoformat()
            if self.date_range and self.date_range.from_date else None,
            to_date=self.date_range.to_date.isoformat()
            if self.date_range and self.date_range.to_date else None,
            direction=self.direction,
            stablecoins_only=self.stablecoins_only,
        )


@dataclass
class TokenTransfersRequest:
    """ERC-20 transfers touching a wallet on one chain."""
    address: str
    chain: str = "0x1"
    limit: int = 20

    def validate(self) -> None:
        """Validate request parameters."""
        if not isinstance(self.address, str) or not ADDRESS_PATTERN.match(self.address):
            raise ValueError(f"Invalid wallet address: {self.address}")
        _validate_limit(self.limit)
        if self.chain == ALL_CHAINS:
            raise ValueError("Token transfers are fetched one chain at a time")


@dataclass
class TransactionLookupRequest:
    """Single transaction by hash, chain optional."""
    hash: str
    chain: Optional[str] = None
    provider: ProviderKind = ProviderKind.MORALIS

    def validate(self) -> None:
        """Validate request parameters."""
        if not isinstance(self.hash, str) or not TX_HASH_PATTERN.match(self.hash):
            raise ValueError(f"Invalid transaction hash: {self.hash}")
        if self.chain == ALL_CHAINS:
            raise ValueError("Omit chain instead of 'all' to search every chain")


# ─────────────────────────────────────────────────────────────
# Results (tagged variants)
# ─────────────────────────────────────────────────────────────

class ResolutionResult:
    """Base for the tagged result variants."""
    kind: ClassVar[str] = "result"

    @property
    def is_error(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        raise NotImplementedError


@dataclass
class WalletHistoryResult(ResolutionResult):
    """Merged wallet history for one chain or the multi-chain aggregate."""
    kind: ClassVar[str] = "wallet_history"

    transactions: list[NormalizedTransaction]
    searched_address: str
    chain_label: str
    price_map: dict[str, Decimal] = field(default_factory=dict)
    native_price: Optional[Decimal] = None
    filters: ResultFilters = field(default_factory=ResultFilters)
    provider: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data: dict[str, Any] = {
            "transactions": [tx.to_dict() for tx in self.transactions],
            "_chain": self.chain_label,
            "_searchedAddress": self.searched_address,
            "_priceMap": {name: _num(price) for name, price in self.price_map.items()},
            "_filters": self.filters.to_dict(),
        }
        if self.native_price is not None:
            data["_nativePrice"] = _num(self.native_price)
        if self.provider:
            data["_provider"] = self.provider
        return data


@dataclass
class TokenTransferResult(ResolutionResult):
    """Token transfer list for one wallet on one chain."""
    kind: ClassVar[str] = "token_transfers"

    transfers: list[TokenTransfer]
    searched_address: str
    chain_label: str
    provider: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data: dict[str, Any] = {
            "transfers": [t.to_dict() for t in self.transfers],
            "_chain": self.chain_label,
            "_searchedAddress": self.searched_address,
        }
        if self.provider:
            data["_provider"] = self.provider
        return data


@dataclass
class SingleTransactionResult(ResolutionResult):
    """One resolved and enriched transaction."""
    kind: ClassVar[str] = "transaction"

    transaction: NormalizedTransaction
    searched_hash: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = self.transaction.to_dict()
        data["_searchedAddress"] = self.searched_hash
        return data


@dataclass
class ErrorResult(ResolutionResult):
    """Short bottom-line failure message for the caller."""
    kind: ClassVar[str] = "error"

    message: str
    operation: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"error": self.message}


@dataclass
class CacheEntry:
    """Cache entry for a resolution result."""
    data: ResolutionResult
    created_at: datetime
    expires_at: datetime
    hits: int = 0

    def is_expired(self, now: datetime) -> bool:
        """Check if cache entry is expired."""
        return now > self.expires_at

    def age_seconds(self, now: datetime) -> float:
        """Get age of cache entry in seconds."""
        return (now - self.created_at).total_seconds()
