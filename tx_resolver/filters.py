"""
Downstream filters for wallet history results.

The resolver only echoes direction / stablecoin / date filters back to the
caller. These helpers are what a consumer applies with them.
"""

from dataclasses import replace
from datetime import date
from typing import Optional

from tx_resolver.models import NormalizedTransaction, WalletHistoryResult


STABLECOINS = frozenset({
    "USDT", "USDC", "DAI", "BUSD", "FDUSD", "TUSD",
    "USDP", "USDD", "USDE", "PYUSD", "GUSD", "FRAX", "LUSD",
})


def is_outgoing(tx: NormalizedTransaction, address: str) -> bool:
    return bool(tx.from_address) and tx.from_address.lower() == address.lower()


def filter_direction(
    transactions: list[NormalizedTransaction],
    address: str,
    direction: Optional[str],
) -> list[NormalizedTransaction]:
    """Keep "in" or "out" transactions relative to ``address``; "all"/None keeps everything."""
    if not direction or direction.lower() == "all":
        return list(transactions)
    want_out = direction.lower() == "out"
    return [tx for tx in transactions if is_outgoing(tx, address) == want_out]


def is_stablecoin(tx: NormalizedTransaction) -> bool:
    return (tx.token_symbol or "").upper() in STABLECOINS


def filter_stablecoins(transactions: list[NormalizedTransaction]) -> list[NormalizedTransaction]:
    """Keep transactions whose displayed asset is a known stablecoin."""
    return [tx for tx in transactions if is_stablecoin(tx)]


def filter_dates(
    transactions: list[NormalizedTransaction],
    from_date: Optional[str] = None,
    to_date: Optional[str] = None,
) -> list[NormalizedTransaction]:
    """Inclusive calendar-day bounds; transactions without a timestamp are kept."""
    start = date.fromisoformat(from_date) if from_date else None
    end = date.fromisoformat(to_date) if to_date else None

    def keep(tx: NormalizedTransaction) -> bool:
        if tx.block_timestamp is None:
            return True
        day = tx.block_timestamp.date()
        return (start is None or day >= start) and (end is None or day <= end)

    return [tx for tx in transactions if keep(tx)]


def apply_filters(result: WalletHistoryResult) -> WalletHistoryResult:
    """Apply a result's echoed filters, returning a new result."""
    filters = result.filters
    transactions = filter_dates(result.transactions, filters.from_date, filters.to_date)
    transactions = filter_direction(transactions, result.searched_address, filters.direction)
    if filters.stablecoins_only:
        transactions = filter_stablecoins(transactions)
    return replace(result, transactions=transactions)
