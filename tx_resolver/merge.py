"""
Merge Engine - reconcile native transactions with token transfers.

Indexers and explorers list a wallet's native transactions and its token
transfers separately. A swap or contract-mediated send shows up with native
value 0 in the first list and the real movement in the second; a token
received through someone else's contract call may not appear in the first
list at all.

Known approximation: when a zero-value transaction carries several token
transfers, the first one encountered becomes the displayed amount.
"""

import logging
from typing import Iterable, Optional

from tx_resolver.models import NormalizedTransaction, ReceiptStatus, TokenTransfer


logger = logging.getLogger(__name__)


def _identity(transfer: TokenTransfer) -> tuple:
    return (
        (transfer.transaction_hash or "").lower(),
        transfer.address.lower(),
        transfer.from_address.lower(),
        transfer.to_address.lower(),
        transfer.value,
        transfer.log_index,
    )


def _attach(tx: NormalizedTransaction, transfer: TokenTransfer) -> None:
    """Attach a transfer to a transaction, promoting it if the tx moved no native value."""
    if tx.token_transfers is None:
        tx.token_transfers = []

    key = _identity(transfer)
    if any(_identity(existing) == key for existing in tx.token_transfers):
        return
    tx.token_transfers.append(transfer)

    if tx.value == "0" and tx.display_value is None:
        tx.display_value = transfer.value
        tx.token_symbol = transfer.token_symbol
        tx.token_decimals = transfer.token_decimals
        tx.token_name = transfer.token_name


def synthesize_transaction(
    transfer: TokenTransfer,
    chain_id: Optional[str] = None,
    provider: Optional[str] = None,
    detected_chain: Optional[str] = None,
) -> NormalizedTransaction:
    """Minimal transaction standing in for a transfer with no native counterpart."""
    return NormalizedTransaction(
        hash=transfer.transaction_hash or "",
        from_address=transfer.from_address,
        to_address=transfer.to_address,
        value="0",
        receipt_status=ReceiptStatus.SUCCESS,
        block_number=transfer.block_number or "0",
        block_hash=transfer.block_hash or "",
        block_timestamp=transfer.block_timestamp,
        token_transfers=[transfer],
        display_value=transfer.value,
        token_symbol=transfer.token_symbol,
        token_decimals=transfer.token_decimals,
        token_name=transfer.token_name,
        provider=provider,
        chain_id=chain_id,
        detected_chain=detected_chain,
        synthesized=True,
    )


def merge_transactions(
    native: list[NormalizedTransaction],
    transfers: Iterable[TokenTransfer],
    chain_id: Optional[str] = None,
    provider: Optional[str] = None,
    detected_chain: Optional[str] = None,
) -> list[NormalizedTransaction]:
    """
    Merge token transfers into a native transaction list.

    Native entries are updated in place. Returns the native entries followed
    by one synthesized entry per transaction hash that had no native
    counterpart. Merging an already-merged list again adds nothing.
    """
    by_hash: dict[str, NormalizedTransaction] = {}
    hashless: dict[tuple, NormalizedTransaction] = {}

    for tx in native:
        if tx.hash:
            by_hash.setdefault(tx.hash.lower(), tx)
        elif tx.synthesized:
            for transfer in tx.token_transfers or []:
                hashless[_identity(transfer)] = tx

    synthesized: list[NormalizedTransaction] = []

    for transfer in transfers:
        tx_hash = (transfer.transaction_hash or "").lower()

        if tx_hash and tx_hash in by_hash:
            _attach(by_hash[tx_hash], transfer)
            continue

        if not tx_hash and _identity(transfer) in hashless:
            continue

        pseudo = synthesize_transaction(transfer, chain_id, provider, detected_chain)
        synthesized.append(pseudo)
        if tx_hash:
            by_hash[tx_hash] = pseudo
        else:
            hashless[_identity(transfer)] = pseudo

    if synthesized:
        logger.debug(f"Synthesized {len(synthesized)} transactions from orphan token transfers")

    return list(native) + synthesized
