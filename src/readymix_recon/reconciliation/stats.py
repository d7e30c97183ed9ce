"""Summary statistics over a transaction snapshot."""

from decimal import Decimal
from typing import Iterable

from ..models.transaction import BankTransaction, ReconciliationStats, ReconciliationStatus


def compute_stats(transactions: Iterable[BankTransaction]) -> ReconciliationStats:
    """
    Aggregate counts and amounts per reconciliation status.

    Pure function of its input; callers recompute after every change
    instead of caching.
    """
    total = 0
    counts = {status: 0 for status in ReconciliationStatus}
    amounts = {status: Decimal("0") for status in ReconciliationStatus}

    for txn in transactions:
        total += 1
        counts[txn.status] += 1
        amounts[txn.status] += txn.amount

    return ReconciliationStats(
        total_transactions=total,
        reconciled_count=counts[ReconciliationStatus.RECONCILED],
        reconciled_amount=amounts[ReconciliationStatus.RECONCILED],
        unmatched_count=counts[ReconciliationStatus.UNMATCHED],
        unmatched_amount=amounts[ReconciliationStatus.UNMATCHED],
        ignored_count=counts[ReconciliationStatus.IGNORED],
    )
