"""Data models for reconciliation."""

from .transaction import (
    BankTransaction,
    TransactionType,
    ReconciliationStatus,
    MatchType,
    ReconciliationRecord,
    ReconciliationStats,
)
from .ledger import (
    Client,
    DeliveryNote,
    MatchSuggestion,
    PaymentStatus,
    Receivable,
    ReceivableKind,
)

__all__ = [
    "BankTransaction",
    "TransactionType",
    "ReconciliationStatus",
    "MatchType",
    "ReconciliationRecord",
    "ReconciliationStats",
    "Client",
    "DeliveryNote",
    "MatchSuggestion",
    "PaymentStatus",
    "Receivable",
    "ReceivableKind",
]
