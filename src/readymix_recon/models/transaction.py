"""Data models for bank transactions and the reconciliation trail."""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional
import uuid


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_id() -> str:
    return str(uuid.uuid4())


CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Round to cents (half up), the precision both stores keep."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class TransactionType(Enum):
    """Transaction type from the bank's perspective."""

    CREDIT = "credit"  # Money in (customer transfers, cheques cashed)
    DEBIT = "debit"  # Money out


class ReconciliationStatus(Enum):
    """Where a bank transaction stands in the reconciliation workflow."""

    UNMATCHED = "unmatched"
    RECONCILED = "reconciled"
    IGNORED = "ignored"


class MatchType(Enum):
    """How a reconciliation was confirmed."""

    MANUAL = "manual"
    AUTOMATIC = "automatic"


@dataclass
class BankTransaction:
    """
    A single line of a bank statement.

    Created on import with status UNMATCHED, then mutated only by the
    recorder (confirm / ignore). Never deleted by the engine.
    """

    id: str
    date: date

    # Signed amount, currency given by `currency`
    amount: Decimal
    label: str
    type: TransactionType = TransactionType.CREDIT
    currency: str = "MAD"
    value_date: Optional[date] = None
    bank_reference: Optional[str] = None

    status: ReconciliationStatus = ReconciliationStatus.UNMATCHED

    # Filled in when the transaction is reconciled
    client_id: Optional[str] = None
    receivable_id: Optional[str] = None
    confidence_score: Optional[float] = None
    reconciled_by: Optional[str] = None
    reconciled_at: Optional[datetime] = None

    notes: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        self.amount = to_money(self.amount)

    @property
    def is_pending(self) -> bool:
        return self.status == ReconciliationStatus.UNMATCHED


@dataclass(frozen=True)
class ReconciliationRecord:
    """Immutable audit entry linking a transaction to the receivable it settles."""

    transaction_id: str
    client_id: str
    receivable_amount: Decimal
    transaction_amount: Decimal
    match_type: MatchType
    confidence_score: float
    reasons: str

    # Exactly one of these is set
    invoice_id: Optional[str] = None
    delivery_id: Optional[str] = None

    validated_by: Optional[str] = None
    id: str = field(default_factory=generate_id)
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "receivable_amount", to_money(self.receivable_amount))
        object.__setattr__(self, "transaction_amount", to_money(self.transaction_amount))

    @property
    def receivable_id(self) -> str:
        return self.invoice_id or self.delivery_id or ""

    @property
    def variance(self) -> Decimal:
        """Signed difference: transaction amount minus receivable amount."""
        return self.transaction_amount - self.receivable_amount


@dataclass(frozen=True)
class ReconciliationStats:
    """Summary counts and amounts over a transaction snapshot."""

    total_transactions: int = 0
    reconciled_count: int = 0
    reconciled_amount: Decimal = Decimal("0")
    unmatched_count: int = 0
    unmatched_amount: Decimal = Decimal("0")
    ignored_count: int = 0

    @property
    def reconciliation_rate(self) -> float:
        """Percentage of transactions reconciled."""
        if self.total_transactions == 0:
            return 0.0
        return (self.reconciled_count / self.total_transactions) * 100
