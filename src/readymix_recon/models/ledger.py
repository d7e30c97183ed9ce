"""Receivables, clients and match suggestions."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional

from .transaction import to_money

VOLUME_STEP = Decimal("0.001")


class ReceivableKind(Enum):
    """Pool a receivable was drawn from."""

    INVOICE = "invoice"
    DELIVERY = "delivery"  # Unpaid delivery note not yet invoiced


class PaymentStatus(Enum):
    UNPAID = "unpaid"
    PAID = "paid"


@dataclass(frozen=True)
class Client:
    id: str
    name: str


@dataclass(frozen=True)
class Receivable:
    """
    Unified view of money owed by a client.

    Invoices carry their real total; delivery-derived receivables carry
    an estimated amount (see DeliveryNote.to_receivable).
    """

    id: str
    client_id: str
    amount: Decimal
    date: date
    kind: ReceivableKind = ReceivableKind.INVOICE
    status: PaymentStatus = PaymentStatus.UNPAID

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_money(self.amount))

    @property
    def is_estimate(self) -> bool:
        return self.kind == ReceivableKind.DELIVERY


@dataclass(frozen=True)
class DeliveryNote:
    """A concrete delivery as recorded at the plant."""

    id: str
    client_id: str
    delivery_date: date
    volume_m3: Decimal
    unit_sale_price: Optional[Decimal] = None
    unit_delivery_price: Optional[Decimal] = None
    invoice_id: Optional[str] = None
    status: PaymentStatus = PaymentStatus.UNPAID

    def __post_init__(self) -> None:
        # Volumes are kept to the litre, prices to the cent
        volume = Decimal(str(self.volume_m3)).quantize(VOLUME_STEP, rounding=ROUND_HALF_UP)
        object.__setattr__(self, "volume_m3", volume)
        for name in ("unit_sale_price", "unit_delivery_price"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, to_money(value))

    def estimated_amount(self, tax_rate: Decimal) -> Decimal:
        """
        volume x (sale price + delivery price) x (1 + tax), rounded to cents.

        Missing prices count as 0.
        """
        sale = self.unit_sale_price or Decimal("0")
        delivery = self.unit_delivery_price or Decimal("0")
        return to_money(self.volume_m3 * (sale + delivery) * (Decimal("1") + tax_rate))

    def to_receivable(self, tax_rate: Decimal) -> Receivable:
        return Receivable(
            id=self.id,
            client_id=self.client_id,
            amount=self.estimated_amount(tax_rate),
            date=self.delivery_date,
            kind=ReceivableKind.DELIVERY,
            status=self.status,
        )


@dataclass
class MatchSuggestion:
    """
    A scored candidate receivable for one bank transaction.

    Ephemeral: produced by the matching engine, never persisted as such.
    """

    client_id: str
    client_name: str
    receivable_amount: Decimal
    receivable_date: date
    score: float
    reasons: list[str] = field(default_factory=list)

    # Exactly one of these is set
    invoice_id: Optional[str] = None
    delivery_id: Optional[str] = None

    def __post_init__(self) -> None:
        if bool(self.invoice_id) == bool(self.delivery_id):
            raise ValueError(
                "A suggestion must reference exactly one of invoice_id or delivery_id"
            )

    @property
    def receivable_id(self) -> str:
        return self.invoice_id or self.delivery_id  # type: ignore[return-value]

    @property
    def kind(self) -> ReceivableKind:
        return ReceivableKind.INVOICE if self.invoice_id else ReceivableKind.DELIVERY

    @property
    def reason_text(self) -> str:
        return ", ".join(self.reasons)

    @classmethod
    def for_receivable(
        cls,
        receivable: Receivable,
        client_name: str,
        score: float,
        reasons: list[str],
    ) -> "MatchSuggestion":
        is_invoice = receivable.kind == ReceivableKind.INVOICE
        return cls(
            client_id=receivable.client_id,
            client_name=client_name,
            receivable_amount=receivable.amount,
            receivable_date=receivable.date,
            score=score,
            reasons=list(reasons),
            invoice_id=receivable.id if is_invoice else None,
            delivery_id=None if is_invoice else receivable.id,
        )
