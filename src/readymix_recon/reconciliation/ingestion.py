"""
Boundary validation for incoming bank transactions and ledger seed data.

Rows arrive already structured (mappings produced by an upstream import
step); nothing here knows about bank file formats.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional
import logging

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from ..models.ledger import Client, DeliveryNote, PaymentStatus, Receivable, ReceivableKind
from ..models.transaction import BankTransaction, TransactionType, generate_id, to_money
from ..storage.base import TransactionStore
from ..utils.exceptions import ValidationError

logger = logging.getLogger(__name__)


class TransactionInput(BaseModel):
    """One imported bank statement line."""

    id: Optional[str] = None
    date: date
    value_date: Optional[date] = None
    label: str = Field(min_length=1)
    bank_reference: Optional[str] = None
    amount: Decimal
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    type: Optional[TransactionType] = None
    notes: Optional[str] = None

    @field_validator("label")
    @classmethod
    def _strip_label(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("label must not be blank")
        return value

    @field_validator("amount")
    @classmethod
    def _non_zero(cls, value: Decimal) -> Decimal:
        value = to_money(value)
        if value == 0:
            raise ValueError("amount must not be zero once rounded to cents")
        return value

    def to_transaction(self, default_currency: str) -> BankTransaction:
        # Statement lines without an explicit type take it from the sign
        txn_type = self.type or (
            TransactionType.DEBIT if self.amount < 0 else TransactionType.CREDIT
        )
        return BankTransaction(
            id=self.id or generate_id(),
            date=self.date,
            value_date=self.value_date,
            label=self.label,
            bank_reference=self.bank_reference,
            amount=self.amount,
            currency=(self.currency or default_currency).upper(),
            type=txn_type,
            notes=self.notes,
        )


def parse_transactions(
    rows: Iterable[Mapping[str, Any]], default_currency: str = "MAD"
) -> list[BankTransaction]:
    """
    Validate rows and convert them to unmatched bank transactions.

    Raises:
        ValidationError: On the first invalid row; nothing is returned
    """
    transactions: list[BankTransaction] = []
    for index, row in enumerate(rows, start=1):
        try:
            parsed = TransactionInput.model_validate(row)
        except PydanticValidationError as e:
            raise ValidationError(f"Row {index}: {e}") from e
        transactions.append(parsed.to_transaction(default_currency))
    return transactions


def ingest_transactions(
    store: TransactionStore,
    rows: Iterable[Mapping[str, Any]],
    default_currency: str = "MAD",
) -> list[BankTransaction]:
    """Validate a batch and insert it; the batch is all-or-nothing."""
    transactions = parse_transactions(rows, default_currency)
    store.add_transactions(transactions)
    logger.info(f"Imported {len(transactions)} bank transactions")
    return transactions


# Ledger seed documents


class ClientInput(BaseModel):
    id: str
    name: str


class InvoiceInput(BaseModel):
    id: str
    client_id: str
    amount: Decimal
    date: date
    status: PaymentStatus = PaymentStatus.UNPAID

    def to_receivable(self) -> Receivable:
        return Receivable(
            id=self.id,
            client_id=self.client_id,
            amount=self.amount,
            date=self.date,
            kind=ReceivableKind.INVOICE,
            status=self.status,
        )


class DeliveryInput(BaseModel):
    id: str
    client_id: str
    date: date
    volume_m3: Decimal
    unit_sale_price: Optional[Decimal] = None
    unit_delivery_price: Optional[Decimal] = None
    invoice_id: Optional[str] = None
    status: PaymentStatus = PaymentStatus.UNPAID

    def to_delivery(self) -> DeliveryNote:
        return DeliveryNote(
            id=self.id,
            client_id=self.client_id,
            delivery_date=self.date,
            volume_m3=self.volume_m3,
            unit_sale_price=self.unit_sale_price,
            unit_delivery_price=self.unit_delivery_price,
            invoice_id=self.invoice_id,
            status=self.status,
        )


class LedgerDocument(BaseModel):
    clients: list[ClientInput] = Field(default_factory=list)
    invoices: list[InvoiceInput] = Field(default_factory=list)
    deliveries: list[DeliveryInput] = Field(default_factory=list)


def parse_ledger(
    document: Mapping[str, Any],
) -> tuple[list[Client], list[Receivable], list[DeliveryNote]]:
    """
    Validate a ledger seed document.

    Returns:
        Tuple of (clients, invoices, delivery notes)
    """
    try:
        parsed = LedgerDocument.model_validate(document)
    except PydanticValidationError as e:
        raise ValidationError(str(e)) from e

    return (
        [Client(id=c.id, name=c.name) for c in parsed.clients],
        [inv.to_receivable() for inv in parsed.invoices],
        [d.to_delivery() for d in parsed.deliveries],
    )
