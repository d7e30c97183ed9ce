"""
SQLAlchemy-backed store.

Status transitions are conditional UPDATE statements
(`... WHERE status = :expected`) executed inside one database transaction,
so two racing confirmations on the same row cannot both succeed.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Iterator, Optional
import logging

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    create_engine,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from ..models.ledger import (
    Client,
    DeliveryNote,
    PaymentStatus,
    Receivable,
    ReceivableKind,
)
from ..models.transaction import (
    BankTransaction,
    MatchType,
    ReconciliationRecord,
    ReconciliationStatus,
    TransactionType,
)
from ..utils.exceptions import ReconciliationConflict, StorageError, ValidationError
from .base import LedgerReader, TransactionStore, UnitOfWork

logger = logging.getLogger(__name__)

MONEY = Numeric(14, 2, asdecimal=True)


class Base(DeclarativeBase):
    pass


# ==================== TABLES ====================


class ClientRow(Base):
    __tablename__ = "clients"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)


class InvoiceRow(Base):
    __tablename__ = "invoices"

    id = Column(String(64), primary_key=True)
    client_id = Column(String(64), ForeignKey("clients.id"), nullable=False)
    amount = Column(MONEY, nullable=False)
    invoice_date = Column(Date, nullable=False)
    status = Column(String(16), nullable=False, default=PaymentStatus.UNPAID.value)

    __table_args__ = (Index("ix_invoices_status", "status"),)


class DeliveryNoteRow(Base):
    __tablename__ = "delivery_notes"

    id = Column(String(64), primary_key=True)
    client_id = Column(String(64), ForeignKey("clients.id"), nullable=False)
    delivery_date = Column(Date, nullable=False)
    volume_m3 = Column(Numeric(12, 3, asdecimal=True), nullable=False)
    unit_sale_price = Column(MONEY, nullable=True)
    unit_delivery_price = Column(MONEY, nullable=True)
    invoice_id = Column(String(64), ForeignKey("invoices.id"), nullable=True)
    status = Column(String(16), nullable=False, default=PaymentStatus.UNPAID.value)

    __table_args__ = (Index("ix_delivery_notes_status", "status"),)


class BankTransactionRow(Base):
    __tablename__ = "bank_transactions"

    id = Column(String(64), primary_key=True)
    transaction_date = Column(Date, nullable=False)
    value_date = Column(Date, nullable=True)
    label = Column(Text, nullable=False)
    bank_reference = Column(String(128), nullable=True)
    amount = Column(MONEY, nullable=False)
    currency = Column(String(3), nullable=False)
    transaction_type = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False, default=ReconciliationStatus.UNMATCHED.value)
    client_id = Column(String(64), nullable=True)
    receivable_id = Column(String(64), nullable=True)
    confidence_score = Column(Float, nullable=True)
    reconciled_by = Column(String(128), nullable=True)
    reconciled_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_bank_transactions_status", "status"),
        Index("ix_bank_transactions_date", "transaction_date"),
    )


class ReconciliationRecordRow(Base):
    __tablename__ = "reconciliation_records"

    id = Column(String(64), primary_key=True)
    # Unique: a transaction is reconciled at most once
    transaction_id = Column(
        String(64), ForeignKey("bank_transactions.id"), nullable=False, unique=True
    )
    invoice_id = Column(String(64), nullable=True)
    delivery_id = Column(String(64), nullable=True)
    client_id = Column(String(64), nullable=False)
    receivable_amount = Column(MONEY, nullable=False)
    transaction_amount = Column(MONEY, nullable=False)
    variance = Column(MONEY, nullable=False)
    match_type = Column(String(16), nullable=False)
    confidence_score = Column(Float, nullable=False)
    reasons = Column(Text, nullable=False, default="")
    validated_by = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_reconciliation_records_invoice", "invoice_id"),
        Index("ix_reconciliation_records_delivery", "delivery_id"),
    )


# ==================== ROW MAPPING ====================


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo; everything is written in UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_transaction(row: BankTransactionRow) -> BankTransaction:
    return BankTransaction(
        id=row.id,
        date=row.transaction_date,
        value_date=row.value_date,
        label=row.label,
        bank_reference=row.bank_reference,
        amount=Decimal(row.amount),
        currency=row.currency,
        type=TransactionType(row.transaction_type),
        status=ReconciliationStatus(row.status),
        client_id=row.client_id,
        receivable_id=row.receivable_id,
        confidence_score=row.confidence_score,
        reconciled_by=row.reconciled_by,
        reconciled_at=_aware(row.reconciled_at),
        notes=row.notes,
        created_at=_aware(row.created_at),
    )


def _from_transaction(txn: BankTransaction) -> BankTransactionRow:
    return BankTransactionRow(
        id=txn.id,
        transaction_date=txn.date,
        value_date=txn.value_date,
        label=txn.label,
        bank_reference=txn.bank_reference,
        amount=txn.amount,
        currency=txn.currency,
        transaction_type=txn.type.value,
        status=txn.status.value,
        client_id=txn.client_id,
        receivable_id=txn.receivable_id,
        confidence_score=txn.confidence_score,
        reconciled_by=txn.reconciled_by,
        reconciled_at=txn.reconciled_at,
        notes=txn.notes,
        created_at=txn.created_at,
    )


def _to_record(row: ReconciliationRecordRow) -> ReconciliationRecord:
    return ReconciliationRecord(
        id=row.id,
        transaction_id=row.transaction_id,
        invoice_id=row.invoice_id,
        delivery_id=row.delivery_id,
        client_id=row.client_id,
        receivable_amount=Decimal(row.receivable_amount),
        transaction_amount=Decimal(row.transaction_amount),
        match_type=MatchType(row.match_type),
        confidence_score=row.confidence_score,
        reasons=row.reasons,
        validated_by=row.validated_by,
        created_at=_aware(row.created_at),
    )


def _to_invoice(row: InvoiceRow) -> Receivable:
    return Receivable(
        id=row.id,
        client_id=row.client_id,
        amount=Decimal(row.amount),
        date=row.invoice_date,
        kind=ReceivableKind.INVOICE,
        status=PaymentStatus(row.status),
    )


def _to_delivery(row: DeliveryNoteRow) -> DeliveryNote:
    return DeliveryNote(
        id=row.id,
        client_id=row.client_id,
        delivery_date=row.delivery_date,
        volume_m3=Decimal(row.volume_m3),
        unit_sale_price=Decimal(row.unit_sale_price) if row.unit_sale_price is not None else None,
        unit_delivery_price=(
            Decimal(row.unit_delivery_price) if row.unit_delivery_price is not None else None
        ),
        invoice_id=row.invoice_id,
        status=PaymentStatus(row.status),
    )


# Column names on the transaction table for each BankTransaction field
_TRANSACTION_COLUMNS = {
    "status": ("status", lambda v: v.value),
    "client_id": ("client_id", None),
    "receivable_id": ("receivable_id", None),
    "confidence_score": ("confidence_score", None),
    "reconciled_by": ("reconciled_by", None),
    "reconciled_at": ("reconciled_at", None),
    "notes": ("notes", None),
}


class SqlStore(LedgerReader, TransactionStore):
    """Ledger and transaction store on any SQLAlchemy-supported database."""

    def __init__(
        self,
        database_url: str = "sqlite:///reconciliation.db",
        delivery_tax_rate: Decimal = Decimal("0.20"),
        echo: bool = False,
        create_tables: bool = True,
    ):
        self.delivery_tax_rate = delivery_tax_rate
        self.engine = create_engine(database_url, echo=echo, future=True)
        self._sessions = sessionmaker(
            self.engine,
            class_=Session,
            expire_on_commit=False,
            autoflush=False,
        )
        if create_tables:
            self.create_tables()

    def create_tables(self) -> None:
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create tables: {e}") from e

    @contextmanager
    def _read(self) -> Iterator[Session]:
        try:
            with self._sessions() as session:
                yield session
        except SQLAlchemyError as e:
            raise StorageError(str(e)) from e

    # Ledger seeding

    def add_clients(self, clients: Iterable[Client]) -> None:
        with self._write() as session:
            for client in clients:
                session.merge(ClientRow(id=client.id, name=client.name))

    def add_invoices(self, invoices: Iterable[Receivable]) -> None:
        with self._write() as session:
            for inv in invoices:
                session.merge(
                    InvoiceRow(
                        id=inv.id,
                        client_id=inv.client_id,
                        amount=inv.amount,
                        invoice_date=inv.date,
                        status=inv.status.value,
                    )
                )

    def add_deliveries(self, deliveries: Iterable[DeliveryNote]) -> None:
        with self._write() as session:
            for note in deliveries:
                session.merge(
                    DeliveryNoteRow(
                        id=note.id,
                        client_id=note.client_id,
                        delivery_date=note.delivery_date,
                        volume_m3=note.volume_m3,
                        unit_sale_price=note.unit_sale_price,
                        unit_delivery_price=note.unit_delivery_price,
                        invoice_id=note.invoice_id,
                        status=note.status.value,
                    )
                )

    @contextmanager
    def _write(self) -> Iterator[Session]:
        try:
            with self._sessions.begin() as session:
                yield session
        except IntegrityError as e:
            raise ValidationError(f"Integrity error: {e.orig}") from e
        except SQLAlchemyError as e:
            raise StorageError(str(e)) from e

    # LedgerReader

    def list_unpaid_invoices(self) -> list[Receivable]:
        with self._read() as session:
            rows = session.scalars(
                select(InvoiceRow)
                .where(InvoiceRow.status == PaymentStatus.UNPAID.value)
                .order_by(InvoiceRow.invoice_date, InvoiceRow.id)
            )
            return [_to_invoice(row) for row in rows]

    def list_unpaid_deliveries(self) -> list[Receivable]:
        with self._read() as session:
            rows = session.scalars(
                select(DeliveryNoteRow)
                .where(
                    DeliveryNoteRow.status == PaymentStatus.UNPAID.value,
                    DeliveryNoteRow.invoice_id.is_(None),
                )
                .order_by(DeliveryNoteRow.delivery_date, DeliveryNoteRow.id)
            )
            return [_to_delivery(row).to_receivable(self.delivery_tax_rate) for row in rows]

    def list_clients(self) -> list[Client]:
        with self._read() as session:
            rows = session.scalars(select(ClientRow).order_by(ClientRow.id))
            return [Client(id=row.id, name=row.name) for row in rows]

    def get_receivable(
        self, receivable_id: str, kind: ReceivableKind
    ) -> Optional[Receivable]:
        with self._read() as session:
            if kind == ReceivableKind.INVOICE:
                row = session.get(InvoiceRow, receivable_id)
                return _to_invoice(row) if row else None
            note = session.get(DeliveryNoteRow, receivable_id)
            return _to_delivery(note).to_receivable(self.delivery_tax_rate) if note else None

    # TransactionStore

    def add_transactions(self, transactions: Iterable[BankTransaction]) -> int:
        count = 0
        with self._write() as session:
            for txn in transactions:
                session.add(_from_transaction(txn))
                count += 1
        return count

    def get_transaction(self, transaction_id: str) -> Optional[BankTransaction]:
        with self._read() as session:
            row = session.get(BankTransactionRow, transaction_id)
            return _to_transaction(row) if row else None

    def list_transactions(
        self, status: Optional[ReconciliationStatus] = None
    ) -> list[BankTransaction]:
        query = select(BankTransactionRow).order_by(
            BankTransactionRow.transaction_date.desc()
        )
        if status is not None:
            query = query.where(BankTransactionRow.status == status.value)
        with self._read() as session:
            return [_to_transaction(row) for row in session.scalars(query)]

    def records_for_transaction(self, transaction_id: str) -> list[ReconciliationRecord]:
        with self._read() as session:
            rows = session.scalars(
                select(ReconciliationRecordRow).where(
                    ReconciliationRecordRow.transaction_id == transaction_id
                )
            )
            return [_to_record(row) for row in rows]

    def records_for_receivable(self, receivable_id: str) -> list[ReconciliationRecord]:
        with self._read() as session:
            rows = session.scalars(
                select(ReconciliationRecordRow).where(
                    (ReconciliationRecordRow.invoice_id == receivable_id)
                    | (ReconciliationRecordRow.delivery_id == receivable_id)
                )
            )
            return [_to_record(row) for row in rows]

    def list_records(self) -> list[ReconciliationRecord]:
        with self._read() as session:
            rows = session.scalars(
                select(ReconciliationRecordRow).order_by(ReconciliationRecordRow.created_at)
            )
            return [_to_record(row) for row in rows]

    @contextmanager
    def unit_of_work(self) -> Iterator["_SqlUnitOfWork"]:
        try:
            with self._sessions.begin() as session:
                yield _SqlUnitOfWork(session)
        except IntegrityError as e:
            # Lost a race on the unique transaction_id of reconciliation_records
            logger.warning(f"Integrity error while committing reconciliation: {e.orig}")
            raise ReconciliationConflict(
                "Transaction was reconciled concurrently"
            ) from e
        except SQLAlchemyError as e:
            raise StorageError(str(e)) from e


class _SqlUnitOfWork(UnitOfWork):
    """Conditional writes on an open session; commit happens on block exit."""

    def __init__(self, session: Session):
        self.session = session

    def add_record(self, record: ReconciliationRecord) -> None:
        self.session.add(
            ReconciliationRecordRow(
                id=record.id,
                transaction_id=record.transaction_id,
                invoice_id=record.invoice_id,
                delivery_id=record.delivery_id,
                client_id=record.client_id,
                receivable_amount=record.receivable_amount,
                transaction_amount=record.transaction_amount,
                variance=record.variance,
                match_type=record.match_type.value,
                confidence_score=record.confidence_score,
                reasons=record.reasons,
                validated_by=record.validated_by,
                created_at=record.created_at,
            )
        )
        self.session.flush()

    def transition_transaction(
        self,
        transaction_id: str,
        expected: ReconciliationStatus,
        **changes: Any,
    ) -> bool:
        values = {}
        for field_name, value in changes.items():
            column, convert = _TRANSACTION_COLUMNS[field_name]
            values[column] = convert(value) if convert else value

        result = self.session.execute(
            update(BankTransactionRow)
            .where(
                BankTransactionRow.id == transaction_id,
                BankTransactionRow.status == expected.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def mark_receivable_paid(self, receivable_id: str, kind: ReceivableKind) -> bool:
        table = InvoiceRow if kind == ReceivableKind.INVOICE else DeliveryNoteRow
        conditions = [
            table.id == receivable_id,
            table.status == PaymentStatus.UNPAID.value,
        ]
        if table is DeliveryNoteRow:
            # An invoiced delivery is settled through its invoice
            conditions.append(DeliveryNoteRow.invoice_id.is_(None))

        result = self.session.execute(
            update(table)
            .where(*conditions)
            .values(status=PaymentStatus.PAID.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
