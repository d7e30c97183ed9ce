"""In-memory store, guarded by a single re-entrant lock."""

from contextlib import contextmanager
from dataclasses import replace
from decimal import Decimal
from typing import Any, Iterable, Iterator, Optional
import threading

from ..models.ledger import (
    Client,
    DeliveryNote,
    PaymentStatus,
    Receivable,
    ReceivableKind,
)
from ..models.transaction import (
    BankTransaction,
    ReconciliationRecord,
    ReconciliationStatus,
)
from ..utils.exceptions import ValidationError
from .base import LedgerReader, TransactionStore, UnitOfWork


class InMemoryStore(LedgerReader, TransactionStore):
    """
    Ledger and transaction store held in process memory.

    Every read returns a copy; writes to transactions and receivables only
    happen through `unit_of_work()`, which holds the lock from the first
    precondition check to the final apply.
    """

    def __init__(self, delivery_tax_rate: Decimal = Decimal("0.20")):
        self.delivery_tax_rate = delivery_tax_rate
        self._lock = threading.RLock()
        self._clients: dict[str, Client] = {}
        self._invoices: dict[str, Receivable] = {}
        self._deliveries: dict[str, DeliveryNote] = {}
        self._transactions: dict[str, BankTransaction] = {}
        self._records: list[ReconciliationRecord] = []

    # Ledger seeding

    def add_clients(self, clients: Iterable[Client]) -> None:
        with self._lock:
            for client in clients:
                self._clients[client.id] = client

    def add_invoices(self, invoices: Iterable[Receivable]) -> None:
        with self._lock:
            for invoice in invoices:
                self._invoices[invoice.id] = replace(invoice, kind=ReceivableKind.INVOICE)

    def add_deliveries(self, deliveries: Iterable[DeliveryNote]) -> None:
        with self._lock:
            for delivery in deliveries:
                self._deliveries[delivery.id] = delivery

    # LedgerReader

    def list_unpaid_invoices(self) -> list[Receivable]:
        with self._lock:
            return [
                inv for inv in self._invoices.values() if inv.status == PaymentStatus.UNPAID
            ]

    def list_unpaid_deliveries(self) -> list[Receivable]:
        with self._lock:
            return [
                note.to_receivable(self.delivery_tax_rate)
                for note in self._deliveries.values()
                if note.status == PaymentStatus.UNPAID and not note.invoice_id
            ]

    def list_clients(self) -> list[Client]:
        with self._lock:
            return list(self._clients.values())

    def get_receivable(
        self, receivable_id: str, kind: ReceivableKind
    ) -> Optional[Receivable]:
        with self._lock:
            if kind == ReceivableKind.INVOICE:
                return self._invoices.get(receivable_id)
            note = self._deliveries.get(receivable_id)
            return note.to_receivable(self.delivery_tax_rate) if note else None

    # TransactionStore

    def add_transactions(self, transactions: Iterable[BankTransaction]) -> int:
        with self._lock:
            staged = {txn.id: replace(txn) for txn in transactions}
            duplicates = set(staged) & set(self._transactions)
            if duplicates:
                raise ValidationError(f"Duplicate transaction ids: {sorted(duplicates)}")
            self._transactions.update(staged)
            return len(staged)

    def get_transaction(self, transaction_id: str) -> Optional[BankTransaction]:
        with self._lock:
            txn = self._transactions.get(transaction_id)
            return replace(txn) if txn else None

    def list_transactions(
        self, status: Optional[ReconciliationStatus] = None
    ) -> list[BankTransaction]:
        with self._lock:
            txns = [
                replace(t)
                for t in self._transactions.values()
                if status is None or t.status == status
            ]
        return sorted(txns, key=lambda t: t.date, reverse=True)

    def records_for_transaction(self, transaction_id: str) -> list[ReconciliationRecord]:
        with self._lock:
            return [r for r in self._records if r.transaction_id == transaction_id]

    def records_for_receivable(self, receivable_id: str) -> list[ReconciliationRecord]:
        with self._lock:
            return [r for r in self._records if r.receivable_id == receivable_id]

    def list_records(self) -> list[ReconciliationRecord]:
        with self._lock:
            return list(self._records)

    @contextmanager
    def unit_of_work(self) -> Iterator["_MemoryUnitOfWork"]:
        with self._lock:
            uow = _MemoryUnitOfWork(self)
            yield uow
            # Only reached when the block did not raise
            uow.apply()


class _MemoryUnitOfWork(UnitOfWork):
    """Stages changes against a store; `apply` publishes them together."""

    def __init__(self, store: InMemoryStore):
        self.store = store
        self.records: list[ReconciliationRecord] = []
        self.transactions: dict[str, BankTransaction] = {}
        self.paid_invoices: set[str] = set()
        self.paid_deliveries: set[str] = set()

    def add_record(self, record: ReconciliationRecord) -> None:
        self.records.append(record)

    def transition_transaction(
        self,
        transaction_id: str,
        expected: ReconciliationStatus,
        **changes: Any,
    ) -> bool:
        current = self.transactions.get(transaction_id) or self.store._transactions.get(
            transaction_id
        )
        if current is None or current.status != expected:
            return False
        self.transactions[transaction_id] = replace(current, **changes)
        return True

    def mark_receivable_paid(self, receivable_id: str, kind: ReceivableKind) -> bool:
        if kind == ReceivableKind.INVOICE:
            invoice = self.store._invoices.get(receivable_id)
            if invoice is None or invoice.status != PaymentStatus.UNPAID:
                return False
            if receivable_id in self.paid_invoices:
                return False
            self.paid_invoices.add(receivable_id)
            return True

        note = self.store._deliveries.get(receivable_id)
        # An invoiced delivery is settled through its invoice
        if note is None or note.invoice_id or note.status != PaymentStatus.UNPAID:
            return False
        if receivable_id in self.paid_deliveries:
            return False
        self.paid_deliveries.add(receivable_id)
        return True

    def apply(self) -> None:
        store = self.store
        store._records.extend(self.records)
        store._transactions.update(self.transactions)
        for invoice_id in self.paid_invoices:
            store._invoices[invoice_id] = replace(
                store._invoices[invoice_id], status=PaymentStatus.PAID
            )
        for delivery_id in self.paid_deliveries:
            store._deliveries[delivery_id] = replace(
                store._deliveries[delivery_id], status=PaymentStatus.PAID
            )
