"""
Storage interfaces consumed by the reconciliation engine.

The ledger (receivables, clients) is read-only except for the paid flag,
which is only ever flipped inside a unit of work alongside the matching
reconciliation record.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any, Iterable, Optional

from ..models.ledger import Client, Receivable, ReceivableKind
from ..models.transaction import (
    BankTransaction,
    ReconciliationRecord,
    ReconciliationStatus,
)


class LedgerReader(ABC):
    """Read access to outstanding receivables and the client directory."""

    @abstractmethod
    def list_unpaid_invoices(self) -> list[Receivable]:
        pass

    @abstractmethod
    def list_unpaid_deliveries(self) -> list[Receivable]:
        """Unpaid delivery notes that have no invoice yet, as estimated receivables."""
        pass

    @abstractmethod
    def list_clients(self) -> list[Client]:
        pass

    @abstractmethod
    def get_receivable(
        self, receivable_id: str, kind: ReceivableKind
    ) -> Optional[Receivable]:
        pass

    def list_open_receivables(self) -> list[Receivable]:
        """Both candidate pools, invoices first."""
        return self.list_unpaid_invoices() + self.list_unpaid_deliveries()


class UnitOfWork(ABC):
    """
    A batch of reconciliation writes applied all-or-nothing.

    Conditional transitions return False instead of applying when the row
    is no longer in the expected prior state. Raising inside the
    `unit_of_work()` block discards everything staged so far.
    """

    @abstractmethod
    def add_record(self, record: ReconciliationRecord) -> None:
        pass

    @abstractmethod
    def transition_transaction(
        self,
        transaction_id: str,
        expected: ReconciliationStatus,
        **changes: Any,
    ) -> bool:
        """Apply `changes` only if the transaction is currently in `expected`."""
        pass

    @abstractmethod
    def mark_receivable_paid(self, receivable_id: str, kind: ReceivableKind) -> bool:
        """Flip an unpaid receivable to paid; False if missing or already paid."""
        pass


class TransactionStore(ABC):
    """Bank transactions and their reconciliation history."""

    @abstractmethod
    def add_transactions(self, transactions: Iterable[BankTransaction]) -> int:
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: str) -> Optional[BankTransaction]:
        pass

    @abstractmethod
    def list_transactions(
        self, status: Optional[ReconciliationStatus] = None
    ) -> list[BankTransaction]:
        """Transactions ordered by transaction date, newest first."""
        pass

    @abstractmethod
    def records_for_transaction(self, transaction_id: str) -> list[ReconciliationRecord]:
        pass

    @abstractmethod
    def records_for_receivable(self, receivable_id: str) -> list[ReconciliationRecord]:
        pass

    @abstractmethod
    def list_records(self) -> list[ReconciliationRecord]:
        pass

    @abstractmethod
    def unit_of_work(self) -> AbstractContextManager[UnitOfWork]:
        pass
