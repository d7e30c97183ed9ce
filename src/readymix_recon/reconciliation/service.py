"""
Reconciliation service.
Wires the matching engine, recorder and auto-reconciler to injected stores.
"""

from typing import Any, Callable, Iterable, Mapping, Optional
import logging

from ..config import ReconConfig
from ..matching.engine import MatchingEngine
from ..models.ledger import MatchSuggestion
from ..models.transaction import (
    BankTransaction,
    MatchType,
    ReconciliationRecord,
    ReconciliationStats,
    ReconciliationStatus,
)
from ..storage.base import LedgerReader, TransactionStore
from ..utils.exceptions import NotFoundError
from .auto import AutoReconciler, AutoReconcileResult
from .ingestion import ingest_transactions
from .recorder import ReconciliationRecorder
from .stats import compute_stats

logger = logging.getLogger(__name__)

StatsListener = Callable[[ReconciliationStats], None]


class ReconciliationService:
    """
    Entry point for callers (CLI, API handlers, schedulers).

    Listeners registered with `subscribe` receive freshly computed stats
    after every state-changing operation.
    """

    def __init__(
        self,
        store: TransactionStore,
        ledger: LedgerReader,
        config: Optional[ReconConfig] = None,
        engine: Optional[MatchingEngine] = None,
    ):
        self.config = config or ReconConfig()
        self.store = store
        self.ledger = ledger
        self.engine = engine or MatchingEngine(self.config)
        self.recorder = ReconciliationRecorder(
            store,
            system_identity=self.config.auto_reconcile.system_identity,
            default_ignore_note=self.config.ledger.ignore_note,
        )
        self.auto_reconciler = AutoReconciler(
            self.engine,
            self.recorder,
            store,
            ledger,
            min_score=self.config.auto_reconcile.min_score,
        )
        self._listeners: list[StatsListener] = []

    # Observers

    def subscribe(self, listener: StatsListener) -> Callable[[], None]:
        """Register a stats listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        stats = self.stats()
        for listener in list(self._listeners):
            # The change is already committed; a listener failure must not undo it
            try:
                listener(stats)
            except Exception:
                logger.exception(f"Stats listener {listener!r} failed")

    # Queries

    def stats(self) -> ReconciliationStats:
        return compute_stats(self.store.list_transactions())

    def get_transaction(self, transaction_id: str) -> BankTransaction:
        txn = self.store.get_transaction(transaction_id)
        if txn is None:
            raise NotFoundError(f"Unknown transaction: {transaction_id}")
        return txn

    def list_transactions(
        self,
        status: Optional[ReconciliationStatus] = None,
        search: Optional[str] = None,
    ) -> list[BankTransaction]:
        """
        List transactions, newest first.

        Args:
            status: Only transactions in this status
            search: Case-insensitive text matched against label,
                bank reference and amount
        """
        txns = self.store.list_transactions(status)
        if not search:
            return txns

        needle = search.lower()
        return [
            t
            for t in txns
            if needle in t.label.lower()
            or (t.bank_reference and needle in t.bank_reference.lower())
            or needle in str(t.amount)
        ]

    def suggest(self, transaction_id: str) -> list[MatchSuggestion]:
        """Rank open receivables for one transaction; empty unless it is pending."""
        txn = self.get_transaction(transaction_id)
        if not txn.is_pending:
            logger.debug(f"No suggestions for {transaction_id}: {txn.status.value}")
            return []
        return self.engine.find_matches(
            txn, self.ledger.list_open_receivables(), self.ledger.list_clients()
        )

    def records_for_transaction(self, transaction_id: str) -> list[ReconciliationRecord]:
        return self.store.records_for_transaction(transaction_id)

    def records_for_receivable(self, receivable_id: str) -> list[ReconciliationRecord]:
        return self.store.records_for_receivable(receivable_id)

    # Commands

    def ingest(self, rows: Iterable[Mapping[str, Any]]) -> list[BankTransaction]:
        txns = ingest_transactions(
            self.store, rows, default_currency=self.config.ledger.default_currency
        )
        self._notify()
        return txns

    def confirm(
        self,
        transaction_id: str,
        suggestion: MatchSuggestion,
        match_type: MatchType = MatchType.MANUAL,
        reconciled_by: Optional[str] = None,
    ) -> ReconciliationRecord:
        record = self.recorder.confirm_match(
            transaction_id, suggestion, match_type=match_type, reconciled_by=reconciled_by
        )
        self._notify()
        return record

    def ignore(self, transaction_id: str, reason: Optional[str] = None) -> BankTransaction:
        txn = self.recorder.ignore_transaction(transaction_id, reason)
        self._notify()
        return txn

    def auto_reconcile(self, min_score: Optional[float] = None) -> AutoReconcileResult:
        result = self.auto_reconciler.auto_reconcile(min_score)
        self._notify()
        return result
