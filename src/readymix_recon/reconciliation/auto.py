"""Automatic reconciliation of high-confidence matches."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
import logging

from ..matching.engine import MatchingEngine
from ..models.transaction import MatchType, ReconciliationRecord, ReconciliationStatus
from ..storage.base import LedgerReader, TransactionStore
from ..utils.exceptions import ReconciliationConflict, StorageError
from .recorder import ReconciliationRecorder

logger = logging.getLogger(__name__)


@dataclass
class AutoReconcileResult:
    """Outcome of one automatic pass."""

    min_score: float
    records: list[ReconciliationRecord] = field(default_factory=list)
    below_threshold_count: int = 0
    no_candidate_count: int = 0
    failed_ids: list[str] = field(default_factory=list)

    @property
    def reconciled_count(self) -> int:
        return len(self.records)


class AutoReconciler:
    """
    Confirms every pending transaction whose best suggestion meets a threshold.

    Each confirmation is its own unit of work: a conflict or storage
    failure on one transaction is logged and the pass moves on.
    """

    def __init__(
        self,
        engine: MatchingEngine,
        recorder: ReconciliationRecorder,
        store: TransactionStore,
        ledger: LedgerReader,
        min_score: float = 0.80,
    ):
        self.engine = engine
        self.recorder = recorder
        self.store = store
        self.ledger = ledger
        self.min_score = min_score

    def auto_reconcile(self, min_score: Optional[float] = None) -> AutoReconcileResult:
        """
        Run one automatic reconciliation pass.

        Args:
            min_score: Override of the configured confidence threshold

        Returns:
            AutoReconcileResult; `reconciled_count` is the headline figure
        """
        threshold = self.min_score if min_score is None else min_score
        result = AutoReconcileResult(min_score=threshold)
        start_time = datetime.now()

        pending = self.store.list_transactions(ReconciliationStatus.UNMATCHED)
        receivables = self.ledger.list_open_receivables()
        clients = self.ledger.list_clients()

        logger.info(
            f"Starting auto-reconciliation: {len(pending)} pending txns, "
            f"{len(receivables)} open receivables, threshold {threshold:.2f}"
        )

        for txn in pending:
            suggestions = self.engine.find_matches(txn, receivables, clients)
            if not suggestions:
                result.no_candidate_count += 1
                continue

            best = suggestions[0]
            if best.score < threshold:
                result.below_threshold_count += 1
                continue

            try:
                record = self.recorder.confirm_match(
                    txn.id, best, match_type=MatchType.AUTOMATIC
                )
            except ReconciliationConflict as e:
                logger.warning(f"Skipping {txn.id}: {e}")
                result.failed_ids.append(txn.id)
                continue
            except StorageError as e:
                logger.error(f"Storage failure on {txn.id}, continuing: {e}")
                result.failed_ids.append(txn.id)
                continue

            result.records.append(record)
            # The receivable is paid now; later transactions must not see it
            receivables = [
                r
                for r in receivables
                if not (r.id == best.receivable_id and r.kind == best.kind)
            ]

        elapsed = (datetime.now() - start_time).total_seconds()
        logger.info(
            f"Auto-reconciliation complete in {elapsed:.2f}s: "
            f"{result.reconciled_count} reconciled, "
            f"{result.below_threshold_count} below threshold, "
            f"{result.no_candidate_count} without candidates, "
            f"{len(result.failed_ids)} failed"
        )
        return result
