"""
Reconciliation recorder.
Commits a confirmed match (record + transaction + receivable) as one unit.
"""

from typing import Optional
import logging

from ..models.ledger import MatchSuggestion
from ..models.transaction import (
    BankTransaction,
    MatchType,
    ReconciliationRecord,
    ReconciliationStatus,
    utc_now,
)
from ..storage.base import TransactionStore
from ..utils.exceptions import NotFoundError, ReconciliationConflict

logger = logging.getLogger(__name__)


class ReconciliationRecorder:
    """
    Applies confirmed matches and ignore decisions to the transaction store.

    Confirmation is deliberately not idempotent: a second confirmation of
    the same transaction raises ReconciliationConflict.
    """

    def __init__(
        self,
        store: TransactionStore,
        system_identity: str = "system",
        default_ignore_note: str = "Manually ignored",
    ):
        """
        Initialize the recorder.

        Args:
            store: Transaction store providing units of work
            system_identity: Reconciler recorded for automatic matches
            default_ignore_note: Note stored when ignoring without a reason
        """
        self.store = store
        self.system_identity = system_identity
        self.default_ignore_note = default_ignore_note

    def _load(self, transaction_id: str) -> BankTransaction:
        txn = self.store.get_transaction(transaction_id)
        if txn is None:
            raise NotFoundError(f"Unknown transaction: {transaction_id}")
        return txn

    def confirm_match(
        self,
        transaction_id: str,
        suggestion: MatchSuggestion,
        match_type: MatchType = MatchType.MANUAL,
        reconciled_by: Optional[str] = None,
    ) -> ReconciliationRecord:
        """
        Reconcile a transaction against the receivable in `suggestion`.

        Args:
            transaction_id: Transaction to reconcile
            suggestion: Suggestion produced by the matching engine
            match_type: Manual (operator) or automatic
            reconciled_by: Operator identity; automatic matches default to
                the system identity

        Returns:
            The reconciliation record written

        Raises:
            NotFoundError: If the transaction does not exist
            ReconciliationConflict: If the transaction is no longer unmatched
                or the receivable is no longer unpaid. Nothing is written.
        """
        txn = self._load(transaction_id)
        receivable_id = suggestion.receivable_id

        if txn.status != ReconciliationStatus.UNMATCHED:
            logger.warning(
                f"Cannot reconcile {transaction_id}: status is {txn.status.value}"
            )
            raise ReconciliationConflict(
                f"Transaction {transaction_id} is {txn.status.value}, not unmatched",
                transaction_id=transaction_id,
                receivable_id=receivable_id,
            )

        if reconciled_by is None and match_type == MatchType.AUTOMATIC:
            reconciled_by = self.system_identity

        record = ReconciliationRecord(
            transaction_id=transaction_id,
            invoice_id=suggestion.invoice_id,
            delivery_id=suggestion.delivery_id,
            client_id=suggestion.client_id,
            receivable_amount=suggestion.receivable_amount,
            transaction_amount=txn.amount,
            match_type=match_type,
            confidence_score=suggestion.score,
            reasons=suggestion.reason_text,
            validated_by=reconciled_by,
        )

        try:
            self._commit(record, suggestion, reconciled_by)
        except ReconciliationConflict as e:
            if e.transaction_id is not None:
                raise
            # Raised by the store itself (lost race on a unique constraint)
            logger.warning(f"Transaction {transaction_id} lost a concurrent confirmation")
            raise ReconciliationConflict(
                str(e), transaction_id=transaction_id, receivable_id=receivable_id
            ) from e

        logger.info(
            f"Reconciled {transaction_id} -> {suggestion.kind.value} {receivable_id} "
            f"({match_type.value}, score {suggestion.score:.2f}, variance {record.variance})"
        )
        return record

    def _commit(
        self,
        record: ReconciliationRecord,
        suggestion: MatchSuggestion,
        reconciled_by: Optional[str],
    ) -> None:
        """Write the record and both status changes in one unit of work."""
        transaction_id = record.transaction_id
        receivable_id = suggestion.receivable_id

        with self.store.unit_of_work() as uow:
            uow.add_record(record)

            if not uow.transition_transaction(
                transaction_id,
                ReconciliationStatus.UNMATCHED,
                status=ReconciliationStatus.RECONCILED,
                client_id=suggestion.client_id,
                receivable_id=receivable_id,
                confidence_score=suggestion.score,
                reconciled_by=reconciled_by,
                reconciled_at=record.created_at,
            ):
                logger.warning(f"Transaction {transaction_id} changed state concurrently")
                raise ReconciliationConflict(
                    f"Transaction {transaction_id} is no longer unmatched",
                    transaction_id=transaction_id,
                    receivable_id=receivable_id,
                )

            if not uow.mark_receivable_paid(receivable_id, suggestion.kind):
                logger.warning(
                    f"{suggestion.kind.value.capitalize()} {receivable_id} is not open for payment"
                )
                raise ReconciliationConflict(
                    f"{suggestion.kind.value.capitalize()} {receivable_id} is not unpaid",
                    transaction_id=transaction_id,
                    receivable_id=receivable_id,
                )

    def ignore_transaction(
        self, transaction_id: str, reason: Optional[str] = None
    ) -> BankTransaction:
        """
        Take a transaction out of the reconciliation workflow.

        Ignoring an already ignored transaction is a no-op.

        Raises:
            NotFoundError: If the transaction does not exist
            ReconciliationConflict: If the transaction is already reconciled
        """
        txn = self._load(transaction_id)
        if txn.status == ReconciliationStatus.IGNORED:
            return txn

        with self.store.unit_of_work() as uow:
            applied = uow.transition_transaction(
                transaction_id,
                ReconciliationStatus.UNMATCHED,
                status=ReconciliationStatus.IGNORED,
                notes=reason or self.default_ignore_note,
            )

        txn = self._load(transaction_id)
        if not applied and txn.status != ReconciliationStatus.IGNORED:
            raise ReconciliationConflict(
                f"Transaction {transaction_id} is {txn.status.value}, cannot ignore",
                transaction_id=transaction_id,
            )

        if applied:
            logger.info(f"Ignored transaction {transaction_id}: {txn.notes}")
        return txn
