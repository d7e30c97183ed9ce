"""Custom exceptions for the reconciliation engine."""

from typing import Optional


class ReconciliationError(Exception):
    """Base exception for reconciliation errors."""

    pass


class ValidationError(ReconciliationError):
    """Malformed transaction rejected at ingestion."""

    pass


class NotFoundError(ReconciliationError):
    """Unknown transaction or receivable."""

    pass


class ReconciliationConflict(ReconciliationError):
    """
    A confirmation precondition no longer holds.

    Raised when the transaction is not unmatched anymore or the receivable
    was already paid. No state has been changed when this is raised.
    """

    def __init__(
        self,
        message: str,
        transaction_id: Optional[str] = None,
        receivable_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.transaction_id = transaction_id
        self.receivable_id = receivable_id


class StorageError(ReconciliationError):
    """Backend store or ledger unavailable."""

    pass


class ConfigurationError(ReconciliationError):
    """Error in configuration."""

    pass


class ReportGenerationError(ReconciliationError):
    """Error generating Excel report."""

    pass
