"""Reconciliation workflow: recording, automation, statistics."""

from .auto import AutoReconciler, AutoReconcileResult
from .ingestion import ingest_transactions, parse_ledger, parse_transactions
from .recorder import ReconciliationRecorder
from .service import ReconciliationService
from .stats import compute_stats

__all__ = [
    "AutoReconciler",
    "AutoReconcileResult",
    "ReconciliationRecorder",
    "ReconciliationService",
    "compute_stats",
    "ingest_transactions",
    "parse_ledger",
    "parse_transactions",
]
