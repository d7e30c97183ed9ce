"""Utility modules."""

from .exceptions import (
    ReconciliationError,
    ValidationError,
    NotFoundError,
    ReconciliationConflict,
    StorageError,
    ConfigurationError,
    ReportGenerationError,
)
from .logging_config import setup_logging

__all__ = [
    "ReconciliationError",
    "ValidationError",
    "NotFoundError",
    "ReconciliationConflict",
    "StorageError",
    "ConfigurationError",
    "ReportGenerationError",
    "setup_logging",
]
