"""Transaction store and ledger backends."""

from decimal import Decimal

from ..config import ReconConfig
from .base import LedgerReader, TransactionStore, UnitOfWork
from .memory import InMemoryStore
from .sql import SqlStore


def create_store(config: ReconConfig):
    """
    Build the store backend named in configuration.

    Returns:
        An object implementing both LedgerReader and TransactionStore
    """
    tax_rate = Decimal(str(config.ledger.delivery_tax_rate))
    if config.storage.backend == "memory":
        return InMemoryStore(delivery_tax_rate=tax_rate)
    return SqlStore(
        database_url=config.storage.database_url,
        delivery_tax_rate=tax_rate,
        echo=config.storage.echo,
    )


__all__ = [
    "LedgerReader",
    "TransactionStore",
    "UnitOfWork",
    "InMemoryStore",
    "SqlStore",
    "create_store",
]
