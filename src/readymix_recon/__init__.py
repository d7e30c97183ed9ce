"""Bank transaction reconciliation engine for a ready-mix concrete back office."""

__version__ = "0.1.0"
