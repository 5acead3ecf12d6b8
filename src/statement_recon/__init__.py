"""Bank statement import, deduplication, auto-matching and running-balance ledger."""

__version__ = "0.1.0"
