"""Strata - schema migrations with a ledger, batches and dry runs."""

__version__ = "0.1.0"
