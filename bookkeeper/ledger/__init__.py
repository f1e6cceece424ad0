"""Ledger persistence package."""

from bookkeeper.ledger.writer import StatementWriter, derive_ledger_entry

__all__ = ["StatementWriter", "derive_ledger_entry"]
