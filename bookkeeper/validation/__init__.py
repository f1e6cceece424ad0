"""Review checks package."""

from bookkeeper.validation.validator import StatementValidator

__all__ = ["StatementValidator"]
