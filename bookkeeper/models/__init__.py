"""
Data Models Package

This package contains all Pydantic models used in the AI Bookkeeper system.
All data flowing through the pipeline must conform to these schemas.
"""

from bookkeeper.models.statement import (
    CommitResult,
    EncodedDocument,
    EntryType,
    ExtractedStatement,
    ExtractedTransaction,
    ExtractionResponse,
    LedgerCategory,
    LedgerEntry,
    StatementHeader,
    StatementPeriod,
    TransactionRow,
    ValidationIssue,
    ValidationResult,
)
from bookkeeper.models.session import (
    AuthUser,
    Company,
    Profile,
    SessionContext,
    UserRole,
    UserType,
)
from bookkeeper.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Statement models
    "CommitResult",
    "EncodedDocument",
    "EntryType",
    "ExtractedStatement",
    "ExtractedTransaction",
    "ExtractionResponse",
    "LedgerCategory",
    "LedgerEntry",
    "StatementHeader",
    "StatementPeriod",
    "TransactionRow",
    "ValidationIssue",
    "ValidationResult",
    # Session models
    "AuthUser",
    "Company",
    "Profile",
    "SessionContext",
    "UserRole",
    "UserType",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
