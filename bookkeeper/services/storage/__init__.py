"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Supabase is the production backend; the in-memory implementations back the
tests and the offline demo mode.
"""

from bookkeeper.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DocumentStorageInterface,
    DuplicateError,
    NotFoundError,
    ProfileStorageInterface,
    StatementStorageInterface,
    StorageError,
)
from bookkeeper.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryDocumentStorage,
    InMemoryProfileStorage,
    InMemoryStatementStorage,
)
from bookkeeper.services.storage.supabase_store import (
    SupabaseClient,
    SupabaseDocumentStorage,
    SupabaseProfileStorage,
    SupabaseStatementStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "DocumentStorageInterface",
    "ProfileStorageInterface",
    "StatementStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryDocumentStorage",
    "InMemoryProfileStorage",
    "InMemoryStatementStorage",
    # Supabase implementation
    "SupabaseClient",
    "SupabaseDocumentStorage",
    "SupabaseProfileStorage",
    "SupabaseStatementStorage",
]
