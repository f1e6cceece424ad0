"""
Abstract Storage Interface

We define abstract interfaces for storage operations so that:
1. Business logic never talks to Supabase directly
2. Tests and offline demos run against in-memory storage
3. The store can be swapped without touching the pipeline

The store's schema is fixed and owned elsewhere (migrations + RLS). These
interfaces only cover the operations the pipeline needs.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from bookkeeper.models.audit import AuditEvent
from bookkeeper.models.session import Company, Profile
from bookkeeper.models.statement import (
    LedgerEntry,
    StatementHeader,
    TransactionRow,
)


class StatementStorageInterface(ABC):
    """
    Abstract interface for statement, transaction and ledger rows.

    Every row is owner-scoped by user_id.
    """

    @abstractmethod
    async def insert_statement(self, header: StatementHeader) -> StatementHeader:
        """
        Insert a statement header.

        Returns:
            The stored header, with the id generated by the store

        Raises:
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def insert_transactions(self, rows: list[TransactionRow]) -> int:
        """
        Bulk-insert transaction rows in one request.

        Returns:
            Number of rows inserted

        Raises:
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def insert_ledger_entry(self, entry: LedgerEntry) -> LedgerEntry:
        """
        Insert one ledger entry.

        Raises:
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def delete_statement(self, statement_id: UUID) -> bool:
        """
        Delete a statement header. Its transaction rows go with it.

        Returns:
            True if a row was deleted
        """
        pass

    @abstractmethod
    async def delete_ledger_entries(self, entry_ids: list[UUID]) -> int:
        """
        Delete ledger entries by id.

        Returns:
            Number of entries deleted
        """
        pass

    @abstractmethod
    async def list_statements(
        self,
        user_id: UUID,
        limit: int = 50,
    ) -> list[StatementHeader]:
        """
        List a user's statement headers, newest upload first.
        """
        pass


class ProfileStorageInterface(ABC):
    """
    Abstract interface for profiles and companies.

    The profile primary key is the auth user id; a second insert for the
    same user MUST raise DuplicateError.
    """

    @abstractmethod
    async def get_profile(self, user_id: UUID) -> Optional[Profile]:
        """Return the profile, or None if it does not exist."""
        pass

    @abstractmethod
    async def insert_profile(self, profile: Profile) -> Profile:
        """
        Insert a profile.

        Raises:
            DuplicateError: If a profile with this id already exists
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def set_profile_company(self, user_id: UUID, company_id: UUID) -> Profile:
        """
        Link a profile to a company.

        Raises:
            NotFoundError: If the profile does not exist
        """
        pass

    @abstractmethod
    async def insert_company(self, company: Company) -> Company:
        """Insert a company and return it with its generated id."""
        pass


class DocumentStorageInterface(ABC):
    """Object storage for the original uploaded statement files."""

    @abstractmethod
    async def upload_document(self, path: str, data: bytes, mime_type: str) -> str:
        """
        Store a file.

        Returns:
            The path the file was stored under

        Raises:
            StorageError: If the upload fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
