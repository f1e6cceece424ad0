"""
In-Memory Storage

Process-local implementations of every storage interface. Used by the
test-suite and by the offline demo mode of the app (no Supabase project
configured). Mirrors the store's contract: generated ids, unique profile
ids, cascading delete of a statement's transactions.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from bookkeeper.models.audit import AuditEvent
from bookkeeper.models.session import Company, Profile
from bookkeeper.models.statement import (
    LedgerEntry,
    StatementHeader,
    TransactionRow,
)
from bookkeeper.services.storage.interface import (
    AuditStorageInterface,
    DocumentStorageInterface,
    DuplicateError,
    NotFoundError,
    ProfileStorageInterface,
    StatementStorageInterface,
    StorageError,
)


class InMemoryStatementStorage(StatementStorageInterface):
    """Statement, transaction and ledger tables as Python lists."""

    def __init__(self):
        self.statements: dict[UUID, StatementHeader] = {}
        self.transactions: list[TransactionRow] = []
        self.ledger_entries: list[LedgerEntry] = []

    async def insert_statement(self, header: StatementHeader) -> StatementHeader:
        stored = header.model_copy(update={"id": header.id or uuid4()})
        self.statements[stored.id] = stored
        return stored

    async def insert_transactions(self, rows: list[TransactionRow]) -> int:
        for row in rows:
            if row.statement_id not in self.statements:
                raise StorageError(f"Unknown statement: {row.statement_id}")
        self.transactions.extend(
            row.model_copy(update={"id": row.id or uuid4()}) for row in rows
        )
        return len(rows)

    async def insert_ledger_entry(self, entry: LedgerEntry) -> LedgerEntry:
        stored = entry.model_copy(update={"id": entry.id or uuid4()})
        self.ledger_entries.append(stored)
        return stored

    async def delete_statement(self, statement_id: UUID) -> bool:
        if self.statements.pop(statement_id, None) is None:
            return False
        self.transactions = [t for t in self.transactions if t.statement_id != statement_id]
        return True

    async def delete_ledger_entries(self, entry_ids: list[UUID]) -> int:
        doomed = set(entry_ids)
        before = len(self.ledger_entries)
        self.ledger_entries = [e for e in self.ledger_entries if e.id not in doomed]
        return before - len(self.ledger_entries)

    async def list_statements(
        self,
        user_id: UUID,
        limit: int = 50,
    ) -> list[StatementHeader]:
        owned = [s for s in self.statements.values() if s.user_id == user_id]
        owned.sort(key=lambda s: s.upload_date, reverse=True)
        return owned[:limit]


class InMemoryProfileStorage(ProfileStorageInterface):
    """Profiles keyed by user id; companies keyed by generated id."""

    def __init__(self):
        self.profiles: dict[UUID, Profile] = {}
        self.companies: dict[UUID, Company] = {}

    async def get_profile(self, user_id: UUID) -> Optional[Profile]:
        return self.profiles.get(user_id)

    async def insert_profile(self, profile: Profile) -> Profile:
        if profile.id in self.profiles:
            raise DuplicateError(f"Profile already exists: {profile.id}")
        now = datetime.utcnow()
        stored = profile.model_copy(update={"created_at": now, "updated_at": now})
        self.profiles[profile.id] = stored
        return stored

    async def set_profile_company(self, user_id: UUID, company_id: UUID) -> Profile:
        profile = self.profiles.get(user_id)
        if profile is None:
            raise NotFoundError(f"Profile not found: {user_id}")
        updated = profile.model_copy(
            update={"company_id": company_id, "updated_at": datetime.utcnow()}
        )
        self.profiles[user_id] = updated
        return updated

    async def insert_company(self, company: Company) -> Company:
        now = datetime.utcnow()
        stored = company.model_copy(
            update={"id": company.id or uuid4(), "created_at": now, "updated_at": now}
        )
        self.companies[stored.id] = stored
        return stored


class InMemoryDocumentStorage(DocumentStorageInterface):
    """Files kept as bytes keyed by path."""

    def __init__(self):
        self.files: dict[str, tuple[bytes, str]] = {}

    async def upload_document(self, path: str, data: bytes, mime_type: str) -> str:
        if path in self.files:
            raise DuplicateError(f"File already exists: {path}")
        self.files[path] = (data, mime_type)
        return path


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True
