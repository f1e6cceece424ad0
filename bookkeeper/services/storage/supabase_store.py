"""
Supabase Storage Implementation

Supabase is the managed backend: Postgres tables behind row-level security,
password auth, and an object storage bucket for original files.

TRADEOFFS:
- PostgREST has no multi-request transactions, so the ledger writer
  compensates on failure instead of rolling back
- One client per user session: the client carries that user's JWT, and
  RLS scopes every query to it

The implementation follows the abstract interfaces, so the pipeline runs
unchanged against the in-memory store in tests.
"""

from typing import Any, Optional
from uuid import UUID

import structlog
from postgrest.exceptions import APIError
from supabase import Client, create_client

from bookkeeper.config import get_settings
from bookkeeper.models.session import Company, Profile
from bookkeeper.models.statement import (
    LedgerEntry,
    StatementHeader,
    TransactionRow,
)
from bookkeeper.services.storage.interface import (
    ConnectionError,
    DocumentStorageInterface,
    DuplicateError,
    NotFoundError,
    ProfileStorageInterface,
    StatementStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)

# Table names (fixed schema)
STATEMENTS_TABLE = "bank_statements"
TRANSACTIONS_TABLE = "bank_transactions"
LEDGER_TABLE = "ledger_entries"
PROFILES_TABLE = "profiles"
COMPANIES_TABLE = "companies"

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"


class SupabaseClient:
    """
    Low-level Supabase client wrapper.

    Creates the client lazily from settings. One instance per user session.
    """

    def __init__(self, client: Optional[Client] = None):
        self._client = client
        self._bucket: Optional[str] = None

    def connect(self) -> Client:
        if self._client is None:
            try:
                settings = get_settings().supabase
                self._client = create_client(settings.url, settings.key)
                self._bucket = settings.documents_bucket
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Supabase: {e}")
        return self._client

    @property
    def documents_bucket(self) -> str:
        if self._bucket is None:
            self._bucket = get_settings().supabase.documents_bucket
        return self._bucket

    def table(self, name: str):
        return self.connect().table(name)


def _first_row(response: Any, what: str) -> dict:
    rows = getattr(response, "data", None) or []
    if not rows:
        raise StorageError(f"Store returned no row for {what}")
    return rows[0]


class SupabaseStatementStorage(StatementStorageInterface):
    """Statement headers, transactions and ledger entries in Supabase."""

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or SupabaseClient()

    async def insert_statement(self, header: StatementHeader) -> StatementHeader:
        try:
            response = self._client.table(STATEMENTS_TABLE).insert(header.to_record()).execute()
            return StatementHeader(**_first_row(response, "statement header"))
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert statement: {e}")

    async def insert_transactions(self, rows: list[TransactionRow]) -> int:
        if not rows:
            return 0
        try:
            records = [row.to_record() for row in rows]
            response = self._client.table(TRANSACTIONS_TABLE).insert(records).execute()
            return len(response.data or [])
        except Exception as e:
            raise StorageError(f"Failed to insert transactions: {e}")

    async def insert_ledger_entry(self, entry: LedgerEntry) -> LedgerEntry:
        try:
            response = self._client.table(LEDGER_TABLE).insert(entry.to_record()).execute()
            row = _first_row(response, "ledger entry")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert ledger entry: {e}")
        return entry.model_copy(update={"id": UUID(str(row["id"]))})

    async def delete_statement(self, statement_id: UUID) -> bool:
        try:
            response = (
                self._client.table(STATEMENTS_TABLE)
                .delete()
                .eq("id", str(statement_id))
                .execute()
            )
            return bool(response.data)
        except Exception as e:
            raise StorageError(f"Failed to delete statement: {e}")

    async def delete_ledger_entries(self, entry_ids: list[UUID]) -> int:
        if not entry_ids:
            return 0
        try:
            response = (
                self._client.table(LEDGER_TABLE)
                .delete()
                .in_("id", [str(i) for i in entry_ids])
                .execute()
            )
            return len(response.data or [])
        except Exception as e:
            raise StorageError(f"Failed to delete ledger entries: {e}")

    async def list_statements(
        self,
        user_id: UUID,
        limit: int = 50,
    ) -> list[StatementHeader]:
        try:
            response = (
                self._client.table(STATEMENTS_TABLE)
                .select("*")
                .eq("user_id", str(user_id))
                .order("upload_date", desc=True)
                .limit(limit)
                .execute()
            )
            return [StatementHeader(**row) for row in response.data or []]
        except Exception as e:
            raise StorageError(f"Failed to list statements: {e}")


class SupabaseProfileStorage(ProfileStorageInterface):
    """Profiles and companies in Supabase."""

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or SupabaseClient()

    async def get_profile(self, user_id: UUID) -> Optional[Profile]:
        try:
            response = (
                self._client.table(PROFILES_TABLE)
                .select("*")
                .eq("id", str(user_id))
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to get profile: {e}")
        rows = response.data or []
        return Profile(**rows[0]) if rows else None

    async def insert_profile(self, profile: Profile) -> Profile:
        try:
            response = self._client.table(PROFILES_TABLE).insert(profile.to_record()).execute()
            return Profile(**_first_row(response, "profile"))
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateError(f"Profile already exists: {profile.id}")
            raise StorageError(f"Failed to insert profile: {e.message}")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert profile: {e}")

    async def set_profile_company(self, user_id: UUID, company_id: UUID) -> Profile:
        try:
            response = (
                self._client.table(PROFILES_TABLE)
                .update({"company_id": str(company_id)})
                .eq("id", str(user_id))
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to update profile: {e}")
        rows = response.data or []
        if not rows:
            raise NotFoundError(f"Profile not found: {user_id}")
        return Profile(**rows[0])

    async def insert_company(self, company: Company) -> Company:
        try:
            response = self._client.table(COMPANIES_TABLE).insert(company.to_record()).execute()
            return Company(**_first_row(response, "company"))
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert company: {e}")


class SupabaseDocumentStorage(DocumentStorageInterface):
    """Original statement files in a Supabase storage bucket."""

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or SupabaseClient()

    async def upload_document(self, path: str, data: bytes, mime_type: str) -> str:
        bucket = self._client.documents_bucket
        try:
            self._client.connect().storage.from_(bucket).upload(
                path,
                data,
                {"content-type": mime_type},
            )
        except Exception as e:
            raise StorageError(f"Failed to upload document to {bucket}: {e}")
        logger.info("document_uploaded", bucket=bucket, path=path, size=len(data))
        return path
