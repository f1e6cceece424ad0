"""
Tests for the Supabase storage backends, against a mocked client.

The column sets below are the fixed schema of the store; every record the
backends send must fit them, or PostgREST rejects the whole insert.
"""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from postgrest.exceptions import APIError

from bookkeeper.ledger import StatementWriter
from bookkeeper.models.session import AuthUser, Company, Profile, UserType
from bookkeeper.models.statement import (
    EntryType,
    LedgerCategory,
    LedgerEntry,
    StatementHeader,
    TransactionRow,
)
from bookkeeper.services.auth import ProfileService
from bookkeeper.services.extraction import build_sample_statement
from bookkeeper.services.storage import (
    DuplicateError,
    NotFoundError,
    StorageError,
    SupabaseClient,
    SupabaseProfileStorage,
    SupabaseStatementStorage,
)


BANK_STATEMENTS_COLUMNS = {
    "id", "user_id", "file_name", "file_path", "upload_date", "processed", "processed_at",
}
BANK_TRANSACTIONS_COLUMNS = {
    "id", "statement_id", "user_id", "transaction_date", "description", "debit_amount",
    "credit_amount", "balance", "reference_number", "category", "created_at",
}
LEDGER_ENTRIES_COLUMNS = {
    "id", "user_id", "bill_id", "date", "description", "reference", "type", "amount",
    "balance", "created_at",
}
# NOT NULL without a default
LEDGER_ENTRIES_REQUIRED = {"user_id", "date", "description", "reference", "type", "amount", "balance"}
PROFILES_COLUMNS = {
    "id", "email", "full_name", "role", "user_type", "company_id", "company_name",
    "gst_number", "created_at", "updated_at",
}
COMPANIES_COLUMNS = {
    "id", "name", "gst_number", "address", "phone", "email", "created_at", "updated_at",
}

TABLE_COLUMNS = {
    "bank_statements": BANK_STATEMENTS_COLUMNS,
    "bank_transactions": BANK_TRANSACTIONS_COLUMNS,
    "ledger_entries": LEDGER_ENTRIES_COLUMNS,
    "profiles": PROFILES_COLUMNS,
    "companies": COMPANIES_COLUMNS,
}


def _api_error(code: str, message: str = "request refused") -> APIError:
    return APIError({"code": code, "message": message, "details": "", "hint": ""})


def _stored(payload) -> SimpleNamespace:
    """What PostgREST returns for an insert: the rows, with generated ids."""
    records = payload if isinstance(payload, list) else [payload]
    return SimpleNamespace(data=[{"id": str(uuid4()), **r} for r in records])


def _echoing_client() -> tuple[SupabaseClient, dict]:
    """
    A SupabaseClient over a mocked supabase Client whose inserts echo rows back.

    Returns the client and the per-table mocks, so tests can read what
    was sent with `tables[name].insert.call_args_list`.
    """
    raw = MagicMock()
    tables: dict[str, MagicMock] = {}

    def table(name):
        if name not in tables:
            mock = MagicMock(name=name)
            mock.insert.side_effect = lambda payload: MagicMock(
                execute=MagicMock(return_value=_stored(payload))
            )
            tables[name] = mock
        return tables[name]

    raw.table.side_effect = table
    return SupabaseClient(client=raw), tables


def _sent(tables: dict, name: str) -> list[dict]:
    records = []
    for call in tables[name].insert.call_args_list:
        payload = call.args[0]
        records.extend(payload if isinstance(payload, list) else [payload])
    return records


class TestRecordShapes:
    """Record dicts fit the store's columns."""

    def test_header_record(self):
        header = StatementHeader(user_id=uuid4(), file_name="s.pdf", file_path="p")
        assert set(header.to_record()) <= BANK_STATEMENTS_COLUMNS

    def test_transaction_record(self):
        row = TransactionRow(
            statement_id=uuid4(),
            user_id=uuid4(),
            transaction_date=date(2024, 1, 5),
            description="FUEL",
            debit_amount=Decimal("100"),
            balance=Decimal("900"),
            reference_number="REF1",
            category=LedgerCategory.FUEL_EXPENSE,
        )
        assert set(row.to_record()) <= BANK_TRANSACTIONS_COLUMNS

    @pytest.mark.parametrize("entry_id", [None, uuid4()])
    def test_ledger_record(self, entry_id):
        """Category stays on the transaction row; the ledger has no such column."""
        entry = LedgerEntry(
            id=entry_id,
            user_id=uuid4(),
            date=date(2024, 1, 5),
            description="FUEL",
            entry_type=EntryType.DEBIT,
            amount=Decimal("100"),
            balance=Decimal("900"),
            category=LedgerCategory.FUEL_EXPENSE,
        )
        record = entry.to_record()
        assert set(record) <= LEDGER_ENTRIES_COLUMNS
        assert LEDGER_ENTRIES_REQUIRED <= set(record)
        assert ("id" in record) is (entry_id is not None)

    def test_profile_and_company_records(self):
        profile = Profile(
            id=uuid4(),
            email="owner@acme.example",
            full_name="Owner",
            user_type=UserType.ORGANIZATION,
            company_id=uuid4(),
            company_name="Acme Builders",
            gst_number="27ABCDE1234F1Z5",
        )
        company = Company(name="Acme Builders", gst_number="27ABCDE1234F1Z5", email="a@b.c")
        assert set(profile.to_record()) <= PROFILES_COLUMNS
        assert set(company.to_record()) <= COMPANIES_COLUMNS


class TestSupabaseStatementStorage:
    """Tests for statement, transaction and ledger writes."""

    @pytest.mark.asyncio
    async def test_commit_sends_only_known_columns(self, session):
        """A full save touches three tables, each with columns it has."""
        client, tables = _echoing_client()
        writer = StatementWriter(SupabaseStatementStorage(client=client))

        result = await writer.commit(session, build_sample_statement())

        assert result.transaction_count == 5
        assert result.ledger_entry_count == 5
        assert set(tables) == {"bank_statements", "bank_transactions", "ledger_entries"}
        for name in tables:
            for record in _sent(tables, name):
                unknown = set(record) - TABLE_COLUMNS[name]
                assert not unknown, f"{name} has no columns {sorted(unknown)}"
        # one bulk insert for the transaction rows
        assert tables["bank_transactions"].insert.call_count == 1

    @pytest.mark.asyncio
    async def test_insert_ledger_entry_keeps_category(self):
        client, _ = _echoing_client()
        storage = SupabaseStatementStorage(client=client)
        entry = LedgerEntry(
            user_id=uuid4(),
            date=date(2024, 1, 5),
            description="FUEL",
            entry_type=EntryType.DEBIT,
            amount=Decimal("100"),
            category=LedgerCategory.FUEL_EXPENSE,
        )

        stored = await storage.insert_ledger_entry(entry)

        assert stored.id is not None
        assert stored.category is LedgerCategory.FUEL_EXPENSE

    @pytest.mark.asyncio
    async def test_delete_ledger_entries_by_id(self):
        raw = MagicMock()
        ids = [uuid4(), uuid4()]
        query = raw.table.return_value.delete.return_value.in_
        query.return_value.execute.return_value = SimpleNamespace(data=[{}, {}])

        removed = await SupabaseStatementStorage(client=SupabaseClient(client=raw)).delete_ledger_entries(ids)

        assert removed == 2
        raw.table.assert_called_with("ledger_entries")
        query.assert_called_once_with("id", [str(i) for i in ids])

    @pytest.mark.asyncio
    async def test_delete_no_ledger_entries_skips_request(self):
        raw = MagicMock()
        storage = SupabaseStatementStorage(client=SupabaseClient(client=raw))
        assert await storage.delete_ledger_entries([]) == 0
        raw.table.assert_not_called()

    @pytest.mark.asyncio
    async def test_insert_failure_is_storage_error(self):
        raw = MagicMock()
        raw.table.return_value.insert.return_value.execute.side_effect = _api_error("23502")
        storage = SupabaseStatementStorage(client=SupabaseClient(client=raw))

        with pytest.raises(StorageError):
            await storage.insert_statement(
                StatementHeader(user_id=uuid4(), file_name="s.pdf", file_path="p")
            )

    @pytest.mark.asyncio
    async def test_empty_insert_reply_is_storage_error(self):
        """An insert that returns no row (e.g. hidden by RLS) is a failure."""
        raw = MagicMock()
        raw.table.return_value.insert.return_value.execute.return_value = SimpleNamespace(data=[])
        storage = SupabaseStatementStorage(client=SupabaseClient(client=raw))

        with pytest.raises(StorageError, match="no row"):
            await storage.insert_statement(
                StatementHeader(user_id=uuid4(), file_name="s.pdf", file_path="p")
            )


class TestSupabaseProfileStorage:
    """Tests for profile and company rows."""

    def _profile(self) -> Profile:
        return Profile(id=uuid4(), email="owner@example.com", full_name="Owner")

    @pytest.mark.asyncio
    async def test_unique_violation_is_duplicate(self):
        raw = MagicMock()
        raw.table.return_value.insert.return_value.execute.side_effect = _api_error(
            "23505", 'duplicate key value violates unique constraint "profiles_pkey"'
        )
        storage = SupabaseProfileStorage(client=SupabaseClient(client=raw))

        with pytest.raises(DuplicateError):
            await storage.insert_profile(self._profile())

    @pytest.mark.asyncio
    async def test_other_api_error_is_storage_error(self):
        raw = MagicMock()
        raw.table.return_value.insert.return_value.execute.side_effect = _api_error(
            "42501", "new row violates row-level security policy"
        )
        storage = SupabaseProfileStorage(client=SupabaseClient(client=raw))

        with pytest.raises(StorageError) as exc_info:
            await storage.insert_profile(self._profile())
        assert not isinstance(exc_info.value, DuplicateError)
        assert "row-level security" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_lost_race_reads_winner_row(self):
        """ensure_profile over Supabase: a 23505 on insert falls back to the stored row."""
        user = AuthUser(id=uuid4(), email="owner@example.com")
        winner = {"id": str(user.id), "email": user.email, "full_name": "Winner", "role": "user"}
        raw = MagicMock()
        table = raw.table.return_value
        table.select.return_value.eq.return_value.limit.return_value.execute.side_effect = [
            SimpleNamespace(data=[]),
            SimpleNamespace(data=[winner]),
        ]
        table.insert.return_value.execute.side_effect = _api_error("23505")
        storage = SupabaseProfileStorage(client=SupabaseClient(client=raw))

        profile = await ProfileService(storage).ensure_profile(user)

        assert profile.id == user.id
        assert profile.full_name == "Winner"

    @pytest.mark.asyncio
    async def test_missing_profile(self):
        raw = MagicMock()
        table = raw.table.return_value
        table.select.return_value.eq.return_value.limit.return_value.execute.return_value = (
            SimpleNamespace(data=[])
        )
        table.update.return_value.eq.return_value.execute.return_value = SimpleNamespace(data=[])
        storage = SupabaseProfileStorage(client=SupabaseClient(client=raw))

        assert await storage.get_profile(uuid4()) is None
        with pytest.raises(NotFoundError):
            await storage.set_profile_company(uuid4(), uuid4())

    @pytest.mark.asyncio
    async def test_organization_provisioning_records(self):
        """Profile, company and link writes all fit their tables."""
        client, tables = _echoing_client()
        profiles_table = client.connect().table("profiles")
        profiles_table.select.return_value.eq.return_value.limit.return_value.execute.return_value = (
            SimpleNamespace(data=[])
        )
        user = AuthUser(
            id=uuid4(),
            email="owner@acme.example",
            metadata={"user_type": "organization", "company_name": "Acme Builders"},
        )
        linked = {"id": str(user.id), "email": user.email, "user_type": "organization"}
        profiles_table.update.return_value.eq.return_value.execute.return_value = SimpleNamespace(
            data=[{**linked, "company_id": str(uuid4())}]
        )

        profile = await ProfileService(SupabaseProfileStorage(client=client)).ensure_profile(user)

        assert profile.company_id is not None
        for name in ("profiles", "companies"):
            for record in _sent(tables, name):
                assert set(record) <= TABLE_COLUMNS[name]
        [update] = profiles_table.update.call_args_list
        assert set(update.args[0]) <= PROFILES_COLUMNS


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
