"""
Persistence Writer

Writes a confirmed statement to the store, in this order:
1. One statement header row
2. All transaction rows, in a single bulk insert
3. One derived ledger entry per transaction, sequentially

The store has no transaction spanning these requests. If a later step
fails, the writer removes what it already wrote (the ledger entries it
inserted, by id, then the header, whose transaction rows go with it by
cascade) and raises
PersistenceError. Cleanup is best effort: if it fails too, that is logged
and audited, and the original error is still the one raised.

Only ever called after the user confirmed the reviewed statement.
"""

import time
from typing import Optional
from uuid import UUID

import structlog

from bookkeeper.audit import AuditLogger
from bookkeeper.errors import PersistenceError
from bookkeeper.models.session import SessionContext
from bookkeeper.models.statement import (
    CommitResult,
    EntryType,
    ExtractedStatement,
    LedgerEntry,
    StatementHeader,
    TransactionRow,
)
from bookkeeper.services.extraction.normalizer import is_sample_statement
from bookkeeper.services.storage import StatementStorageInterface, StorageError


logger = structlog.get_logger(__name__)

STAGE_SESSION = "session"
STAGE_HEADER = "statement_header"
STAGE_TRANSACTIONS = "transactions"
STAGE_LEDGER = "ledger_entries"

SAVE_FAILED_MESSAGE = "Failed to save the bank statement."


def derive_ledger_entry(row: TransactionRow) -> LedgerEntry:
    """
    Ledger entry for one transaction row.

    Debit when the row has a debit amount, otherwise credit. The amount
    is the magnitude of that side.
    """
    if row.debit_amount > 0:
        entry_type, amount = EntryType.DEBIT, row.debit_amount
    else:
        entry_type, amount = EntryType.CREDIT, row.credit_amount

    return LedgerEntry(
        user_id=row.user_id,
        date=row.transaction_date,
        description=row.description,
        reference=row.reference_number or "",
        entry_type=entry_type,
        amount=amount,
        balance=row.balance if row.balance is not None else 0,
        category=row.category,
    )


def default_file_name(is_sample: bool, timestamp_ms: Optional[int] = None) -> str:
    ts = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    prefix = "Sample_Statement" if is_sample else "AI_Extracted_Statement"
    return f"{prefix}_{ts}.pdf"


def default_file_path(user_id: UUID, timestamp_ms: Optional[int] = None) -> str:
    ts = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return f"statements/{user_id}/ai_processed_{ts}.pdf"


class StatementWriter:
    """
    Persists confirmed statements.

    Args:
        storage: Statement storage backend
        audit_logger: Receives cleanup failures. Optional.
    """

    def __init__(
        self,
        storage: StatementStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit = audit_logger

    async def commit(
        self,
        session: SessionContext,
        statement: ExtractedStatement,
        file_name: Optional[str] = None,
        file_path: Optional[str] = None,
    ) -> CommitResult:
        """
        Write header, transaction rows and ledger entries for a statement.

        Args:
            session: Active session; its user owns every written row
            statement: The confirmed snapshot from the review buffer
            file_name: Header file name. Defaults to
                AI_Extracted_Statement_<ts>.pdf (Sample_Statement_<ts>.pdf
                for sample data)
            file_path: Where the original file was archived, if it was

        Raises:
            PersistenceError: If any write fails (`stage` says which)
        """
        if not session.is_active:
            raise PersistenceError(
                "Cannot save without an active session",
                stage=STAGE_SESSION,
                user_message="Please sign in to save bank statements.",
            )
        user_id = session.user_id
        is_sample = is_sample_statement(statement)
        ts = int(time.time() * 1000)

        header = StatementHeader(
            user_id=user_id,
            file_name=file_name or default_file_name(is_sample, ts),
            file_path=file_path or default_file_path(user_id, ts),
        )

        try:
            header = await self._storage.insert_statement(header)
        except StorageError as e:
            logger.error("statement_header_failed", user_id=str(user_id), error=str(e))
            raise PersistenceError(
                f"Failed to insert statement header: {e}",
                stage=STAGE_HEADER,
                user_message=SAVE_FAILED_MESSAGE,
            )

        log = logger.bind(statement_id=str(header.id), user_id=str(user_id))

        rows = [
            TransactionRow.from_extracted(t, statement_id=header.id, user_id=user_id)
            for t in statement.transactions
        ]

        stage = STAGE_TRANSACTIONS
        entry_ids: list[UUID] = []
        try:
            inserted = await self._storage.insert_transactions(rows)

            stage = STAGE_LEDGER
            for row in rows:
                entry = await self._storage.insert_ledger_entry(derive_ledger_entry(row))
                entry_ids.append(entry.id)
        except StorageError as e:
            log.error(
                "statement_write_failed",
                stage=stage,
                ledger_entries_written=len(entry_ids),
                error=str(e),
            )
            await self._compensate(header.id, entry_ids)
            raise PersistenceError(
                f"Failed to save {stage}: {e}",
                stage=stage,
                user_message=SAVE_FAILED_MESSAGE,
            )

        log.info(
            "statement_committed",
            transaction_count=inserted,
            ledger_entry_count=len(entry_ids),
            is_sample=is_sample,
        )
        return CommitResult(
            statement=header,
            transaction_count=inserted,
            ledger_entry_count=len(entry_ids),
            is_sample=is_sample,
        )

    async def _compensate(self, statement_id: UUID, entry_ids: list[UUID]) -> None:
        """Best-effort removal of a partially written statement."""
        try:
            removed = await self._storage.delete_ledger_entries(entry_ids)
            await self._storage.delete_statement(statement_id)
            logger.info(
                "partial_statement_removed",
                statement_id=str(statement_id),
                ledger_entries_removed=removed,
            )
        except StorageError as e:
            logger.error(
                "partial_statement_cleanup_failed",
                statement_id=str(statement_id),
                error=str(e),
            )
            if self._audit:
                await self._audit.log_cleanup_failed(statement_id, str(e))
