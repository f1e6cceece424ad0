"""
Main Orchestrator for AI Bookkeeper

This module ties together all the components and defines the end-to-end
statement flow:

    upload → intake → archive → extract → check → review → confirm → save

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is persisted without human confirmation
- Every step is audited under one correlation id
- Every pipeline error becomes ONE user-facing message here; nothing below
  this layer talks to the UI

Each step returns (result, can_proceed, message) so the UI can stop at the
first failed step and show the message.
"""

import time
from typing import Optional
from uuid import UUID

import structlog

from bookkeeper.audit import AuditLogger, create_correlation_id
from bookkeeper.config import get_settings
from bookkeeper.errors import BookkeeperError, PersistenceError, UpstreamError
from bookkeeper.ledger import StatementWriter
from bookkeeper.models.session import SessionContext
from bookkeeper.models.statement import (
    CommitResult,
    EncodedDocument,
    ExtractedStatement,
    StatementHeader,
    ValidationResult,
)
from bookkeeper.review import ReviewBuffer
from bookkeeper.services.auth import ProfileService, SessionManager
from bookkeeper.services.extraction import GeminiStatementExtractor, is_sample_statement
from bookkeeper.services.intake import DocumentIntake
from bookkeeper.services.storage import (
    DocumentStorageInterface,
    InMemoryAuditStorage,
    InMemoryDocumentStorage,
    InMemoryProfileStorage,
    InMemoryStatementStorage,
    StatementStorageInterface,
    StorageError,
    SupabaseClient,
    SupabaseDocumentStorage,
    SupabaseProfileStorage,
    SupabaseStatementStorage,
)
from bookkeeper.validation import StatementValidator


logger = structlog.get_logger(__name__)


def archive_path(user_id: UUID, filename: str, timestamp_ms: Optional[int] = None) -> str:
    """Object-storage path of an original upload: <user_id>/<ts>-<filename>."""
    ts = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    safe_name = filename.replace("/", "_").replace("\\", "_")
    return f"{user_id}/{ts}-{safe_name}"


class StatementUploadFlow:
    """
    Orchestrates the statement upload flow.

    Flow:
    1. Receive → Intake checks, base64 encode
    2. Archive → Original file to object storage (when enabled)
    3. Extract → Gemini reads the statement (or sample data with no file)
    4. Review → Checks + editable buffer (PAUSE - require confirmation)
    5. Confirm → User explicitly approves
    6. Save → Header, transactions, ledger entries

    Human confirmation (step 5) is MANDATORY.
    The system NEVER auto-saves.
    """

    def __init__(
        self,
        intake: Optional[DocumentIntake] = None,
        extractor: Optional[GeminiStatementExtractor] = None,
        validator: Optional[StatementValidator] = None,
        statement_storage: Optional[StatementStorageInterface] = None,
        document_storage: Optional[DocumentStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        archive_originals: Optional[bool] = None,
    ):
        self._intake = intake or DocumentIntake()
        self._extractor = extractor or GeminiStatementExtractor()
        self._validator = validator or StatementValidator()
        self._statement_storage = statement_storage
        self._document_storage = document_storage
        self._audit_logger = audit_logger
        self._writer = (
            StatementWriter(statement_storage, audit_logger) if statement_storage else None
        )
        if archive_originals is None:
            archive_originals = get_settings().app.archive_original_documents
        self._archive_originals = archive_originals

    async def receive_document(
        self,
        filename: str,
        data: bytes,
        mime_type: str,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Optional[EncodedDocument], bool, str]:
        """
        Check and encode an uploaded file.

        Returns:
            (document, can_proceed, message)

        A rejected file never reaches the extraction model.
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            document = self._intake.encode(filename, data, mime_type)
        except BookkeeperError as e:
            if self._audit_logger:
                await self._audit_logger.log_document_rejected(
                    filename=filename,
                    reason=str(e),
                    correlation_id=correlation_id,
                )
            return None, False, e.user_message
        except Exception as e:
            logger.exception("document_intake_crashed", filename=filename)
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"step": "intake", "filename": filename},
                    correlation_id=correlation_id,
                )
            return None, False, f"{filename} could not be processed. Please try another file."

        if self._audit_logger:
            await self._audit_logger.log_document_received(
                document_id=document.document_id,
                filename=filename,
                file_size=document.size_bytes,
                mime_type=document.mime_type,
                correlation_id=correlation_id,
            )
        return document, True, "File accepted."

    async def archive_document(
        self,
        session: SessionContext,
        document: EncodedDocument,
        data: bytes,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Optional[str], bool, str]:
        """
        Store the original file before extraction.

        Returns:
            (file_path, can_proceed, message). file_path is None when
            archiving is disabled or no document storage is configured.
        """
        correlation_id = correlation_id or create_correlation_id()

        if not self._archive_originals or self._document_storage is None:
            return None, True, "Original file not archived."
        if not session.is_active:
            return None, False, "Please sign in to upload bank statements."

        path = archive_path(session.user_id, document.filename)
        try:
            path = await self._document_storage.upload_document(path, data, document.mime_type)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="document_storage",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            return None, False, "Could not upload the statement file. Please try again."

        if self._audit_logger:
            await self._audit_logger.log_document_archived(
                document_id=document.document_id,
                file_path=path,
                correlation_id=correlation_id,
            )
        return path, True, "Original file stored."

    async def extract(
        self,
        document: Optional[EncodedDocument],
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Optional[ExtractedStatement], bool, str]:
        """
        Extract transactions from a document (sample data when None).

        Returns:
            (statement, can_proceed, message)

        A failed extraction yields no transactions; the user re-uploads.
        """
        correlation_id = correlation_id or create_correlation_id()

        if document is not None and self._audit_logger:
            await self._audit_logger.log_extraction_started(
                document_id=document.document_id,
                mime_type=document.mime_type,
                correlation_id=correlation_id,
            )

        try:
            statement = await self._extractor.extract(document)
        except BookkeeperError as e:
            if self._audit_logger:
                await self._audit_logger.log_extraction_failed(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    correlation_id=correlation_id,
                    status=e.status if isinstance(e, UpstreamError) else None,
                )
                if isinstance(e, UpstreamError):
                    await self._audit_logger.log_external_service_error(
                        service="gemini",
                        error_message=e.body or str(e),
                        correlation_id=correlation_id,
                    )
            return None, False, e.user_message
        except Exception as e:
            logger.exception("extraction_crashed")
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"step": "extraction"},
                    correlation_id=correlation_id,
                )
            return None, False, "Failed to process bank statement. Please try again."

        if self._audit_logger:
            if statement.is_sample:
                await self._audit_logger.log_sample_data_returned(
                    extraction_id=statement.extraction_id,
                    correlation_id=correlation_id,
                )
            else:
                await self._audit_logger.log_extraction_completed(
                    extraction_id=statement.extraction_id,
                    transaction_count=len(statement.transactions),
                    correlation_id=correlation_id,
                )

        count = len(statement.transactions)
        if statement.is_sample:
            message = f"Sample data loaded with {count} transactions. This is not your statement."
        else:
            message = f"Extracted {count} transactions from your bank statement."
        return statement, True, message

    async def validate(
        self,
        statement: ExtractedStatement,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[ValidationResult, str]:
        """
        Run the review checks.

        Returns:
            (validation_result, user_message)
        """
        correlation_id = correlation_id or create_correlation_id()

        result = self._validator.validate(statement)
        message = self._validator.get_user_friendly_summary(result)

        if self._audit_logger and result.warnings:
            issues = [
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in result.issues
            ]
            await self._audit_logger.log_validation_warnings(
                extraction_id=statement.extraction_id,
                issues=issues,
                correlation_id=correlation_id,
            )
        return result, message

    async def start_review(
        self,
        statement: ExtractedStatement,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[ReviewBuffer, ValidationResult, str]:
        """
        Check a statement and open an edit buffer on it.

        Returns:
            (buffer, validation_result, user_message)
        """
        correlation_id = correlation_id or create_correlation_id()

        result, message = await self.validate(statement, correlation_id)
        buffer = ReviewBuffer(statement)

        if self._audit_logger:
            await self._audit_logger.log_review_presented(
                extraction_id=statement.extraction_id,
                transaction_count=len(statement.transactions),
                issue_count=len(result.issues),
                correlation_id=correlation_id,
            )
        return buffer, result, message

    async def confirm_and_save(
        self,
        session: SessionContext,
        statement: ExtractedStatement,
        file_path: Optional[str] = None,
        file_name: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Optional[CommitResult], bool, str]:
        """
        Save the reviewed statement.

        CRITICAL: This is called ONLY after explicit user confirmation.

        Args:
            session: Signed-in session that will own the rows
            statement: The buffer's snapshot at confirmation time
            file_path: Archive path from archive_document, if any

        Returns:
            (commit_result, saved, message)
        """
        correlation_id = correlation_id or create_correlation_id()

        if self._writer is None:
            return None, False, "Storage is not configured; the statement was not saved."
        if not session.is_active:
            return None, False, "Please sign in to save bank statements."

        user_id = session.user_id
        if self._audit_logger:
            await self._audit_logger.log_user_confirmed(
                extraction_id=statement.extraction_id,
                user_id=user_id,
                transaction_count=len(statement.transactions),
                correlation_id=correlation_id,
            )

        try:
            result = await self._writer.commit(
                session,
                statement,
                file_name=file_name,
                file_path=file_path,
            )
        except PersistenceError as e:
            if self._audit_logger:
                await self._audit_logger.log_save_failed(
                    stage=e.stage,
                    error_message=str(e),
                    user_id=user_id,
                    correlation_id=correlation_id,
                )
            return None, False, e.user_message

        if self._audit_logger:
            await self._audit_logger.log_statement_saved(
                statement_id=result.statement.id,
                user_id=user_id,
                transaction_count=result.transaction_count,
                is_sample=result.is_sample,
                correlation_id=correlation_id,
            )

        message = (
            f"{result.transaction_count} transactions have been saved "
            "and ledger entries created."
        )
        if result.is_sample:
            message = f"Sample statement saved. {message}"
        return result, True, message

    async def reject_extraction(
        self,
        statement: ExtractedStatement,
        reason: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Record that user discarded the extraction.

        Nothing is written; the buffer is simply dropped by the caller.
        """
        correlation_id = correlation_id or create_correlation_id()

        if self._audit_logger:
            await self._audit_logger.log_user_rejected(
                extraction_id=statement.extraction_id,
                reason=reason,
                correlation_id=correlation_id,
            )

    async def list_statements(
        self,
        session: SessionContext,
        limit: int = 50,
    ) -> list[StatementHeader]:
        """
        The signed-in user's processed statements, newest first.

        Raises:
            PersistenceError: If the store cannot be read
        """
        if self._statement_storage is None or not session.is_active:
            return []
        try:
            return await self._statement_storage.list_statements(session.user_id, limit=limit)
        except StorageError as e:
            logger.error("list_statements_failed", user_id=str(session.user_id), error=str(e))
            raise PersistenceError(
                f"Failed to list statements: {e}",
                user_message="Could not load your processed statements.",
            )


def create_app_components(
    use_storage: bool = True,
) -> tuple[StatementUploadFlow, Optional[SessionManager], Optional[SupabaseClient]]:
    """
    Factory function to create all application components for ONE session.

    Args:
        use_storage: Whether to connect to Supabase.
                    Set to False for offline demo / testing; the flow then
                    saves into process-local in-memory storage.

    Returns:
        (upload_flow, session_manager, supabase_client). The session
        manager and client are None in offline mode.
    """
    client = None
    session_manager = None

    if use_storage:
        try:
            client = SupabaseClient()
            client.connect()
            statement_storage = SupabaseStatementStorage(client)
            document_storage = SupabaseDocumentStorage(client)
            audit_logger = AuditLogger()  # Local-only logging
            session_manager = SessionManager(
                client,
                ProfileService(SupabaseProfileStorage(client), audit_logger),
                audit_logger,
            )
        except StorageError as e:
            # Supabase not configured - continue offline
            logger.warning("storage_not_configured", error=str(e))
            client = None
            use_storage = False

    if not use_storage:
        statement_storage = InMemoryStatementStorage()
        document_storage = InMemoryDocumentStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    upload_flow = StatementUploadFlow(
        statement_storage=statement_storage,
        document_storage=document_storage,
        audit_logger=audit_logger,
    )
    return upload_flow, session_manager, client


def create_offline_profile_service() -> ProfileService:
    """Profile provisioning against in-memory storage (offline demo)."""
    return ProfileService(InMemoryProfileStorage())
