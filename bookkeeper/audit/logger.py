"""
Audit Logger

Every significant step of an upload is logged, so that a saved statement can
be traced back to the file, the extraction and the user decision that
produced it.

The audit logger:
- Is async to not block main flow
- Gracefully handles sink failures (a broken audit sink never fails a save)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from bookkeeper.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from bookkeeper.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (always)
    2. An audit storage sink (when one is configured)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Sink for persisted events.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("bookkeeper.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_document_received(
        self,
        document_id: UUID,
        filename: str,
        file_size: int,
        mime_type: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.document_received(
            document_id=document_id,
            filename=filename,
            file_size=file_size,
            mime_type=mime_type,
            correlation_id=correlation_id,
        ))

    async def log_document_rejected(
        self,
        filename: str,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.document_rejected(
            filename=filename,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_document_archived(
        self,
        document_id: UUID,
        file_path: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.document_archived(
            document_id=document_id,
            file_path=file_path,
            correlation_id=correlation_id,
        ))

    async def log_extraction_started(
        self,
        document_id: UUID,
        mime_type: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.extraction_started(
            document_id=document_id,
            mime_type=mime_type,
            correlation_id=correlation_id,
        ))

    async def log_extraction_completed(
        self,
        extraction_id: UUID,
        transaction_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.extraction_completed(
            extraction_id=extraction_id,
            transaction_count=transaction_count,
            correlation_id=correlation_id,
        ))

    async def log_sample_data_returned(
        self,
        extraction_id: UUID,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.sample_data_returned(
            extraction_id=extraction_id,
            correlation_id=correlation_id,
        ))

    async def log_extraction_failed(
        self,
        error_type: str,
        error_message: str,
        correlation_id: UUID,
        status: Optional[int] = None,
    ) -> None:
        await self.log(AuditEventBuilder.extraction_failed(
            error_type=error_type,
            error_message=error_message,
            correlation_id=correlation_id,
            status=status,
        ))

    async def log_validation_warnings(
        self,
        extraction_id: UUID,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.validation_warnings(
            extraction_id=extraction_id,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_review_presented(
        self,
        extraction_id: UUID,
        transaction_count: int,
        issue_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.review_presented(
            extraction_id=extraction_id,
            transaction_count=transaction_count,
            issue_count=issue_count,
            correlation_id=correlation_id,
        ))

    async def log_user_confirmed(
        self,
        extraction_id: UUID,
        user_id: UUID,
        transaction_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.user_confirmed(
            extraction_id=extraction_id,
            user_id=user_id,
            transaction_count=transaction_count,
            correlation_id=correlation_id,
        ))

    async def log_user_rejected(
        self,
        extraction_id: UUID,
        reason: Optional[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.user_rejected(
            extraction_id=extraction_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_statement_saved(
        self,
        statement_id: UUID,
        user_id: UUID,
        transaction_count: int,
        is_sample: bool,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.statement_saved(
            statement_id=statement_id,
            user_id=user_id,
            transaction_count=transaction_count,
            is_sample=is_sample,
            correlation_id=correlation_id,
        ))

    async def log_save_failed(
        self,
        stage: Optional[str],
        error_message: str,
        user_id: Optional[UUID],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.save_failed(
            stage=stage,
            error_message=error_message,
            user_id=user_id,
            correlation_id=correlation_id,
        ))

    async def log_cleanup_failed(
        self,
        statement_id: UUID,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.cleanup_failed(
            statement_id=statement_id,
            error_message=error_message,
        ))

    async def log_session_started(self, user_id: UUID, email: Optional[str]) -> None:
        await self.log(AuditEventBuilder.session_started(user_id=user_id, email=email))

    async def log_session_ended(self, user_id: UUID) -> None:
        await self.log(AuditEventBuilder.session_ended(user_id=user_id))

    async def log_profile_provisioned(
        self,
        user_id: UUID,
        user_type: str,
        company_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.profile_provisioned(
            user_id=user_id,
            user_type=user_type,
            company_id=company_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this when a document is received. Pass it through extraction,
    review and save.
    """
    return uuid4()
