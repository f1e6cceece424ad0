"""
Audit Models for AI Bookkeeper

Every significant step of the statement pipeline is logged for audit
purposes, so an upload can be traced from the file the user picked to the
ledger rows it produced.

Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step in the statement pipeline has its own event type.
    """
    # Intake
    DOCUMENT_RECEIVED = "document_received"
    DOCUMENT_REJECTED = "document_rejected"
    DOCUMENT_ARCHIVED = "document_archived"

    # Extraction
    EXTRACTION_STARTED = "extraction_started"
    EXTRACTION_COMPLETED = "extraction_completed"
    EXTRACTION_FAILED = "extraction_failed"
    SAMPLE_DATA_RETURNED = "sample_data_returned"

    # Review
    VALIDATION_WARNINGS = "validation_warnings"
    REVIEW_PRESENTED_TO_USER = "review_presented_to_user"
    USER_CONFIRMED = "user_confirmed"
    USER_REJECTED = "user_rejected"

    # Persistence
    STATEMENT_SAVED = "statement_saved"
    SAVE_FAILED = "save_failed"
    CLEANUP_FAILED = "cleanup_failed"

    # Session
    SESSION_STARTED = "session_started"
    SESSION_ENDED = "session_ended"
    PROFILE_PROVISIONED = "profile_provisioned"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'document', 'extraction', 'statement')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Who did it
    user_id: Optional[UUID] = None

    # Correlation - all events of one upload share an id
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "user_id": str(self.user_id) if self.user_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.document_received(document_id, filename, size, cid)
        event = AuditEventBuilder.statement_saved(statement_id, user_id, 12, False, cid)
    """

    @staticmethod
    def document_received(
        document_id: UUID,
        filename: str,
        file_size: int,
        mime_type: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DOCUMENT_RECEIVED,
            entity_type="document",
            entity_id=document_id,
            correlation_id=correlation_id,
            description=f"Statement uploaded: {filename}",
            details={
                "filename": filename,
                "file_size_bytes": file_size,
                "mime_type": mime_type,
            },
            is_user_action=True,
        )

    @staticmethod
    def document_rejected(
        filename: str,
        reason: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DOCUMENT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="document",
            correlation_id=correlation_id,
            description=f"Statement rejected at intake: {filename}",
            details={
                "filename": filename,
                "reason": reason,
            },
        )

    @staticmethod
    def document_archived(
        document_id: UUID,
        file_path: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DOCUMENT_ARCHIVED,
            entity_type="document",
            entity_id=document_id,
            correlation_id=correlation_id,
            description="Original statement archived",
            details={"file_path": file_path},
        )

    @staticmethod
    def extraction_started(
        document_id: UUID,
        mime_type: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_STARTED,
            entity_type="document",
            entity_id=document_id,
            correlation_id=correlation_id,
            description="Statement sent to the extraction model",
            details={"mime_type": mime_type},
        )

    @staticmethod
    def extraction_completed(
        extraction_id: UUID,
        transaction_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_COMPLETED,
            entity_type="extraction",
            entity_id=extraction_id,
            correlation_id=correlation_id,
            description=f"Extraction completed with {transaction_count} transactions",
            details={"transaction_count": transaction_count},
        )

    @staticmethod
    def sample_data_returned(
        extraction_id: UUID,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAMPLE_DATA_RETURNED,
            severity=AuditSeverity.WARNING,
            entity_type="extraction",
            entity_id=extraction_id,
            correlation_id=correlation_id,
            description="No document supplied; sample statement returned",
        )

    @staticmethod
    def extraction_failed(
        error_type: str,
        error_message: str,
        correlation_id: UUID,
        status: Optional[int] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="extraction",
            correlation_id=correlation_id,
            description=f"Extraction failed: {error_type}",
            error_code=str(status) if status is not None else None,
            error_message=error_message,
            details={"error_type": error_type},
        )

    @staticmethod
    def validation_warnings(
        extraction_id: UUID,
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_WARNINGS,
            severity=AuditSeverity.WARNING,
            entity_type="extraction",
            entity_id=extraction_id,
            correlation_id=correlation_id,
            description=f"Review checks raised {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def review_presented(
        extraction_id: UUID,
        transaction_count: int,
        issue_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REVIEW_PRESENTED_TO_USER,
            entity_type="extraction",
            entity_id=extraction_id,
            correlation_id=correlation_id,
            description=f"Review shown with {transaction_count} transactions",
            details={
                "transaction_count": transaction_count,
                "issue_count": issue_count,
            },
        )

    @staticmethod
    def user_confirmed(
        extraction_id: UUID,
        user_id: UUID,
        transaction_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_CONFIRMED,
            entity_type="extraction",
            entity_id=extraction_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description="User confirmed reviewed statement",
            details={"transaction_count": transaction_count},
            is_user_action=True,
        )

    @staticmethod
    def user_rejected(
        extraction_id: UUID,
        reason: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_REJECTED,
            entity_type="extraction",
            entity_id=extraction_id,
            correlation_id=correlation_id,
            description="User discarded extracted statement",
            details={"reason": reason or "No reason provided"},
            is_user_action=True,
        )

    @staticmethod
    def statement_saved(
        statement_id: UUID,
        user_id: UUID,
        transaction_count: int,
        is_sample: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        label = "Sample statement" if is_sample else "Statement"
        return AuditEvent(
            event_type=AuditEventType.STATEMENT_SAVED,
            entity_type="statement",
            entity_id=statement_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"{label} saved with {transaction_count} transactions",
            details={
                "transaction_count": transaction_count,
                "is_sample": is_sample,
            },
        )

    @staticmethod
    def save_failed(
        stage: Optional[str],
        error_message: str,
        user_id: Optional[UUID],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="statement",
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Saving statement failed at {stage or 'unknown stage'}",
            error_message=error_message,
            details={"stage": stage},
        )

    @staticmethod
    def cleanup_failed(
        statement_id: UUID,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CLEANUP_FAILED,
            severity=AuditSeverity.CRITICAL,
            entity_type="statement",
            entity_id=statement_id,
            description="Could not remove partially written statement",
            error_message=error_message,
        )

    @staticmethod
    def session_started(user_id: UUID, email: Optional[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_STARTED,
            entity_type="session",
            user_id=user_id,
            description=f"Signed in: {email or user_id}",
            is_user_action=True,
        )

    @staticmethod
    def session_ended(user_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_ENDED,
            entity_type="session",
            user_id=user_id,
            description="Signed out",
            is_user_action=True,
        )

    @staticmethod
    def profile_provisioned(
        user_id: UUID,
        user_type: str,
        company_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_PROVISIONED,
            entity_type="profile",
            entity_id=user_id,
            user_id=user_id,
            description=f"Profile created for {user_type} user",
            details={"company_id": str(company_id) if company_id else None},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
