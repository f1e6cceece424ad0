"""
Tests for AI Bookkeeper models

Test strategy:
1. Unit tests for individual components (models, normalizer, buffer, checks)
2. Integration tests for flows (with fake model and in-memory storage)
3. No real API calls in tests
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from bookkeeper.models.statement import (
    EntryType,
    ExtractedStatement,
    ExtractedTransaction,
    ExtractionResponse,
    LedgerCategory,
    LedgerEntry,
    StatementHeader,
    StatementPeriod,
    TransactionRow,
)
from bookkeeper.models.session import Profile, SessionContext, AuthUser, UserRole
from bookkeeper.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


def _statement(**overrides) -> ExtractedStatement:
    data = dict(
        account_number="1234",
        bank_name="Test Bank",
        statement_period=StatementPeriod(from_date=date(2024, 1, 1), to_date=date(2024, 1, 31)),
        opening_balance="1000.00",
        closing_balance="900.00",
        transactions=[
            ExtractedTransaction(
                date=date(2024, 1, 5),
                description="FUEL",
                debit_amount=Decimal("100"),
                balance=Decimal("900"),
                category=LedgerCategory.FUEL_EXPENSE,
            ),
        ],
    )
    data.update(overrides)
    return ExtractedStatement(**data)


class TestLedgerCategory:
    """Tests for the category enum."""

    def test_closed_set_of_values(self):
        """The enum matches the store's category list exactly."""
        assert len(LedgerCategory) == 26
        assert LedgerCategory("fuel_expense") is LedgerCategory.FUEL_EXPENSE
        assert LedgerCategory("igst_receivable") is LedgerCategory.IGST_RECEIVABLE

    def test_labels(self):
        """Tax categories keep their acronym uppercase."""
        assert LedgerCategory.FUEL_EXPENSE.label == "Fuel Expense"
        assert LedgerCategory.CGST_PAYABLE.label == "CGST Payable"

    def test_coerce_unknown_to_other(self):
        """Values outside the enum fall back to OTHER."""
        assert LedgerCategory.coerce("FUEL_EXPENSE") is LedgerCategory.FUEL_EXPENSE
        assert LedgerCategory.coerce("groceries") is LedgerCategory.OTHER
        assert LedgerCategory.coerce(None) is LedgerCategory.OTHER
        assert LedgerCategory.coerce(42) is LedgerCategory.OTHER


class TestStatementModels:
    """Tests for extracted statement models."""

    def test_wire_format_is_camel_case(self):
        """to_wire() speaks the gateway's camelCase shape."""
        wire = _statement().to_wire()
        assert wire["accountNumber"] == "1234"
        assert wire["statementPeriod"] == {"from": "2024-01-01", "to": "2024-01-31"}
        row = wire["transactions"][0]
        assert row["debitAmount"] == 100.0
        assert row["creditAmount"] == 0.0
        assert row["referenceNumber"] == ""

    def test_metadata_not_on_the_wire(self):
        """extraction_id and is_sample stay out of the payload."""
        wire = _statement(is_sample=True).to_wire()
        assert "extractionId" not in wire
        assert "isSample" not in wire

    def test_parses_wire_aliases(self):
        """camelCase input is accepted."""
        statement = ExtractedStatement.model_validate({
            "accountNumber": "A1",
            "bankName": "B",
            "statementPeriod": {"from": "2024-01-01", "to": "2024-01-31"},
            "transactions": [{"date": "2024-01-02", "debitAmount": "5"}],
        })
        assert statement.statement_period.from_date == date(2024, 1, 1)
        assert statement.transactions[0].debit_amount == Decimal("5")

    def test_negative_amounts_rejected(self):
        """Debit and credit are magnitudes."""
        with pytest.raises(ValidationError):
            ExtractedTransaction(date=date(2024, 1, 1), debit_amount=Decimal("-1"))

    def test_totals(self):
        """Totals sum each side across transactions."""
        statement = _statement(transactions=[
            ExtractedTransaction(date=date(2024, 1, 2), debit_amount=Decimal("100")),
            ExtractedTransaction(date=date(2024, 1, 3), credit_amount=Decimal("250")),
        ])
        assert statement.total_debits == Decimal("100")
        assert statement.total_credits == Decimal("250")
        assert statement.net_change == Decimal("150")

    def test_rolling_period(self):
        """A rolling period ends today and spans the given days."""
        period = StatementPeriod.rolling(days=30, today=date(2024, 3, 31))
        assert period.from_date == date(2024, 3, 1)
        assert period.to_date == date(2024, 3, 31)


class TestExtractionResponse:
    """Tests for the gateway response envelope."""

    def test_success_requires_data(self):
        with pytest.raises(ValidationError):
            ExtractionResponse(success=True)

    def test_failure_requires_error(self):
        with pytest.raises(ValidationError):
            ExtractionResponse(success=False)

    def test_failure_wire_shape(self):
        response = ExtractionResponse(success=False, error="boom")
        assert response.to_wire() == {"success": False, "error": "boom"}

    def test_success_wire_shape(self):
        response = ExtractionResponse(success=True, extracted_data=_statement())
        wire = response.to_wire()
        assert wire["success"] is True
        assert wire["extractedData"]["bankName"] == "Test Bank"


class TestPersistedRows:
    """Tests for the rows written to the store."""

    def test_header_record_omits_missing_id(self):
        """The store generates the header id."""
        header = StatementHeader(user_id=uuid4(), file_name="s.pdf", file_path="p")
        record = header.to_record()
        assert "id" not in record
        assert record["processed"] is True

    def test_transaction_row_from_extracted(self):
        """Empty references are stored as NULL."""
        statement_id, user_id = uuid4(), uuid4()
        row = TransactionRow.from_extracted(
            _statement().transactions[0],
            statement_id=statement_id,
            user_id=user_id,
        )
        assert row.statement_id == statement_id
        assert row.transaction_date == date(2024, 1, 5)
        assert row.reference_number is None
        assert row.category is LedgerCategory.FUEL_EXPENSE

    def test_ledger_record_uses_type_column(self):
        """entry_type is stored in the `type` column."""
        entry = LedgerEntry(
            user_id=uuid4(),
            date=date(2024, 1, 5),
            description="FUEL",
            entry_type=EntryType.DEBIT,
            amount=Decimal("100"),
        )
        record = entry.to_record()
        assert record["type"] == "debit"
        assert "entry_type" not in record
        assert entry.signed_amount == Decimal("-100")


class TestSessionModels:
    """Tests for session and profile models."""

    def test_role_is_admin_only_when_stored_as_admin(self):
        """Anything other than 'admin' is a plain user."""
        user_id = uuid4()
        assert Profile(id=user_id, email="a@b.c", role="admin").role is UserRole.ADMIN
        assert Profile(id=user_id, email="a@b.c", role="owner").role is UserRole.USER
        assert Profile(id=user_id, email="a@b.c", role=None).role is UserRole.USER

    def test_cleared_session_is_inactive(self):
        """A cleared context refuses to hand out an owner id."""
        context = SessionContext(user=AuthUser(id=uuid4()), access_token="t")
        assert context.is_active
        context.clear()
        assert not context.is_active
        assert context.access_token is None
        with pytest.raises(RuntimeError):
            _ = context.user_id


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.DOCUMENT_RECEIVED,
            description="Statement uploaded",
        )
        assert event.event_type == AuditEventType.DOCUMENT_RECEIVED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        user_id = uuid4()
        event = AuditEvent(
            event_type=AuditEventType.STATEMENT_SAVED,
            description="Statement saved",
            user_id=user_id,
            details={"transaction_count": 5},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "statement_saved"
        assert log_dict["user_id"] == str(user_id)
        assert log_dict["details"]["transaction_count"] == 5

    def test_builder_document_received(self):
        """Test AuditEventBuilder.document_received."""
        correlation_id = uuid4()
        document_id = uuid4()

        event = AuditEventBuilder.document_received(
            document_id=document_id,
            filename="statement.png",
            file_size=1024,
            mime_type="image/png",
            correlation_id=correlation_id,
        )

        assert event.event_type == AuditEventType.DOCUMENT_RECEIVED
        assert event.entity_id == document_id
        assert event.correlation_id == correlation_id
        assert event.is_user_action is True

    def test_builder_extraction_failed_carries_status(self):
        """Upstream status ends up as the error code."""
        event = AuditEventBuilder.extraction_failed(
            error_type="UpstreamError",
            error_message="quota",
            correlation_id=uuid4(),
            status=429,
        )
        assert event.severity == AuditSeverity.ERROR
        assert event.error_code == "429"

    def test_builder_statement_saved_marks_sample(self):
        """Sample saves are labelled in the description."""
        event = AuditEventBuilder.statement_saved(
            statement_id=uuid4(),
            user_id=uuid4(),
            transaction_count=5,
            is_sample=True,
            correlation_id=uuid4(),
        )
        assert event.description.startswith("Sample statement")
        assert event.details["is_sample"] is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
