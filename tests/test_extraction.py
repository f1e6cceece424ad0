"""
Tests for statement extraction: reply parsing, normalization, the Gemini
extractor and the wire gateway.
"""

import base64
from datetime import date
from decimal import Decimal

import pytest
from google.api_core import exceptions as google_exceptions
from pydantic import ValidationError as SettingsValidationError

from bookkeeper.config import get_settings
from bookkeeper.config.settings import GeminiSettings
from bookkeeper.errors import ConfigurationError, ParseError, UpstreamError
from bookkeeper.models.statement import LedgerCategory
from bookkeeper.services.extraction import (
    GeminiStatementExtractor,
    build_sample_statement,
    find_json_object,
    handle_extraction_request,
    is_sample_statement,
    normalize_statement,
    parse_model_output,
)
from bookkeeper.services.extraction.normalizer import (
    UNKNOWN_ACCOUNT,
    UNKNOWN_BANK,
    UNKNOWN_DESCRIPTION,
    normalize_transaction,
    safe_date,
    safe_decimal,
)


TODAY = date(2024, 3, 31)


class TestFindJsonObject:
    """Tests for locating the JSON object in a free-text reply."""

    def test_object_surrounded_by_prose(self):
        text = 'Here you go:\n```json\n{"a": 1}\n```\nHope that helps.'
        assert find_json_object(text) == '{"a": 1}'

    def test_braces_inside_strings_are_ignored(self):
        """A '}' inside a description does not end the object."""
        text = 'x {"description": "PAY } TO {ACME}", "n": {"k": "\\"}"}} trailing }'
        assert find_json_object(text) == '{"description": "PAY } TO {ACME}", "n": {"k": "\\"}"}}'

    def test_first_object_wins(self):
        assert find_json_object('{"a": 1} {"b": 2}') == '{"a": 1}'

    def test_no_object(self):
        assert find_json_object("no json here") is None

    def test_unbalanced_object(self):
        assert find_json_object('{"a": {"b": 1}') is None


class TestParseModelOutput:
    """Tests for turning a reply into a dict."""

    def test_parses_object(self, fuel_reply):
        data = parse_model_output("Sure! " + fuel_reply)
        assert data["transactions"][0]["description"] == "FUEL"

    @pytest.mark.parametrize("text", [None, "", "   \n"])
    def test_empty_reply(self, text):
        with pytest.raises(ParseError):
            parse_model_output(text)

    def test_reply_without_json(self):
        with pytest.raises(ParseError, match="No JSON"):
            parse_model_output("I could not read this statement.")

    def test_invalid_json(self):
        """Balanced braces are not enough; the object must parse."""
        with pytest.raises(ParseError, match="Invalid JSON"):
            parse_model_output("{transactions: [1, 2,]}")


class TestFieldCoercion:
    """Tests for amount and date parsing."""

    @pytest.mark.parametrize("value,expected", [
        ("1,234.50", Decimal("1234.50")),
        ("Rs. 500", Decimal("500.00")),
        ("INR 2,000", Decimal("2000.00")),
        ("(75.25)", Decimal("-75.25")),
        ("-10", Decimal("-10.00")),
        (42, Decimal("42.00")),
        ("abc", Decimal("0")),
        (None, Decimal("0")),
        (float("nan"), Decimal("0")),
    ])
    def test_safe_decimal(self, value, expected):
        assert safe_decimal(value) == expected

    @pytest.mark.parametrize("value", [
        "2024-01-05", "05-01-2024", "05/01/2024", "2024/01/05",
        "05 Jan 2024", "05-Jan-2024", "05 January 2024", "2024-01-05T10:00:00Z",
    ])
    def test_safe_date_formats(self, value):
        assert safe_date(value, None) == date(2024, 1, 5)

    def test_safe_date_default(self):
        assert safe_date("yesterday", TODAY) == TODAY
        assert safe_date(None, TODAY) == TODAY


class TestNormalization:
    """Tests for filling defaults into extracted data."""

    def test_empty_object_gets_placeholders(self):
        """Every header field gets a safe default."""
        statement = normalize_statement({}, today=TODAY, period_days=30)
        assert statement.account_number == UNKNOWN_ACCOUNT
        assert statement.bank_name == UNKNOWN_BANK
        assert statement.opening_balance == "0.00"
        assert statement.closing_balance == "0.00"
        assert statement.statement_period.from_date == date(2024, 3, 1)
        assert statement.statement_period.to_date == TODAY
        assert statement.transactions == []

    def test_period_bounds_default_independently(self):
        statement = normalize_statement(
            {"statementPeriod": {"from": "2024-01-01"}}, today=TODAY, period_days=30
        )
        assert statement.statement_period.from_date == date(2024, 1, 1)
        assert statement.statement_period.to_date == TODAY

    def test_non_list_transactions(self):
        statement = normalize_statement({"transactions": "none"}, today=TODAY)
        assert statement.transactions == []

    def test_non_object_rows_dropped(self):
        statement = normalize_statement(
            {"transactions": ["junk", {"description": "OK"}, 3]}, today=TODAY
        )
        assert len(statement.transactions) == 1
        assert statement.transactions[0].description == "OK"

    def test_transaction_defaults(self):
        """A bare row still yields a complete transaction."""
        row = normalize_transaction({}, TODAY)
        assert row.date == TODAY
        assert row.description == UNKNOWN_DESCRIPTION
        assert row.debit_amount == 0
        assert row.credit_amount == 0
        assert row.balance == 0
        assert row.reference_number == ""
        assert row.category is LedgerCategory.OTHER

    def test_unknown_category_becomes_other(self):
        row = normalize_transaction({"category": "groceries"}, TODAY)
        assert row.category is LedgerCategory.OTHER

    def test_negative_amounts_become_magnitudes(self):
        row = normalize_transaction({"debitAmount": "-250"}, TODAY)
        assert row.debit_amount == Decimal("250.00")

    def test_both_sides_keeps_larger(self):
        """At most one side survives normalization."""
        row = normalize_transaction({"debitAmount": 10, "creditAmount": 40}, TODAY)
        assert row.debit_amount == 0
        assert row.credit_amount == Decimal("40.00")

    def test_both_sides_tie_keeps_debit(self):
        row = normalize_transaction({"debitAmount": 25, "creditAmount": 25}, TODAY)
        assert row.debit_amount == Decimal("25.00")
        assert row.credit_amount == 0

    def test_snake_case_keys_accepted(self):
        statement = normalize_statement(
            {"account_number": "999", "bank_name": "SBI", "opening_balance": 1200},
            today=TODAY,
        )
        assert statement.account_number == "999"
        assert statement.bank_name == "SBI"
        assert statement.opening_balance == "1200.00"


class TestSampleStatement:
    """Tests for the offline placeholder statement."""

    def test_sample_is_tagged(self):
        statement = build_sample_statement(today=TODAY)
        assert statement.is_sample is True
        assert statement.account_number == "SAMPLE1234"
        assert len(statement.transactions) == 5
        assert all(t.description.startswith("SAMPLE - ") for t in statement.transactions)
        assert statement.opening_balance == "50000.00"
        assert statement.closing_balance == "45000.00"

    def test_sample_markers_survive_copy(self):
        """Markers are visible even once the is_sample flag is lost."""
        wire = build_sample_statement(today=TODAY).to_wire()
        restored = normalize_statement(wire, today=TODAY)
        assert restored.is_sample is False
        assert is_sample_statement(restored)

    def test_real_statement_is_not_sample(self, fuel_reply):
        statement = normalize_statement(parse_model_output(fuel_reply), today=TODAY)
        assert not is_sample_statement(statement)


class TestGeminiStatementExtractor:
    """Tests for the extractor with a fake model."""

    @pytest.mark.asyncio
    async def test_no_document_returns_sample(self, extractor, fake_model):
        """Sample data is returned without calling the model."""
        statement = await extractor.extract(None, today=TODAY)
        assert statement.is_sample
        assert fake_model.calls == []

    @pytest.mark.asyncio
    async def test_fuel_statement(self, extractor, fake_model, intake, png_data):
        """The model's reply becomes one normalized debit row."""
        document = intake.encode("statement.png", png_data, "image/png")

        statement = await extractor.extract(document, today=TODAY)

        assert len(statement.transactions) == 1
        row = statement.transactions[0]
        assert row.date == date(2024, 1, 5)
        assert row.description == "FUEL"
        assert row.debit_amount == Decimal("100.00")
        assert row.credit_amount == 0
        assert row.balance == Decimal("900.00")
        assert row.category is LedgerCategory.FUEL_EXPENSE
        assert not statement.is_sample

    @pytest.mark.asyncio
    async def test_model_receives_prompt_and_inline_image(
        self, extractor, fake_model, intake, png_data,
    ):
        document = intake.encode("statement.png", png_data, "image/png")
        await extractor.extract(document, today=TODAY)

        prompt, part = fake_model.calls[0]
        assert "JSON" in prompt
        assert part == {"mime_type": "image/png", "data": png_data}

    @pytest.mark.asyncio
    async def test_upstream_error(self, make_model, intake, png_data):
        """API errors surface with their status; no sample fallback."""
        model = make_model(error=google_exceptions.InternalServerError("boom"))
        extractor = GeminiStatementExtractor(model=model, period_days=30)
        document = intake.encode("statement.png", png_data, "image/png")

        with pytest.raises(UpstreamError) as exc_info:
            await extractor.extract(document)
        assert exc_info.value.status == 500
        assert exc_info.value.body == "boom"

    @pytest.mark.asyncio
    async def test_empty_reply(self, make_model, intake, png_data):
        extractor = GeminiStatementExtractor(model=make_model(text=""), period_days=30)
        document = intake.encode("statement.png", png_data, "image/png")

        with pytest.raises(ParseError):
            await extractor.extract(document)

    @pytest.mark.asyncio
    async def test_prose_reply(self, make_model, intake, png_data):
        model = make_model(text="Sorry, the image is too blurry.")
        extractor = GeminiStatementExtractor(model=model, period_days=30)
        document = intake.encode("statement.png", png_data, "image/png")

        with pytest.raises(ParseError):
            await extractor.extract(document)

    @pytest.mark.parametrize("key", ["", "   "])
    def test_blank_api_key_is_a_configuration_error(self, monkeypatch, key):
        """A blank GEMINI_API_KEY (as shipped in .env.example) is reported before any call."""
        monkeypatch.setenv("GEMINI_API_KEY", key)
        get_settings.cache_clear()
        try:
            with pytest.raises(ConfigurationError) as exc_info:
                GeminiStatementExtractor(period_days=30)._get_model()
        finally:
            get_settings.cache_clear()
        assert exc_info.value.user_message == "Gemini API key not configured."

    @pytest.mark.asyncio
    async def test_blank_api_key_fails_extraction(self, monkeypatch, intake, png_data):
        monkeypatch.setenv("GEMINI_API_KEY", "")
        get_settings.cache_clear()
        extractor = GeminiStatementExtractor(period_days=30)
        document = intake.encode("statement.png", png_data, "image/png")
        try:
            with pytest.raises(ConfigurationError):
                await extractor.extract(document)
        finally:
            get_settings.cache_clear()


class TestGeminiSettings:
    """Tests for the Gemini key rules."""

    def test_key_is_stripped(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "  abc123 \n")
        assert GeminiSettings().api_key == "abc123"

    def test_blank_key_rejected(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", " ")
        with pytest.raises(SettingsValidationError):
            GeminiSettings()


class TestExtractionGateway:
    """Tests for the request/response wire boundary."""

    @pytest.mark.asyncio
    async def test_success_shape(self, extractor, intake, png_data):
        payload = {
            "imageBase64": base64.b64encode(png_data).decode("ascii"),
            "mimeType": "image/png",
        }
        response = await handle_extraction_request(payload, extractor, intake)

        assert response["success"] is True
        data = response["extractedData"]
        assert set(data) == {
            "accountNumber", "bankName", "statementPeriod",
            "openingBalance", "closingBalance", "transactions",
        }
        assert data["transactions"][0]["debitAmount"] == 100.0

    @pytest.mark.asyncio
    async def test_missing_image_returns_sample(self, extractor, intake):
        response = await handle_extraction_request({"imageBase64": None}, extractor, intake)
        assert response["success"] is True
        assert response["extractedData"]["accountNumber"] == "SAMPLE1234"

    @pytest.mark.asyncio
    async def test_data_url_payload(self, extractor, intake, png_data):
        payload = {"imageBase64": "data:image/png;base64," + base64.b64encode(png_data).decode("ascii")}
        response = await handle_extraction_request(payload, extractor, intake)
        assert response["success"] is True

    @pytest.mark.asyncio
    async def test_upstream_failure_shape(self, make_model, intake, png_data):
        model = make_model(error=google_exceptions.TooManyRequests("quota exceeded"))
        extractor = GeminiStatementExtractor(model=model, period_days=30)
        payload = {
            "imageBase64": base64.b64encode(png_data).decode("ascii"),
            "mimeType": "image/png",
        }

        response = await handle_extraction_request(payload, extractor, intake)

        assert response == {
            "success": False,
            "error": "Failed to process bank statement with Gemini API.",
        }

    @pytest.mark.asyncio
    async def test_rejected_upload_never_reaches_model(self, extractor, fake_model, intake):
        payload = {
            "imageBase64": base64.b64encode(b"hello").decode("ascii"),
            "mimeType": "text/plain",
        }
        response = await handle_extraction_request(payload, extractor, intake)

        assert response["success"] is False
        assert "unsupported type" in response["error"]
        assert fake_model.calls == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
