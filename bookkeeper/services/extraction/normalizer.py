"""
Model Output Normalizer

The extraction model is asked for a JSON object but replies in free text.
This module turns that reply into a well-formed ExtractedStatement:

1. Locate the first balanced JSON object in the reply
2. Parse it
3. Fill every missing or malformed field with a safe default

Normalization never fails on bad field values; only a reply with no usable
JSON object raises ParseError. Whatever comes out of here is still only a
PROPOSAL and goes through human review before it is saved.
"""

import json
import re
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import structlog

from bookkeeper.errors import ParseError
from bookkeeper.models.statement import (
    ExtractedStatement,
    ExtractedTransaction,
    LedgerCategory,
    StatementPeriod,
)


logger = structlog.get_logger(__name__)

UNKNOWN_DESCRIPTION = "Unknown Transaction"
UNKNOWN_ACCOUNT = "Not available"
UNKNOWN_BANK = "Unknown Bank"
ZERO_BALANCE = "0.00"

SAMPLE_ACCOUNT_NUMBER = "SAMPLE1234"
SAMPLE_MARKER = "SAMPLE"

DATE_FORMATS = [
    "%Y-%m-%d",
    "%d-%m-%Y",
    "%d/%m/%Y",
    "%Y/%m/%d",
    "%d %b %Y",
    "%d-%b-%Y",
    "%d %B %Y",
]

_CURRENCY_WORDS = re.compile(r"(?i)\b(rs|inr|usd|eur|gbp)\b\.?")
_NOT_NUMERIC = re.compile(r"[^\d.\-]")


# =============================================================================
# JSON LOCATION
# =============================================================================

def find_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced `{...}` substring of `text`, or None.

    Braces inside JSON strings (including escaped quotes) do not count.
    """
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def parse_model_output(text: Optional[str]) -> dict:
    """
    Extract and parse the JSON object from a model reply.

    Raises:
        ParseError: If the reply is empty, has no JSON object, or the
            object does not parse
    """
    if not text or not text.strip():
        raise ParseError("No text generated by the extraction model")

    candidate = find_json_object(text)
    if candidate is None:
        raise ParseError("No JSON found in model response")

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.warning("model_json_invalid", error=str(e), snippet=candidate[:200])
        raise ParseError(f"Invalid JSON from model: {e}")

    if not isinstance(data, dict):
        raise ParseError("Model response JSON is not an object")
    return data


# =============================================================================
# FIELD COERCION
# =============================================================================

def safe_decimal(value: Any) -> Decimal:
    """Parse a money value, keeping its sign. Anything unparseable is 0."""
    if value is None or isinstance(value, bool):
        return Decimal("0")
    try:
        if isinstance(value, (int, float, Decimal)):
            number = Decimal(str(value))
        else:
            text = str(value).strip()
            negative = text.startswith("(") and text.endswith(")")
            text = _NOT_NUMERIC.sub("", _CURRENCY_WORDS.sub("", text))
            if not text:
                return Decimal("0")
            number = Decimal(text)
            if negative:
                number = -abs(number)
        if not number.is_finite():
            return Decimal("0")
        return number.quantize(Decimal("0.01"))
    except (InvalidOperation, TypeError, ValueError):
        return Decimal("0")


def safe_amount(value: Any) -> Decimal:
    """Debit/credit amounts are magnitudes; the column carries the side."""
    return abs(safe_decimal(value))


def safe_date(value: Any, default: Optional[date]) -> Optional[date]:
    """Parse a date in one of DATE_FORMATS, falling back to `default`."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue
        # ISO timestamps like 2024-01-05T00:00:00Z
        if len(text) > 10 and text[4:5] == "-":
            try:
                return datetime.strptime(text[:10], "%Y-%m-%d").date()
            except ValueError:
                pass
    return default


def _safe_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _pick(raw: dict, *keys: str) -> Any:
    """First non-empty value among camelCase / snake_case spellings."""
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _format_balance(value: Any) -> str:
    if value in (None, ""):
        return ZERO_BALANCE
    return f"{safe_decimal(value):.2f}"


# =============================================================================
# NORMALIZATION
# =============================================================================

def normalize_transaction(raw: dict, today: date) -> ExtractedTransaction:
    """
    Normalize one transaction row.

    When the model put an amount on both sides, the smaller side is
    zeroed. On a tie the debit is kept.
    """
    debit = safe_amount(_pick(raw, "debitAmount", "debit_amount"))
    credit = safe_amount(_pick(raw, "creditAmount", "credit_amount"))
    if debit > 0 and credit > 0:
        if credit > debit:
            debit = Decimal("0.00")
        else:
            credit = Decimal("0.00")

    return ExtractedTransaction(
        date=safe_date(raw.get("date"), today),
        description=_safe_text(raw.get("description")) or UNKNOWN_DESCRIPTION,
        debit_amount=debit,
        credit_amount=credit,
        balance=safe_decimal(raw.get("balance")),
        reference_number=_safe_text(_pick(raw, "referenceNumber", "reference_number")),
        category=LedgerCategory.coerce(raw.get("category")),
    )


def normalize_statement(
    raw: dict,
    today: Optional[date] = None,
    period_days: int = 30,
) -> ExtractedStatement:
    """
    Turn a parsed model reply into an ExtractedStatement.

    Missing header fields get placeholders, each period bound defaults on
    its own to a `period_days` window ending today, and a non-list
    `transactions` becomes an empty list. Non-object rows are dropped.
    """
    today = today or date.today()

    period_raw = _pick(raw, "statementPeriod", "statement_period")
    if not isinstance(period_raw, dict):
        period_raw = {}
    period = StatementPeriod(
        from_date=safe_date(period_raw.get("from"), today - timedelta(days=period_days)),
        to_date=safe_date(period_raw.get("to"), today),
    )

    rows = raw.get("transactions")
    if not isinstance(rows, list):
        rows = []
    dropped = sum(1 for row in rows if not isinstance(row, dict))
    if dropped:
        logger.warning("transactions_dropped", count=dropped)

    transactions = [normalize_transaction(row, today) for row in rows if isinstance(row, dict)]

    return ExtractedStatement(
        account_number=_safe_text(_pick(raw, "accountNumber", "account_number")) or UNKNOWN_ACCOUNT,
        bank_name=_safe_text(_pick(raw, "bankName", "bank_name")) or UNKNOWN_BANK,
        statement_period=period,
        opening_balance=_format_balance(_pick(raw, "openingBalance", "opening_balance")),
        closing_balance=_format_balance(_pick(raw, "closingBalance", "closing_balance")),
        transactions=transactions,
    )


# =============================================================================
# SAMPLE DATA
# =============================================================================

_SAMPLE_ROWS = [
    ("HP PETROL PUMP MUMBAI", "2500.00", "0", "47500.00", "TXN123456", LedgerCategory.FUEL_EXPENSE),
    ("OFFICE RENT PAYMENT", "25000.00", "0", "22500.00", "CHQ789012", LedgerCategory.RENT_EXPENSE),
    ("CLIENT PAYMENT RECEIVED", "0", "50000.00", "72500.00", "NEFT345678", LedgerCategory.SALES_INCOME),
    ("ELECTRICITY BILL MSEB", "3500.00", "0", "69000.00", "AUTO901234", LedgerCategory.UTILITIES_EXPENSE),
    ("CONSTRUCTION MATERIAL PURCHASE", "15000.00", "0", "54000.00", "CHQ567890", LedgerCategory.CONSTRUCTION_EXPENSE),
]


def build_sample_statement(
    today: Optional[date] = None,
    period_days: int = 30,
) -> ExtractedStatement:
    """
    Placeholder statement returned when no document is supplied.

    Every field that a user might mistake for real data is tagged: the
    account number is SAMPLE1234 and every description starts with
    "SAMPLE - ".
    """
    today = today or date.today()
    return ExtractedStatement(
        is_sample=True,
        account_number=SAMPLE_ACCOUNT_NUMBER,
        bank_name="Sample Bank",
        statement_period=StatementPeriod.rolling(days=period_days, today=today),
        opening_balance="50000.00",
        closing_balance="45000.00",
        transactions=[
            ExtractedTransaction(
                date=today,
                description=f"{SAMPLE_MARKER} - {description}",
                debit_amount=Decimal(debit),
                credit_amount=Decimal(credit),
                balance=Decimal(balance),
                reference_number=reference,
                category=category,
            )
            for description, debit, credit, balance, reference, category in _SAMPLE_ROWS
        ],
    )


def is_sample_statement(statement: ExtractedStatement) -> bool:
    """True if the statement carries the sample markers."""
    if statement.is_sample or statement.account_number == SAMPLE_ACCOUNT_NUMBER:
        return True
    return bool(statement.transactions) and statement.transactions[0].description.startswith(
        f"{SAMPLE_MARKER} - "
    )
