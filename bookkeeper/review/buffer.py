"""
Review/Edit Buffer

Holds the extracted statement while the user reviews it. Every edit
replaces the held snapshot with a new ExtractedStatement; snapshots handed
out earlier are never mutated. There is no undo and no cross-field
validation here (see StatementValidator for the review checks).

One buffer per upload, owned by one session.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional

from bookkeeper.models.statement import (
    ExtractedStatement,
    ExtractedTransaction,
    LedgerCategory,
)
from bookkeeper.services.extraction.normalizer import safe_amount, safe_date, safe_decimal


# editable header fields, by snake_case name and wire alias
_HEADER_FIELDS = {
    "account_number": "account_number",
    "accountNumber": "account_number",
    "bank_name": "bank_name",
    "bankName": "bank_name",
    "opening_balance": "opening_balance",
    "openingBalance": "opening_balance",
    "closing_balance": "closing_balance",
    "closingBalance": "closing_balance",
}

_TRANSACTION_FIELDS = {
    "date": "date",
    "description": "description",
    "debit_amount": "debit_amount",
    "debitAmount": "debit_amount",
    "credit_amount": "credit_amount",
    "creditAmount": "credit_amount",
    "balance": "balance",
    "reference_number": "reference_number",
    "referenceNumber": "reference_number",
    "category": "category",
}

_PERIOD_BOUNDS = {"from": "from_date", "to": "to_date"}


def _parse_date(value: Any) -> date:
    parsed = safe_date(value, None)
    if parsed is None:
        raise ValueError(f"Not a date: {value!r}")
    return parsed


class ReviewBuffer:
    """
    Editable holder of one extracted statement.

    Usage:
        buffer = ReviewBuffer(statement)
        buffer.set_transaction_field(0, "category", "fuel_expense")
        buffer.remove_transaction(3)
        confirmed = buffer.snapshot
    """

    def __init__(self, statement: ExtractedStatement):
        self._snapshot = statement

    @property
    def snapshot(self) -> ExtractedStatement:
        """The current statement. Treat as read-only."""
        return self._snapshot

    def __len__(self) -> int:
        return len(self._snapshot.transactions)

    def _replace(self, **update) -> ExtractedStatement:
        self._snapshot = self._snapshot.model_copy(update=update)
        return self._snapshot

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._snapshot.transactions):
            raise IndexError(
                f"Transaction index {index} out of range "
                f"(statement has {len(self._snapshot.transactions)} rows)"
            )

    def set_field(self, name: str, value: Any) -> ExtractedStatement:
        """
        Edit a header field.

        Balances are parsed (unparseable -> 0) and kept as 2-decimal strings.
        """
        field = _HEADER_FIELDS.get(name)
        if field is None:
            raise ValueError(f"Unknown statement field: {name}")

        if field in ("opening_balance", "closing_balance"):
            return self._replace(**{field: f"{safe_decimal(value):.2f}"})
        return self._replace(**{field: "" if value is None else str(value).strip()})

    def set_period_bound(self, bound: str, value: Any) -> ExtractedStatement:
        """Edit the 'from' or 'to' bound of the statement period."""
        field = _PERIOD_BOUNDS.get(bound)
        if field is None:
            raise ValueError(f"Unknown period bound: {bound} (expected 'from' or 'to')")

        period = self._snapshot.statement_period.model_copy(
            update={field: _parse_date(value)}
        )
        return self._replace(statement_period=period)

    def set_transaction_field(self, index: int, name: str, value: Any) -> ExtractedStatement:
        """
        Edit one field of one transaction. Sibling rows are untouched.

        Amounts are parsed (unparseable -> 0, debit/credit as magnitudes),
        dates must parse, categories outside the enum become 'other'.
        """
        field = _TRANSACTION_FIELDS.get(name)
        if field is None:
            raise ValueError(f"Unknown transaction field: {name}")
        self._check_index(index)

        if field in ("debit_amount", "credit_amount"):
            coerced = safe_amount(value)
        elif field == "balance":
            coerced = safe_decimal(value)
        elif field == "date":
            coerced = _parse_date(value)
        elif field == "category":
            coerced = LedgerCategory.coerce(value)
        else:
            coerced = "" if value is None else str(value).strip()

        rows = list(self._snapshot.transactions)
        rows[index] = rows[index].model_copy(update={field: coerced})
        return self._replace(transactions=rows)

    def add_transaction(self, today: Optional[date] = None) -> ExtractedStatement:
        """Append a blank row dated today."""
        blank = ExtractedTransaction(
            date=today or date.today(),
            description="",
            debit_amount=Decimal("0.00"),
            credit_amount=Decimal("0.00"),
            balance=Decimal("0.00"),
            reference_number="",
            category=LedgerCategory.OTHER,
        )
        return self._replace(transactions=[*self._snapshot.transactions, blank])

    def remove_transaction(self, index: int) -> ExtractedStatement:
        """Remove a row; later rows shift down by one."""
        self._check_index(index)
        rows = list(self._snapshot.transactions)
        del rows[index]
        return self._replace(transactions=rows)

    def summary(self) -> dict:
        """Totals of the current snapshot, for display."""
        statement = self._snapshot
        return {
            "transaction_count": len(statement.transactions),
            "total_debits": statement.total_debits,
            "total_credits": statement.total_credits,
            "net_change": statement.net_change,
        }
