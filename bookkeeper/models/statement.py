"""
Core Data Models for AI Bookkeeper

These models define the schemas for everything that flows through the
statement pipeline:
1. What the AI model extracted (ExtractedStatement / ExtractedTransaction)
2. What the user uploaded (EncodedDocument)
3. What gets persisted (StatementHeader / TransactionRow / LedgerEntry)

Extracted models speak camelCase on the wire (the shape the extraction
prompt asks the model for) and snake_case in Python.

NOTE: `datetime` is imported as a module here because ExtractedTransaction
has a field called `date`.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    model_validator,
)
from pydantic.alias_generators import to_camel


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class LedgerCategory(str, Enum):
    """
    Bookkeeping categories a transaction can be filed under.

    This is a closed set and must match the `ledger_category` enum of the
    store exactly.
    """
    TRAVEL_EXPENSE = "travel_expense"
    FUEL_EXPENSE = "fuel_expense"
    OFFICE_EXPENSE = "office_expense"
    CONSTRUCTION_EXPENSE = "construction_expense"
    MATERIAL_EXPENSE = "material_expense"
    SALARY_EXPENSE = "salary_expense"
    RENT_EXPENSE = "rent_expense"
    UTILITIES_EXPENSE = "utilities_expense"
    PROFESSIONAL_FEES = "professional_fees"
    MARKETING_EXPENSE = "marketing_expense"
    MAINTENANCE_EXPENSE = "maintenance_expense"
    INSURANCE_EXPENSE = "insurance_expense"
    SALES_INCOME = "sales_income"
    SERVICE_INCOME = "service_income"
    OTHER_INCOME = "other_income"
    CGST_PAYABLE = "cgst_payable"
    SGST_PAYABLE = "sgst_payable"
    IGST_PAYABLE = "igst_payable"
    CGST_RECEIVABLE = "cgst_receivable"
    SGST_RECEIVABLE = "sgst_receivable"
    IGST_RECEIVABLE = "igst_receivable"
    ACCOUNTS_PAYABLE = "accounts_payable"
    ACCOUNTS_RECEIVABLE = "accounts_receivable"
    CASH = "cash"
    BANK = "bank"
    OTHER = "other"

    @property
    def label(self) -> str:
        """Display label, e.g. 'Fuel Expense' or 'CGST Payable'."""
        words = self.value.split("_")
        return " ".join(
            w.upper() if w in ("cgst", "sgst", "igst") else w.capitalize()
            for w in words
        )

    @classmethod
    def coerce(cls, value) -> "LedgerCategory":
        """Map any model/user supplied value onto the enum, falling back to OTHER."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.OTHER


class EntryType(str, Enum):
    """Side of the ledger an entry is posted to."""
    DEBIT = "debit"
    CREDIT = "credit"


# =============================================================================
# EXTRACTED DATA (transient, pre-commit)
# =============================================================================

class _WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class StatementPeriod(_WireModel):
    """Date range a statement covers."""

    from_date: dt.date = Field(..., alias="from")
    to_date: dt.date = Field(..., alias="to")

    @classmethod
    def rolling(cls, days: int = 30, today: Optional[dt.date] = None) -> "StatementPeriod":
        """A window of `days` days ending today."""
        today = today or dt.date.today()
        return cls(from_date=today - dt.timedelta(days=days), to_date=today)


class ExtractedTransaction(_WireModel):
    """
    One line item read off a bank statement.

    After normalization at most one of debit_amount / credit_amount is
    non-zero. Edits in the review buffer do not re-enforce that; the
    validator flags it instead.
    """

    date: dt.date
    description: str = ""
    debit_amount: Decimal = Field(default=Decimal("0"), ge=0)
    credit_amount: Decimal = Field(default=Decimal("0"), ge=0)
    balance: Decimal = Decimal("0")
    reference_number: str = ""
    category: LedgerCategory = LedgerCategory.OTHER

    @field_serializer("debit_amount", "credit_amount", "balance", when_used="json")
    def _amount_to_number(self, value: Decimal) -> float:
        return float(value)

    @property
    def is_debit(self) -> bool:
        return self.debit_amount > 0

    @property
    def signed_amount(self) -> Decimal:
        """Credit minus debit: positive money in, negative money out."""
        return self.credit_amount - self.debit_amount


class ExtractedStatement(_WireModel):
    """
    A bank statement as extracted by the AI model.

    CRITICAL: This is PROPOSED data. It lives in the review buffer until
    the user confirms, and is discarded after commit.
    """

    # Extraction metadata (not part of the wire payload)
    extraction_id: UUID = Field(default_factory=uuid4, exclude=True)
    is_sample: bool = Field(
        default=False,
        exclude=True,
        description="True for the offline placeholder record"
    )

    account_number: str
    bank_name: str
    statement_period: StatementPeriod
    opening_balance: str = "0.00"
    closing_balance: str = "0.00"
    transactions: list[ExtractedTransaction] = Field(default_factory=list)

    @property
    def total_debits(self) -> Decimal:
        return sum((t.debit_amount for t in self.transactions), Decimal("0"))

    @property
    def total_credits(self) -> Decimal:
        return sum((t.credit_amount for t in self.transactions), Decimal("0"))

    @property
    def net_change(self) -> Decimal:
        return self.total_credits - self.total_debits

    def to_wire(self) -> dict:
        """camelCase JSON-ready dict, as returned by the extraction gateway."""
        return self.model_dump(mode="json", by_alias=True)


class ExtractionResponse(_WireModel):
    """Response envelope of the extraction gateway."""

    success: bool
    extracted_data: Optional[ExtractedStatement] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def check_payload(self) -> "ExtractionResponse":
        if self.success and self.extracted_data is None:
            raise ValueError("Successful response must carry extracted data")
        if not self.success and not self.error:
            raise ValueError("Failed response must carry an error message")
        return self

    def to_wire(self) -> dict:
        if self.success:
            return {"success": True, "extractedData": self.extracted_data.to_wire()}
        return {"success": False, "error": self.error}


class EncodedDocument(BaseModel):
    """An accepted upload, base64-encoded for transport to the model."""

    document_id: UUID = Field(default_factory=uuid4)
    filename: str
    mime_type: str
    size_bytes: int = Field(ge=0)
    base64_data: str = Field(..., min_length=1)
    received_at: dt.datetime = Field(default_factory=dt.datetime.utcnow)


# =============================================================================
# PERSISTED ROWS
# =============================================================================

class StatementHeader(BaseModel):
    """
    One row of `bank_statements`.

    `id` is generated by the store on insert.
    """

    id: Optional[UUID] = None
    user_id: UUID
    file_name: str = Field(..., min_length=1)
    file_path: str
    upload_date: dt.datetime = Field(default_factory=dt.datetime.utcnow)
    processed: bool = True
    processed_at: Optional[dt.datetime] = Field(default_factory=dt.datetime.utcnow)

    def to_record(self) -> dict:
        """Column dict for insert (store generates the id)."""
        return self.model_dump(mode="json", exclude={"id"} if self.id is None else set())


class TransactionRow(BaseModel):
    """One row of `bank_transactions`."""

    id: Optional[UUID] = None
    statement_id: UUID
    user_id: UUID
    transaction_date: dt.date
    description: str
    debit_amount: Decimal = Field(default=Decimal("0"), ge=0)
    credit_amount: Decimal = Field(default=Decimal("0"), ge=0)
    balance: Optional[Decimal] = None
    reference_number: Optional[str] = None
    category: LedgerCategory = LedgerCategory.OTHER

    @classmethod
    def from_extracted(
        cls,
        transaction: ExtractedTransaction,
        statement_id: UUID,
        user_id: UUID,
    ) -> "TransactionRow":
        return cls(
            statement_id=statement_id,
            user_id=user_id,
            transaction_date=transaction.date,
            description=transaction.description,
            debit_amount=transaction.debit_amount,
            credit_amount=transaction.credit_amount,
            balance=transaction.balance,
            reference_number=transaction.reference_number or None,
            category=transaction.category,
        )

    def to_record(self) -> dict:
        return self.model_dump(mode="json", exclude={"id"} if self.id is None else set())


class LedgerEntry(BaseModel):
    """
    One row of `ledger_entries`, derived from a bank transaction.

    `amount` is always the magnitude; the side is carried by `entry_type`.
    `category` is kept for display only: the ledger table has no category
    column, the transaction row it was derived from stores it.
    """

    id: Optional[UUID] = None
    user_id: UUID
    date: dt.date
    description: str
    reference: str = ""
    entry_type: EntryType
    amount: Decimal = Field(..., ge=0)
    balance: Decimal = Decimal("0")
    category: LedgerCategory = LedgerCategory.OTHER

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.entry_type == EntryType.CREDIT else -self.amount

    def to_record(self) -> dict:
        exclude = {"category"} if self.id is not None else {"id", "category"}
        record = self.model_dump(mode="json", exclude=exclude)
        # column is called `type` in the store
        record["type"] = record.pop("entry_type")
        return record


class CommitResult(BaseModel):
    """Outcome of persisting one confirmed statement."""

    statement: StatementHeader
    transaction_count: int = Field(ge=0)
    ledger_entry_count: int = Field(ge=0)
    is_sample: bool = False
    committed_at: dt.datetime = Field(default_factory=dt.datetime.utcnow)


# =============================================================================
# REVIEW CHECKS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single issue found while checking an extracted statement."""

    field: str = Field(
        ...,
        description="Field with the issue, e.g. 'transactions[2].balance'"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'balance_mismatch', 'both_sides_set', 'sample_data')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="warning",
        pattern="^(warning|info)$",
        description="Issue severity. Checks never block saving."
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of checking an extracted statement.

    Informational only: the user may save a statement with warnings.
    """

    extraction_id: UUID
    validated_at: dt.datetime = Field(default_factory=dt.datetime.utcnow)
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        return [i.message for i in self.issues if i.severity == "warning"]

    @property
    def is_clean(self) -> bool:
        return not self.issues
