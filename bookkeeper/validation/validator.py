"""
Two-Stage Review Checks

Checks run on an extracted (or edited) statement before the user confirms.

STAGE 1 - STRUCTURE:
- Empty transaction list
- Debit and credit both set on one row (possible after editing)
- Statement period ending before it starts

STAGE 2 - CONSISTENCY:
- Running balances reconcile with opening balance + credits - debits
- Closing balance matches the last running balance
- Transaction dates fall inside the statement period
- Sample data flagged as such

IMPORTANT: Checks NEVER fix or block anything. Every issue is a warning
shown next to the review table; the user decides.
"""

from decimal import Decimal
from typing import Optional

from bookkeeper.config import get_settings
from bookkeeper.models.statement import (
    ExtractedStatement,
    ValidationIssue,
    ValidationResult,
)
from bookkeeper.services.extraction.normalizer import is_sample_statement, safe_decimal


class StatementValidator:
    """
    Runs the review checks on a statement snapshot.

    Args:
        balance_tolerance: Allowed drift when reconciling balances.
            Defaults to AppSettings.balance_tolerance.
    """

    def __init__(self, balance_tolerance: Optional[float] = None):
        if balance_tolerance is None:
            balance_tolerance = get_settings().app.balance_tolerance
        self._tolerance = Decimal(str(balance_tolerance))

    def _check_structure(self, statement: ExtractedStatement) -> list[ValidationIssue]:
        """Stage 1: shape of the statement."""
        issues = []

        if not statement.transactions:
            issues.append(ValidationIssue(
                field="transactions",
                issue_type="empty",
                message="No transactions were found on this statement",
                suggested_fix="Add rows manually or try a clearer image",
            ))

        for i, t in enumerate(statement.transactions):
            if t.debit_amount > 0 and t.credit_amount > 0:
                issues.append(ValidationIssue(
                    field=f"transactions[{i}]",
                    issue_type="both_sides_set",
                    message=f"Row {i + 1} has both a debit and a credit amount",
                    suggested_fix="Set one of the two amounts to 0",
                ))

        period = statement.statement_period
        if period.to_date < period.from_date:
            issues.append(ValidationIssue(
                field="statement_period",
                issue_type="inconsistent",
                message="Statement period ends before it starts",
                suggested_fix="Please verify the period dates",
            ))

        return issues

    def _check_consistency(self, statement: ExtractedStatement) -> list[ValidationIssue]:
        """Stage 2: numbers and dates agree with each other."""
        issues = []

        # Running balances. After a mismatch we resync on the printed
        # balance so one bad row yields one warning.
        running = safe_decimal(statement.opening_balance)
        for i, t in enumerate(statement.transactions):
            running += t.credit_amount - t.debit_amount
            if t.balance == 0:
                continue
            if abs(running - t.balance) > self._tolerance:
                issues.append(ValidationIssue(
                    field=f"transactions[{i}].balance",
                    issue_type="balance_mismatch",
                    message=(
                        f"Row {i + 1}: balance {t.balance:,.2f} does not follow "
                        f"from the previous balance (expected {running:,.2f})"
                    ),
                    suggested_fix="Check the amounts and balance of this row",
                ))
                running = t.balance

        closing = safe_decimal(statement.closing_balance)
        if statement.transactions and closing != 0 and abs(running - closing) > self._tolerance:
            issues.append(ValidationIssue(
                field="closing_balance",
                issue_type="balance_mismatch",
                message=(
                    f"Closing balance {closing:,.2f} does not match the "
                    f"computed balance {running:,.2f}"
                ),
                suggested_fix="Some transactions may be missing or misread",
            ))

        period = statement.statement_period
        if period.from_date <= period.to_date:
            outside = [
                i + 1 for i, t in enumerate(statement.transactions)
                if not (period.from_date <= t.date <= period.to_date)
            ]
            if outside:
                issues.append(ValidationIssue(
                    field="transactions",
                    issue_type="date_outside_period",
                    message=(
                        f"{len(outside)} transaction(s) dated outside the statement "
                        f"period (rows {', '.join(str(r) for r in outside[:10])})"
                    ),
                    suggested_fix="Please verify the dates",
                ))

        if is_sample_statement(statement):
            issues.append(ValidationIssue(
                field="statement",
                issue_type="sample_data",
                message="This is SAMPLE data, not read from your statement",
                severity="info",
                suggested_fix="Upload a statement image to extract real transactions",
            ))

        return issues

    def validate(self, statement: ExtractedStatement) -> ValidationResult:
        """Run both stages and collect every issue."""
        issues = self._check_structure(statement)
        issues.extend(self._check_consistency(statement))
        return ValidationResult(extraction_id=statement.extraction_id, issues=issues)

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of the check results.

        This is what we show above the review table.
        """
        if result.is_clean:
            return "✅ All checks passed! Please review the transactions below."

        lines = []
        notes = [i for i in result.issues if i.severity == "info"]
        for note in notes:
            lines.append(f"ℹ️ {note.message}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for issue in result.issues:
                if issue.severity != "warning":
                    continue
                lines.append(f"   • {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"     💡 {issue.suggested_fix}")

        lines.append("")
        lines.append("You can still save, but please review carefully.")
        return "\n".join(lines)
