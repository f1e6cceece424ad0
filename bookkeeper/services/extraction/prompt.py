"""
Extraction prompt sent with every statement document.

The model is a TRANSCRIBER here: it reads what is printed on the statement
and picks a category. Everything it returns is normalized and then shown to
the user for review before anything is saved.
"""

from bookkeeper.models.statement import LedgerCategory


def _category_choices() -> str:
    values = [c.value for c in LedgerCategory]
    return ", ".join(values[:-1]) + f", or {values[-1]}"


EXTRACTION_PROMPT = f"""Extract bank transactions from this bank statement image and return them as a JSON object with the following structure:
{{
  "accountNumber": "account number if visible",
  "bankName": "bank name if visible",
  "statementPeriod": {{
    "from": "YYYY-MM-DD",
    "to": "YYYY-MM-DD"
  }},
  "openingBalance": "opening balance amount",
  "closingBalance": "closing balance amount",
  "transactions": [
    {{
      "date": "YYYY-MM-DD",
      "description": "transaction description",
      "debitAmount": "debit amount or 0",
      "creditAmount": "credit amount or 0",
      "balance": "running balance",
      "referenceNumber": "reference/cheque number if available",
      "category": "auto-categorize as: {_category_choices()}"
    }}
  ]
}}

Rules:
1. Extract ALL visible transactions from the statement
2. Categorize transactions intelligently based on description
3. Use 0 for debit/credit amounts when the transaction is on the opposite side
4. Include reference numbers, cheque numbers, or transaction IDs when visible
5. If dates are unclear, use reasonable estimates within the statement period
6. For amounts, extract only numeric values without currency symbols

Respond with ONLY the JSON object, no explanation."""
