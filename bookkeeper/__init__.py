"""
AI Bookkeeper - Source Package

Turns bank statement images into reviewed ledger entries for small
businesses.

DESIGN PRINCIPLES:
1. AI extracts → Human reviews → System persists
2. Fail early, fail visibly
3. Sample data is always labelled as sample data
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "AI Bookkeeper Team"
