"""
Household Ledger - Source Package

The consistency and validation engine behind a household budgeting app:
months, budgets, master budgets, savings goals, transfers and subscriptions.

DESIGN PRINCIPLES:
1. Validate fully, then write
2. Fail early, fail visibly
3. No silent corrections
4. Every change to a budget definition is recorded
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Household Ledger Team"
