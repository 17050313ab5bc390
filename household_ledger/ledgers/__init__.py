"""
Ledgers Package

Each ledger owns one slice of the household's books and is bound to a
single authenticated user.
"""

from household_ledger.ledgers.base import LedgerBase
from household_ledger.ledgers.budget import BudgetLedger
from household_ledger.ledgers.expenses import ExpenseLedger
from household_ledger.ledgers.goal import GoalLedger
from household_ledger.ledgers.months import MonthLedger
from household_ledger.ledgers.normalizer import AmountNormalizer
from household_ledger.ledgers.subscriptions import SubscriptionBudgetBridge

__all__ = [
    "AmountNormalizer",
    "BudgetLedger",
    "ExpenseLedger",
    "GoalLedger",
    "LedgerBase",
    "MonthLedger",
    "SubscriptionBudgetBridge",
]
