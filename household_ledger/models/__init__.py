"""
Data Models Package

This package contains all Pydantic models used by the ledger.
All data flowing through the ledger must conform to these schemas.
"""

from household_ledger.models.ledger import (
    DEFAULT_BUDGET_CATEGORIES,
    DEFAULT_TOTAL_BUDGET,
    BatchItemError,
    BatchResult,
    Budget,
    BudgetCreate,
    BudgetDeviation,
    BudgetSummary,
    BudgetType,
    BudgetUpdate,
    DefaultBudgetCategory,
    Expense,
    ExpenseCreate,
    ExpenseUpdate,
    FinancialGoal,
    FinancialSubGoal,
    Frequency,
    GoalContribution,
    GoalCreate,
    GoalDrawdown,
    GoalProgress,
    GoalStatus,
    GoalType,
    GoalUpdate,
    IncomeSource,
    IncomeSourceCreate,
    LedgerRow,
    MasterBudget,
    MasterBudgetCreate,
    MasterBudgetUpdate,
    MonthlyOverview,
    MonthlyOverviewCreate,
    MonthlyOverviewSummary,
    MonthlyOverviewUpdate,
    MovementRequest,
    Priority,
    SubGoalCreate,
    SubGoalUpdate,
    Subscription,
    SubscriptionCreate,
    SpendingSummary,
    SubscriptionStatus,
    Transfer,
    TransferType,
    UtilizationSummary,
)
from household_ledger.models.history import (
    BudgetHistoryEntry,
    HistoryAction,
    HistoryEntry,
    HistoryEntryBuilder,
    MasterBudgetHistoryEntry,
)

__all__ = [
    # Seed configuration
    "DEFAULT_BUDGET_CATEGORIES",
    "DEFAULT_TOTAL_BUDGET",
    "DefaultBudgetCategory",
    # Enums
    "BudgetType",
    "Frequency",
    "GoalStatus",
    "GoalType",
    "Priority",
    "SubscriptionStatus",
    "TransferType",
    # Stored rows
    "Budget",
    "Expense",
    "FinancialGoal",
    "FinancialSubGoal",
    "GoalContribution",
    "GoalDrawdown",
    "IncomeSource",
    "LedgerRow",
    "MasterBudget",
    "MonthlyOverview",
    "Subscription",
    "Transfer",
    # Inputs
    "BudgetCreate",
    "BudgetUpdate",
    "ExpenseCreate",
    "ExpenseUpdate",
    "GoalCreate",
    "GoalUpdate",
    "IncomeSourceCreate",
    "MasterBudgetCreate",
    "MasterBudgetUpdate",
    "MonthlyOverviewCreate",
    "MonthlyOverviewUpdate",
    "MovementRequest",
    "SubGoalCreate",
    "SubGoalUpdate",
    "SubscriptionCreate",
    # Derived views
    "BatchItemError",
    "BatchResult",
    "BudgetDeviation",
    "BudgetSummary",
    "GoalProgress",
    "MonthlyOverviewSummary",
    "SpendingSummary",
    "UtilizationSummary",
    # History models
    "BudgetHistoryEntry",
    "HistoryAction",
    "HistoryEntry",
    "HistoryEntryBuilder",
    "MasterBudgetHistoryEntry",
]
