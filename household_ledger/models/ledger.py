"""
Core Data Models for Household Ledger

These models define the schemas for every row the ledger reads or writes.
They are designed to:
1. Enforce type safety at runtime
2. Be serializable for storage and history snapshots
3. Keep money as Decimal, never float

DESIGN DECISION: Business rules (positive amounts, date ranges, progress
bounds) are NOT enforced here. They live in household_ledger.validation so
that every failure surfaces with the exact, user-facing message the ledger
promises. These models only guarantee types.
"""

import datetime as dt
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Frequency(str, Enum):
    """Billing or contribution frequency."""
    WEEKLY = "Weekly"
    BI_WEEKLY = "Bi-Weekly"
    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    BI_ANNUALLY = "Bi-Annually"
    ANNUALLY = "Annually"
    ONE_TIME = "One-Time"


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status."""
    ACTIVE = "Active"
    PAUSED = "Paused"
    CANCELLED = "Cancelled"
    ENDED = "Ended"


class TransferType(str, Enum):
    """
    Kinds of money movement.

    BUDGET_TO_BUDGET moves allocation inside one month.
    GOAL_TO_BUDGET withdraws savings into a month's budget.
    GOAL_DRAWDOWN withdraws savings with no destination budget.
    """
    BUDGET_TO_BUDGET = "budget_to_budget"
    GOAL_TO_BUDGET = "goal_to_budget"
    GOAL_DRAWDOWN = "goal_drawdown"


class BudgetType(str, Enum):
    """Whether a category's amount is fixed month to month."""
    FIXED = "Fixed"
    VARIABLE = "Variable"


class GoalStatus(str, Enum):
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    ON_HOLD = "On Hold"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class GoalType(str, Enum):
    SHORT_TERM = "Short Term"
    MEDIUM_TERM = "Medium Term"
    LONG_TERM = "Long Term"


# =============================================================================
# STORED ROWS
# =============================================================================

class LedgerRow(BaseModel):
    """
    Base for every persisted row.

    All rows are owned by exactly one user. Lookups that do not match the
    caller's user_id behave as if the row does not exist.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique row identifier"
    )
    user_id: UUID = Field(
        ...,
        description="Owner of this row"
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        description="When the row was first written"
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        description="Last write timestamp"
    )


class MonthlyOverview(LedgerRow):
    """A named, date-bounded budgeting period."""

    name: str = Field(..., min_length=1, max_length=100)
    start_date: date
    end_date: date
    notes: Optional[str] = Field(default=None, max_length=1000)


class IncomeSource(LedgerRow):
    """Income received inside a month."""

    monthly_overview_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    amount: Decimal
    date: dt.date
    notes: Optional[str] = Field(default=None, max_length=1000)


class MasterBudget(LedgerRow):
    """
    Reusable category template.

    Copied into months by BudgetLedger.add_master_budgets_to_month. Edits
    and deletions never reach months that already copied it.
    """

    name: str = Field(..., min_length=1, max_length=200)
    budget_amount: Decimal
    description: Optional[str] = Field(default=None, max_length=500)
    budget_type: BudgetType = BudgetType.FIXED
    is_active: bool = True
    display_order: int = 0


class Budget(LedgerRow):
    """
    A month-scoped category.

    override_amount/override_reason are set when budget_amount deviates
    from the linked master budget by more than the configured tolerance.
    """

    monthly_overview_id: UUID
    master_budget_id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=200)
    budget_amount: Decimal
    description: Optional[str] = Field(default=None, max_length=500)
    override_amount: Optional[Decimal] = None
    override_reason: Optional[str] = Field(default=None, max_length=500)


class Expense(LedgerRow):
    """Money spent from one budget."""

    budget_id: UUID
    monthly_overview_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    amount: Decimal
    date: dt.date
    financial_goal_id: Optional[UUID] = None
    is_recurring: bool = False
    frequency: Optional[Frequency] = None
    payment_method: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=1000)


class FinancialGoal(LedgerRow):
    """
    A savings target.

    current_amount is a materialized projection:
        base_amount + contributions + linked expenses
                    - drawdowns - transfers out
    It is recomputed inside every transaction that touches the goal's
    ledger and is never negative.
    """

    name: str = Field(..., min_length=1, max_length=200)
    target_amount: Decimal
    base_amount: Decimal = Decimal("0.00")
    current_amount: Decimal = Decimal("0.00")
    start_date: date
    end_date: Optional[date] = None
    status: GoalStatus = GoalStatus.NOT_STARTED
    priority: Priority = Priority.MEDIUM
    goal_type: Optional[GoalType] = None
    description: Optional[str] = Field(default=None, max_length=1000)
    has_sub_goals: bool = False


class FinancialSubGoal(LedgerRow):
    """A discrete step toward a goal."""

    financial_goal_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    estimated_cost: Optional[Decimal] = None
    actual_cost: Optional[Decimal] = None
    status: GoalStatus = GoalStatus.NOT_STARTED
    priority: Priority = Priority.MEDIUM
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    progress: int = 0
    description: Optional[str] = Field(default=None, max_length=1000)


class MoneyMovement(LedgerRow):
    """Shared fields of the immutable money-movement rows."""

    amount: Decimal
    date: dt.date
    description: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=1000)
    payment_method: Optional[str] = Field(default=None, max_length=100)


class GoalContribution(MoneyMovement):
    """A deposit into a goal."""

    financial_goal_id: UUID
    monthly_overview_id: Optional[UUID] = None


class GoalDrawdown(MoneyMovement):
    """A withdrawal from a goal recorded directly on the goal ledger."""

    financial_goal_id: UUID
    monthly_overview_id: Optional[UUID] = None


class Transfer(MoneyMovement):
    """
    A money movement coordinated by TransferCoordinator.

    Which references are set depends on transfer_type:
    - BUDGET_TO_BUDGET: from_budget_id, to_budget_id
    - GOAL_TO_BUDGET: from_goal_id, to_budget_id
    - GOAL_DRAWDOWN: from_goal_id only
    """

    transfer_type: TransferType
    monthly_overview_id: Optional[UUID] = None
    from_budget_id: Optional[UUID] = None
    to_budget_id: Optional[UUID] = None
    from_goal_id: Optional[UUID] = None


class Subscription(LedgerRow):
    """A recurring charge."""

    name: str = Field(..., min_length=1, max_length=200)
    amount: Decimal
    frequency: Frequency
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    next_collection_date: Optional[date] = None
    collection_day: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_essential: bool = False
    payment_method: Optional[str] = Field(default=None, max_length=100)


# =============================================================================
# INPUT MODELS
# =============================================================================

class InputModel(BaseModel):
    """
    Caller-supplied data.

    Update models use model_dump(exclude_unset=True) so only fields the
    caller actually sent are patched.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


class MonthlyOverviewCreate(InputModel):
    name: str
    start_date: date
    end_date: date
    notes: Optional[str] = None


class MonthlyOverviewUpdate(InputModel):
    name: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: Optional[str] = None


class IncomeSourceCreate(InputModel):
    name: str
    amount: Decimal
    date: dt.date
    notes: Optional[str] = None


class MasterBudgetCreate(InputModel):
    name: str
    budget_amount: Decimal
    description: Optional[str] = None
    budget_type: BudgetType = BudgetType.FIXED
    is_active: bool = True
    display_order: Optional[int] = None


class MasterBudgetUpdate(InputModel):
    name: Optional[str] = None
    budget_amount: Optional[Decimal] = None
    description: Optional[str] = None
    budget_type: Optional[BudgetType] = None
    is_active: Optional[bool] = None
    display_order: Optional[int] = None


class BudgetCreate(InputModel):
    monthly_overview_id: UUID
    name: str
    budget_amount: Decimal
    description: Optional[str] = None
    master_budget_id: Optional[UUID] = None
    override_amount: Optional[Decimal] = None
    override_reason: Optional[str] = None


class BudgetUpdate(InputModel):
    name: Optional[str] = None
    budget_amount: Optional[Decimal] = None
    description: Optional[str] = None
    override_reason: Optional[str] = None


class ExpenseCreate(InputModel):
    budget_id: UUID
    name: str
    amount: Decimal
    date: dt.date
    financial_goal_id: Optional[UUID] = None
    is_recurring: bool = False
    frequency: Optional[Frequency] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None


class ExpenseUpdate(InputModel):
    budget_id: Optional[UUID] = None
    name: Optional[str] = None
    amount: Optional[Decimal] = None
    date: Optional[dt.date] = None
    financial_goal_id: Optional[UUID] = None
    is_recurring: Optional[bool] = None
    frequency: Optional[Frequency] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None


class GoalCreate(InputModel):
    name: str
    target_amount: Decimal
    current_amount: Decimal = Decimal("0")
    start_date: date
    end_date: Optional[date] = None
    status: GoalStatus = GoalStatus.NOT_STARTED
    priority: Priority = Priority.MEDIUM
    goal_type: Optional[GoalType] = None
    description: Optional[str] = None


class GoalUpdate(InputModel):
    name: Optional[str] = None
    target_amount: Optional[Decimal] = None
    current_amount: Optional[Decimal] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[GoalStatus] = None
    priority: Optional[Priority] = None
    goal_type: Optional[GoalType] = None
    description: Optional[str] = None


class SubGoalCreate(InputModel):
    name: str
    estimated_cost: Optional[Decimal] = None
    actual_cost: Optional[Decimal] = None
    status: GoalStatus = GoalStatus.NOT_STARTED
    priority: Priority = Priority.MEDIUM
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    progress: int = 0
    description: Optional[str] = None


class SubGoalUpdate(InputModel):
    name: Optional[str] = None
    estimated_cost: Optional[Decimal] = None
    actual_cost: Optional[Decimal] = None
    status: Optional[GoalStatus] = None
    priority: Optional[Priority] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    progress: Optional[int] = None
    description: Optional[str] = None


class MovementRequest(InputModel):
    """Amount, date and free-text details of a contribution, drawdown or transfer."""
    amount: Decimal
    date: dt.date
    description: Optional[str] = None
    notes: Optional[str] = None
    payment_method: Optional[str] = None


class SubscriptionCreate(InputModel):
    name: str
    amount: Decimal
    frequency: Frequency
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    next_collection_date: Optional[date] = None
    collection_day: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_essential: bool = False
    payment_method: Optional[str] = None


# =============================================================================
# DERIVED VIEWS
# =============================================================================

class BudgetSummary(BaseModel):
    """
    Spent/remaining view of one budget.

    effective_amount = budget_amount + transfers_in - transfers_out
    amount_left = effective_amount - amount_spent (negative when overspent)
    """

    budget_id: UUID
    monthly_overview_id: UUID
    name: str
    budget_amount: Decimal
    transfers_in: Decimal
    transfers_out: Decimal
    effective_amount: Decimal
    amount_spent: Decimal
    amount_left: Decimal
    percent_used: Decimal

    @property
    def is_overspent(self) -> bool:
        return self.amount_left < 0


class SpendingSummary(BaseModel):
    """Result of summing expenses against an allocation."""

    amount_spent: Decimal
    amount_left: Decimal
    percent_used: Decimal


class MonthlyOverviewSummary(BaseModel):
    monthly_overview_id: Optional[UUID] = None
    total_income: Decimal
    total_budgeted: Decimal
    amount_unallocated: Decimal


class UtilizationSummary(BaseModel):
    total_budgeted: Decimal
    total_spent: Decimal
    total_left: Decimal
    percent_used: Decimal


class BudgetDeviation(BaseModel):
    """How far a month's budget sits from its master template."""

    budget_id: UUID
    master_budget_id: UUID
    master_amount: Decimal
    budget_amount: Decimal
    deviation: Decimal
    deviation_percent: Optional[Decimal] = None
    is_override: bool


class GoalProgress(BaseModel):
    goal_id: UUID
    target_amount: Decimal
    current_amount: Decimal
    remaining_amount: Decimal
    progress_percent: Decimal


class BatchItemError(BaseModel):
    name: str
    error: str


class BatchResult(BaseModel):
    """
    Outcome of a batch of independent creations.

    Partial success is normal: one failing item never undoes the others.
    """

    created: int = 0
    skipped: int = 0
    errors: list[BatchItemError] = Field(default_factory=list)
    created_ids: list[UUID] = Field(default_factory=list)


# =============================================================================
# SEED CONFIGURATION
# =============================================================================

class DefaultBudgetCategory(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    amount: Decimal
    description: str


DEFAULT_BUDGET_CATEGORIES: tuple[DefaultBudgetCategory, ...] = (
    DefaultBudgetCategory(name="Tithe", amount=Decimal("350.00"), description="10% of all income - giving back to God"),
    DefaultBudgetCategory(name="Offering", amount=Decimal("175.00"), description="5% of main income - additional giving"),
    DefaultBudgetCategory(name="Housing", amount=Decimal("2228.00"), description="Rent, Electricity"),
    DefaultBudgetCategory(name="Food", amount=Decimal("350.00"), description="Groceries & Snacks"),
    DefaultBudgetCategory(name="Transport", amount=Decimal("200.00"), description="Toll, Parking, Fuel"),
    DefaultBudgetCategory(name="Personal Care", amount=Decimal("480.00"), description="Personal allowances, Nails"),
    DefaultBudgetCategory(name="Household", amount=Decimal("130.00"), description="Household items, Cleaning"),
    DefaultBudgetCategory(name="Savings", amount=Decimal("300.00"), description="Monthly savings"),
    DefaultBudgetCategory(name="Investments", amount=Decimal("100.00"), description="401K, Stocks, Retirement contributions"),
    DefaultBudgetCategory(name="Subscriptions", amount=Decimal("75.00"), description="Netflix, Spotify, and other recurring subscriptions"),
    DefaultBudgetCategory(name="Health", amount=Decimal("50.00"), description="Medicine or health related"),
    DefaultBudgetCategory(name="Travel", amount=Decimal("50.00"), description="Travel Allowance"),
    DefaultBudgetCategory(name="Miscellaneous", amount=Decimal("100.00"), description="Unexpected expenses and other items"),
)

DEFAULT_TOTAL_BUDGET: Decimal = sum(
    (category.amount for category in DEFAULT_BUDGET_CATEGORIES),
    Decimal("0"),
)
