"""
Shared ledger plumbing.

Every ledger is bound to one authenticated user and one storage backend.
The projections here (a goal's balance, a budget's spent/remaining view)
take an open session so they are always evaluated inside the same
transaction as the write that depends on them.
"""

from decimal import Decimal
from typing import Any, Iterable, Optional
from uuid import UUID

from household_ledger.audit import HistoryLogger
from household_ledger.config import LedgerSettings, get_settings
from household_ledger.models.ledger import (
    Budget,
    BudgetSummary,
    Expense,
    FinancialGoal,
    GoalContribution,
    GoalDrawdown,
    LedgerRow,
    MonthlyOverview,
    Transfer,
    utcnow,
)
from household_ledger.services.storage.interface import (
    LedgerSession,
    LedgerStorageInterface,
    RowT,
)
from household_ledger.validation.errors import NotFoundError, UnauthorizedError, ValidationError
from household_ledger.validation.rules import (
    HUNDRED,
    calculate_budget_summary,
    format_currency,
)

ZERO = Decimal("0")

# Display names used in NotFoundError messages
RESOURCE_NAMES: dict[type, str] = {
    MonthlyOverview: "Monthly Overview",
    Budget: "Budget",
    Expense: "Expense",
    FinancialGoal: "Financial Goal",
    GoalContribution: "Goal Contribution",
    GoalDrawdown: "Goal Drawdown",
    Transfer: "Transfer",
}


def _total(amounts: Iterable[Decimal]) -> Decimal:
    return sum(amounts, ZERO)


class LedgerBase:
    """
    Common constructor and lookups for all ledgers.

    user_id is the caller's authenticated identity. A ledger built without
    one refuses every operation with UnauthorizedError.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        user_id: Optional[UUID],
        history_logger: Optional[HistoryLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._storage = storage
        self._user_id = user_id
        self._settings = settings or get_settings().ledger
        self._history = history_logger or HistoryLogger(debug=self._settings.debug_mode)

    @property
    def user_id(self) -> UUID:
        if self._user_id is None:
            raise UnauthorizedError()
        return self._user_id

    def money(self, amount: Decimal) -> str:
        return format_currency(amount, self._settings.currency_symbol)

    async def _require(
        self,
        session: LedgerSession,
        kind: type[RowT],
        row_id: UUID,
        resource: Optional[str] = None,
    ) -> RowT:
        """Fetch an owned row or raise NotFoundError."""
        row = await session.get(kind, row_id, self.user_id)
        if row is None:
            raise NotFoundError(resource or RESOURCE_NAMES.get(kind, kind.__name__), row_id)
        return row


def apply_changes(row: RowT, changes: dict[str, Any]) -> RowT:
    """Validated copy of row with changes applied and updated_at bumped."""
    data = row.model_dump()
    data.update(changes)
    data["updated_at"] = utcnow()
    return type(row).model_validate(data)


# =============================================================================
# GOAL PROJECTION
# =============================================================================

async def goal_ledger_net(session: LedgerSession, user_id: UUID, goal_id: UUID) -> Decimal:
    """
    Net of everything recorded against a goal:
    contributions + linked expenses - drawdowns - transfers out.
    """
    contributions = await session.find(GoalContribution, user_id, financial_goal_id=goal_id)
    expenses = await session.find(Expense, user_id, financial_goal_id=goal_id)
    drawdowns = await session.find(GoalDrawdown, user_id, financial_goal_id=goal_id)
    transfers_out = await session.find(Transfer, user_id, from_goal_id=goal_id)
    return (
        _total(c.amount for c in contributions)
        + _total(e.amount for e in expenses)
        - _total(d.amount for d in drawdowns)
        - _total(t.amount for t in transfers_out)
    )


async def recompute_goal(
    session: LedgerSession,
    goal: FinancialGoal,
    currency_symbol: Optional[str] = None,
) -> FinancialGoal:
    """
    Rewrite goal.current_amount from base_amount and the ledger.

    Raises ValidationError instead of storing a negative balance; the
    surrounding transaction then discards whatever change caused it.
    """
    current = goal.base_amount + await goal_ledger_net(session, goal.user_id, goal.id)
    if current < 0:
        raise ValidationError(
            f'This change would leave goal "{goal.name}" with a negative balance '
            f"({format_currency(current, currency_symbol)})",
            "current_amount",
        )
    if current == goal.current_amount:
        return goal
    return await session.update(apply_changes(goal, {"current_amount": current}))


async def recompute_goals(
    session: LedgerSession,
    user_id: UUID,
    goal_ids: Iterable[Optional[UUID]],
    currency_symbol: Optional[str] = None,
) -> None:
    """Recompute each distinct goal; goals deleted meanwhile are ignored."""
    for goal_id in {g for g in goal_ids if g is not None}:
        goal = await session.get(FinancialGoal, goal_id, user_id)
        if goal is not None:
            await recompute_goal(session, goal, currency_symbol)


# =============================================================================
# BUDGET PROJECTION
# =============================================================================

async def summarize_budget(session: LedgerSession, budget: Budget) -> BudgetSummary:
    """
    Spent/remaining view of a budget, counting transfers in and out.

    effective_amount = budget_amount + transfers_in - transfers_out
    """
    expenses = await session.find(Expense, budget.user_id, budget_id=budget.id)
    incoming = await session.find(Transfer, budget.user_id, to_budget_id=budget.id)
    outgoing = await session.find(Transfer, budget.user_id, from_budget_id=budget.id)

    transfers_in = _total(t.amount for t in incoming)
    transfers_out = _total(t.amount for t in outgoing)
    effective = budget.budget_amount + transfers_in - transfers_out
    spending = calculate_budget_summary(effective, (e.amount for e in expenses))

    return BudgetSummary(
        budget_id=budget.id,
        monthly_overview_id=budget.monthly_overview_id,
        name=budget.name,
        budget_amount=budget.budget_amount,
        transfers_in=transfers_in,
        transfers_out=transfers_out,
        effective_amount=effective,
        amount_spent=spending.amount_spent,
        amount_left=spending.amount_left,
        percent_used=spending.percent_used,
    )


def percent_of(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole * 100, or 0 when whole is not positive."""
    if whole <= 0:
        return ZERO
    return part / whole * HUNDRED


def linked_goal_ids(rows: Iterable[LedgerRow]) -> set[UUID]:
    """Goal IDs referenced by expenses or transfers in rows."""
    ids: set[UUID] = set()
    for row in rows:
        goal_id = getattr(row, "financial_goal_id", None) or getattr(row, "from_goal_id", None)
        if goal_id is not None:
            ids.add(goal_id)
    return ids
