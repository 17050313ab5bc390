"""
Goal Ledger

Maintains savings goals, their sub-goals, and the append-only ledger of
money moving in and out of them.

DESIGN DECISION: A goal's balance is never edited directly. It is a
materialized projection:

    current_amount = base_amount
                   + contributions + linked expenses
                   - drawdowns - transfers out

base_amount is the only hand-entered part. Every write that touches a goal's
ledger recomputes current_amount inside the same locked transaction and
refuses to store a negative value, so two concurrent withdrawals can never
both pass their balance check.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from household_ledger.ledgers.base import (
    LedgerBase,
    ZERO,
    apply_changes,
    goal_ledger_net,
    recompute_goal,
)
from household_ledger.models.ledger import (
    Expense,
    FinancialGoal,
    FinancialSubGoal,
    GoalContribution,
    GoalCreate,
    GoalDrawdown,
    GoalProgress,
    GoalStatus,
    GoalUpdate,
    MonthlyOverview,
    MovementRequest,
    SubGoalCreate,
    SubGoalUpdate,
    Transfer,
)
from household_ledger.services.storage.interface import LedgerSession, lock_key, retry_on_conflict
from household_ledger.validation.errors import InsufficientFundsError, NotFoundError, ValidationError
from household_ledger.validation.rules import (
    HUNDRED,
    to_money,
    validate_date_range,
    validate_date_within_period,
    validate_non_negative_amount,
    validate_positive_amount,
    validate_progress,
)

# Patch fields that may be explicitly cleared with None
_NULLABLE_GOAL_FIELDS = {"end_date", "goal_type", "description"}
_NULLABLE_SUB_GOAL_FIELDS = {
    "estimated_cost", "actual_cost", "start_date", "end_date", "description",
}


class GoalLedger(LedgerBase):
    """Savings goals, sub-goals, contributions and drawdowns for one user."""

    # =========================================================================
    # GOALS
    # =========================================================================

    @retry_on_conflict()
    async def create_goal(self, data: GoalCreate) -> FinancialGoal:
        """
        Create a goal. The supplied current_amount becomes its base_amount.
        """
        validate_positive_amount(data.target_amount, "Target amount")
        validate_date_range(data.start_date, data.end_date)
        validate_non_negative_amount(data.current_amount, "Current amount")

        opening = to_money(data.current_amount)
        goal = FinancialGoal(
            user_id=self.user_id,
            **data.model_dump(exclude={"current_amount"}),
            base_amount=opening,
            current_amount=opening,
        )
        async with self._storage.transaction(lock_key("goal", goal.id)) as session:
            goal = await session.insert(goal)

        self._history.event("goal_created", goal_id=goal.id, target_amount=goal.target_amount)
        return goal

    @retry_on_conflict()
    async def update_goal(self, goal_id: UUID, patch: GoalUpdate) -> FinancialGoal:
        """
        Patch a goal.

        Target and date range are re-validated against the stored values
        of unpatched fields. A patched current_amount rewrites base_amount
        so the projection lands exactly on the entered value.
        """
        changes = {
            k: v for k, v in patch.model_dump(exclude_unset=True).items()
            if v is not None or k in _NULLABLE_GOAL_FIELDS
        }
        if "target_amount" in patch.model_fields_set:
            validate_positive_amount(patch.target_amount or ZERO, "Target amount")
        requested_current = changes.pop("current_amount", None)
        if requested_current is not None:
            validate_non_negative_amount(requested_current, "Current amount")

        async with self._storage.transaction(lock_key("goal", goal_id)) as session:
            goal = await self._require(session, FinancialGoal, goal_id)

            if "start_date" in changes or "end_date" in changes:
                validate_date_range(
                    changes.get("start_date", goal.start_date),
                    changes["end_date"] if "end_date" in changes else goal.end_date,
                )

            if requested_current is not None:
                net = await goal_ledger_net(session, self.user_id, goal.id)
                changes["base_amount"] = to_money(requested_current) - net

            updated = await session.update(apply_changes(goal, changes))
            updated = await recompute_goal(session, updated, self._settings.currency_symbol)

        self._history.event("goal_updated", goal_id=goal_id, fields=",".join(sorted(changes)))
        return updated

    @retry_on_conflict()
    async def delete_goal(self, goal_id: UUID) -> bool:
        """
        Delete a goal with its sub-goals, contributions and drawdowns.

        Linked expenses stay in their budgets and lose the link. Transfers
        out of the goal stay as well, since the budgets they funded still
        count them.
        """
        async with self._storage.transaction(lock_key("goal", goal_id)) as session:
            await self._require(session, FinancialGoal, goal_id)

            for kind in (FinancialSubGoal, GoalContribution, GoalDrawdown):
                for row in await session.find(kind, self.user_id, financial_goal_id=goal_id):
                    await session.delete(kind, row.id, self.user_id)

            for expense in await session.find(Expense, self.user_id, financial_goal_id=goal_id):
                await session.update(apply_changes(expense, {"financial_goal_id": None}))

            await session.delete(FinancialGoal, goal_id, self.user_id)

        self._history.event("goal_deleted", goal_id=goal_id)
        return True

    async def get_goal(self, goal_id: UUID) -> FinancialGoal:
        async with self._storage.transaction() as session:
            return await self._require(session, FinancialGoal, goal_id)

    async def list_goals(self, status: Optional[GoalStatus] = None) -> list[FinancialGoal]:
        filters = {"status": status} if status is not None else {}
        async with self._storage.transaction() as session:
            return await session.find(FinancialGoal, self.user_id, **filters)

    async def get_progress(self, goal_id: UUID) -> GoalProgress:
        """Progress toward the target, clamped to [0, 100] percent."""
        goal = await self.get_goal(goal_id)
        percent = goal.current_amount / goal.target_amount * HUNDRED if goal.target_amount > 0 else ZERO
        return GoalProgress(
            goal_id=goal.id,
            target_amount=goal.target_amount,
            current_amount=goal.current_amount,
            remaining_amount=max(goal.target_amount - goal.current_amount, ZERO),
            progress_percent=min(max(percent, ZERO), HUNDRED),
        )

    @retry_on_conflict()
    async def recalculate(self, goal_id: UUID) -> FinancialGoal:
        """Recompute current_amount from base_amount and the ledger."""
        async with self._storage.transaction(lock_key("goal", goal_id)) as session:
            goal = await self._require(session, FinancialGoal, goal_id)
            return await recompute_goal(session, goal, self._settings.currency_symbol)

    # =========================================================================
    # SUB-GOALS
    # =========================================================================

    @retry_on_conflict()
    async def create_sub_goal(self, goal_id: UUID, data: SubGoalCreate) -> FinancialSubGoal:
        """Add a step to a goal. Either date alone is allowed."""
        self._validate_sub_goal(data.progress, data.estimated_cost, data.actual_cost)
        if data.start_date and data.end_date:
            validate_date_range(data.start_date, data.end_date)

        async with self._storage.transaction(lock_key("goal", goal_id)) as session:
            goal = await self._require(session, FinancialGoal, goal_id)
            sub_goal = await session.insert(
                FinancialSubGoal(user_id=self.user_id, financial_goal_id=goal.id, **data.model_dump())
            )
            if not goal.has_sub_goals:
                await session.update(apply_changes(goal, {"has_sub_goals": True}))

        return sub_goal

    @retry_on_conflict()
    async def update_sub_goal(self, goal_id: UUID, sub_goal_id: UUID, patch: SubGoalUpdate) -> FinancialSubGoal:
        changes = {
            k: v for k, v in patch.model_dump(exclude_unset=True).items()
            if v is not None or k in _NULLABLE_SUB_GOAL_FIELDS
        }
        self._validate_sub_goal(
            changes.get("progress"), changes.get("estimated_cost"), changes.get("actual_cost")
        )

        async with self._storage.transaction(lock_key("goal", goal_id)) as session:
            sub_goal = await self._require_sub_goal(session, goal_id, sub_goal_id)
            start = changes["start_date"] if "start_date" in changes else sub_goal.start_date
            end = changes["end_date"] if "end_date" in changes else sub_goal.end_date
            if start and end:
                validate_date_range(start, end)
            return await session.update(apply_changes(sub_goal, changes))

    @retry_on_conflict()
    async def delete_sub_goal(self, goal_id: UUID, sub_goal_id: UUID) -> bool:
        """Remove a step; the goal's has_sub_goals flag drops with its last child."""
        async with self._storage.transaction(lock_key("goal", goal_id)) as session:
            await self._require_sub_goal(session, goal_id, sub_goal_id)
            await session.delete(FinancialSubGoal, sub_goal_id, self.user_id)

            remaining = await session.find(FinancialSubGoal, self.user_id, financial_goal_id=goal_id)
            goal = await self._require(session, FinancialGoal, goal_id)
            if goal.has_sub_goals != bool(remaining):
                await session.update(apply_changes(goal, {"has_sub_goals": bool(remaining)}))
        return True

    async def list_sub_goals(self, goal_id: UUID) -> list[FinancialSubGoal]:
        async with self._storage.transaction() as session:
            await self._require(session, FinancialGoal, goal_id)
            return await session.find(FinancialSubGoal, self.user_id, financial_goal_id=goal_id)

    async def _require_sub_goal(
        self, session: LedgerSession, goal_id: UUID, sub_goal_id: UUID
    ) -> FinancialSubGoal:
        sub_goal = await session.get(FinancialSubGoal, sub_goal_id, self.user_id)
        if sub_goal is None or sub_goal.financial_goal_id != goal_id:
            raise NotFoundError("Financial Sub-Goal", sub_goal_id)
        return sub_goal

    @staticmethod
    def _validate_sub_goal(
        progress: Optional[int],
        estimated_cost: Optional[Decimal],
        actual_cost: Optional[Decimal],
    ) -> None:
        if progress is not None:
            validate_progress(progress)
        if estimated_cost is not None:
            validate_non_negative_amount(estimated_cost, "Estimated cost")
        if actual_cost is not None:
            validate_non_negative_amount(actual_cost, "Actual cost")

    # =========================================================================
    # CONTRIBUTIONS & DRAWDOWNS
    # =========================================================================

    @retry_on_conflict()
    async def apply_contribution(
        self,
        goal_id: UUID,
        request: MovementRequest,
        month_id: Optional[UUID] = None,
    ) -> GoalContribution:
        """
        Deposit into a goal. Contributions are unconditional: a goal may be
        funded past its target.
        """
        validate_positive_amount(request.amount, "Contribution amount")

        keys = [lock_key("goal", goal_id)]
        if month_id is not None:
            keys.append(lock_key("month", month_id))

        async with self._storage.transaction(*keys) as session:
            goal = await self._require(session, FinancialGoal, goal_id)
            if month_id is not None:
                month = await self._require(session, MonthlyOverview, month_id)
                validate_date_within_period(request.date, month.start_date, month.end_date, "Contribution")

            contribution = await session.insert(
                GoalContribution(
                    user_id=self.user_id,
                    financial_goal_id=goal.id,
                    monthly_overview_id=month_id,
                    **request.model_dump(exclude={"amount"}),
                    amount=to_money(request.amount),
                )
            )
            goal = await recompute_goal(session, goal, self._settings.currency_symbol)

        self._history.event(
            "goal_contribution_applied",
            goal_id=goal_id, amount=contribution.amount, balance=goal.current_amount,
        )
        return contribution

    @retry_on_conflict()
    async def apply_drawdown(
        self,
        goal_id: UUID,
        request: MovementRequest,
        month_id: Optional[UUID] = None,
    ) -> GoalDrawdown:
        """
        Withdraw from a goal.

        Raises:
            InsufficientFundsError: amount exceeds the current balance
        """
        validate_positive_amount(request.amount, "Drawdown amount")

        keys = [lock_key("goal", goal_id)]
        if month_id is not None:
            keys.append(lock_key("month", month_id))

        async with self._storage.transaction(*keys) as session:
            goal = await self._require(session, FinancialGoal, goal_id)
            if month_id is not None:
                month = await self._require(session, MonthlyOverview, month_id)
                validate_date_within_period(request.date, month.start_date, month.end_date, "Drawdown")

            amount = to_money(request.amount)
            goal = await recompute_goal(session, goal, self._settings.currency_symbol)
            if amount > goal.current_amount:
                raise InsufficientFundsError(
                    f"Drawdown amount exceeds available goal balance. "
                    f"Available: {self.money(goal.current_amount)}, Requested: {self.money(amount)}",
                    available=goal.current_amount,
                    requested=amount,
                )

            drawdown = await session.insert(
                GoalDrawdown(
                    user_id=self.user_id,
                    financial_goal_id=goal.id,
                    monthly_overview_id=month_id,
                    **request.model_dump(exclude={"amount"}),
                    amount=amount,
                )
            )
            goal = await recompute_goal(session, goal, self._settings.currency_symbol)

        self._history.event(
            "goal_drawdown_applied",
            goal_id=goal_id, amount=amount, balance=goal.current_amount,
        )
        return drawdown

    async def apply_transfer_out(self, session: LedgerSession, transfer: Transfer) -> FinancialGoal:
        """
        Record a transfer leaving transfer.from_goal_id.

        Runs inside the caller's transaction, which must hold the goal's
        lock. The balance check and the write happen under that lock.

        Raises:
            InsufficientFundsError: amount exceeds the current balance
        """
        validate_positive_amount(transfer.amount, "Transfer amount")
        goal = await self._require(session, FinancialGoal, transfer.from_goal_id)
        goal = await recompute_goal(session, goal, self._settings.currency_symbol)
        if transfer.amount > goal.current_amount:
            raise InsufficientFundsError(
                f"Insufficient goal balance. "
                f"Available: {self.money(goal.current_amount)}, Requested: {self.money(transfer.amount)}",
                available=goal.current_amount,
                requested=transfer.amount,
            )
        await session.insert(transfer)
        return await recompute_goal(session, goal, self._settings.currency_symbol)

    @retry_on_conflict()
    async def delete_contribution(self, goal_id: UUID, contribution_id: UUID) -> bool:
        """Remove a contribution; refused if the goal would go negative."""
        async with self._storage.transaction(lock_key("goal", goal_id)) as session:
            goal = await self._require(session, FinancialGoal, goal_id)
            contribution = await self._require(session, GoalContribution, contribution_id)
            if contribution.financial_goal_id != goal_id:
                raise ValidationError("Contribution does not belong to this goal", "financial_goal_id")
            await session.delete(GoalContribution, contribution_id, self.user_id)
            await recompute_goal(session, goal, self._settings.currency_symbol)
        return True

    @retry_on_conflict()
    async def delete_drawdown(self, goal_id: UUID, drawdown_id: UUID) -> bool:
        """Remove a drawdown, returning its amount to the goal."""
        async with self._storage.transaction(lock_key("goal", goal_id)) as session:
            goal = await self._require(session, FinancialGoal, goal_id)
            drawdown = await self._require(session, GoalDrawdown, drawdown_id)
            if drawdown.financial_goal_id != goal_id:
                raise ValidationError("Drawdown does not belong to this goal", "financial_goal_id")
            await session.delete(GoalDrawdown, drawdown_id, self.user_id)
            await recompute_goal(session, goal, self._settings.currency_symbol)
        return True

    async def list_contributions(self, goal_id: UUID) -> list[GoalContribution]:
        async with self._storage.transaction() as session:
            await self._require(session, FinancialGoal, goal_id)
            return await session.find(GoalContribution, self.user_id, financial_goal_id=goal_id)

    async def list_drawdowns(self, goal_id: UUID) -> list[GoalDrawdown]:
        async with self._storage.transaction() as session:
            await self._require(session, FinancialGoal, goal_id)
            return await session.find(GoalDrawdown, self.user_id, financial_goal_id=goal_id)
