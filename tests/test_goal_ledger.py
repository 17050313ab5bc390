"""Tests for GoalLedger."""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from household_ledger.ledgers import GoalLedger
from household_ledger.models import (
    ExpenseCreate,
    GoalCreate,
    GoalUpdate,
    MovementRequest,
    SubGoalCreate,
    SubGoalUpdate,
)
from household_ledger.validation import (
    InsufficientFundsError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)


def movement(amount, day=date(2026, 2, 10)):
    return MovementRequest(amount=Decimal(str(amount)), date=day)


class TestCreateGoal:
    """Tests for goal creation and updates."""

    async def test_create_sets_base_from_current(self, ledger, goal):
        assert goal.base_amount == Decimal("1000.00")
        assert goal.current_amount == Decimal("1000.00")

    async def test_target_must_be_positive(self, ledger):
        with pytest.raises(ValidationError) as exc_info:
            await ledger.goals.create_goal(
                GoalCreate(name="Car", target_amount=Decimal("0"), start_date=date(2026, 1, 1))
            )
        assert exc_info.value.message == "Target amount must be greater than zero"

    async def test_end_before_start_rejected(self, ledger):
        with pytest.raises(ValidationError) as exc_info:
            await ledger.goals.create_goal(
                GoalCreate(
                    name="Car",
                    target_amount=Decimal("100"),
                    start_date=date(2026, 5, 1),
                    end_date=date(2026, 4, 1),
                )
            )
        assert exc_info.value.message == "End Date must be after Start Date"

    async def test_update_validates_against_stored_start(self, ledger, goal):
        """Test that only end_date is patched and checked against stored start_date."""
        with pytest.raises(ValidationError):
            await ledger.goals.update_goal(goal.id, GoalUpdate(end_date=date(2025, 12, 31)))

        updated = await ledger.goals.update_goal(goal.id, GoalUpdate(end_date=date(2026, 12, 31)))
        assert updated.end_date == date(2026, 12, 31)

    async def test_update_target_must_stay_positive(self, ledger, goal):
        with pytest.raises(ValidationError):
            await ledger.goals.update_goal(goal.id, GoalUpdate(target_amount=Decimal("-1")))

    async def test_update_current_amount_rewrites_base(self, ledger, goal):
        """Test that an edited balance survives existing ledger rows."""
        await ledger.goals.apply_contribution(goal.id, movement(200))
        updated = await ledger.goals.update_goal(goal.id, GoalUpdate(current_amount=Decimal("750")))
        assert updated.current_amount == Decimal("750.00")
        assert updated.base_amount == Decimal("550.00")

        recalculated = await ledger.goals.recalculate(goal.id)
        assert recalculated.current_amount == Decimal("750.00")

    async def test_unknown_goal_not_found(self, ledger):
        missing = uuid4()
        with pytest.raises(NotFoundError) as exc_info:
            await ledger.goals.get_goal(missing)
        assert exc_info.value.message == f'Financial Goal with ID "{missing}" not found.'

    async def test_other_users_goal_is_not_found(self, storage, settings, goal):
        stranger = GoalLedger(storage, uuid4(), settings=settings)
        with pytest.raises(NotFoundError):
            await stranger.get_goal(goal.id)

    async def test_no_user_is_unauthorized(self, storage, settings):
        anonymous = GoalLedger(storage, None, settings=settings)
        with pytest.raises(UnauthorizedError) as exc_info:
            await anonymous.list_goals()
        assert exc_info.value.message == "You must be logged in to perform this action."

    async def test_progress_is_clamped(self, ledger, goal):
        progress = await ledger.goals.get_progress(goal.id)
        assert progress.progress_percent == Decimal("20")
        assert progress.remaining_amount == Decimal("4000.00")

        await ledger.goals.apply_contribution(goal.id, movement(6000))
        progress = await ledger.goals.get_progress(goal.id)
        assert progress.progress_percent == Decimal("100")
        assert progress.remaining_amount == Decimal("0")


class TestContributionsAndDrawdowns:
    """Tests for the goal balance projection."""

    async def test_contribution_increases_balance(self, ledger, goal):
        await ledger.goals.apply_contribution(goal.id, movement("250.50"))
        refreshed = await ledger.goals.get_goal(goal.id)
        assert refreshed.current_amount == Decimal("1250.50")
        assert refreshed.base_amount == Decimal("1000.00")

    async def test_contribution_must_be_positive(self, ledger, goal):
        with pytest.raises(ValidationError) as exc_info:
            await ledger.goals.apply_contribution(goal.id, movement(0))
        assert exc_info.value.message == "Contribution amount must be greater than zero"

    async def test_contribution_date_inside_month(self, ledger, goal, month):
        with pytest.raises(ValidationError) as exc_info:
            await ledger.goals.apply_contribution(goal.id, movement(10, date(2026, 3, 1)), month_id=month.id)
        assert exc_info.value.message == "Contribution date must be between 2026-02-01 and 2026-02-28"

    async def test_drawdown_decreases_balance(self, ledger, goal):
        await ledger.goals.apply_drawdown(goal.id, movement(400))
        refreshed = await ledger.goals.get_goal(goal.id)
        assert refreshed.current_amount == Decimal("600.00")

    async def test_drawdown_of_entire_balance_allowed(self, ledger, goal):
        await ledger.goals.apply_drawdown(goal.id, movement(1000))
        assert (await ledger.goals.get_goal(goal.id)).current_amount == Decimal("0.00")

    async def test_drawdown_over_balance_rejected_without_writes(self, ledger, goal):
        with pytest.raises(InsufficientFundsError) as exc_info:
            await ledger.goals.apply_drawdown(goal.id, movement("1000.01"))
        assert "€1000.00" in exc_info.value.message
        assert exc_info.value.available == Decimal("1000.00")
        assert await ledger.goals.list_drawdowns(goal.id) == []
        assert (await ledger.goals.get_goal(goal.id)).current_amount == Decimal("1000.00")

    async def test_insufficient_funds_is_a_validation_error(self, ledger, goal):
        with pytest.raises(ValidationError):
            await ledger.goals.apply_drawdown(goal.id, movement(5000))

    async def test_concurrent_drawdowns_never_go_negative(self, ledger, goal):
        """Test two drawdowns racing for the same balance."""
        results = await asyncio.gather(
            ledger.goals.apply_drawdown(goal.id, movement(700)),
            ledger.goals.apply_drawdown(goal.id, movement(700)),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], InsufficientFundsError)
        assert (await ledger.goals.get_goal(goal.id)).current_amount == Decimal("300.00")

    async def test_linked_expense_counts_toward_goal(self, ledger, goal, month, food_budget):
        await ledger.expenses.create_expense(
            ExpenseCreate(
                budget_id=food_budget.id,
                name="Savings deposit",
                amount=Decimal("50"),
                date=date(2026, 2, 5),
                financial_goal_id=goal.id,
            )
        )
        assert (await ledger.goals.get_goal(goal.id)).current_amount == Decimal("1050.00")

    async def test_deleting_drawdown_restores_balance(self, ledger, goal):
        drawdown = await ledger.goals.apply_drawdown(goal.id, movement(100))
        await ledger.goals.delete_drawdown(goal.id, drawdown.id)
        assert (await ledger.goals.get_goal(goal.id)).current_amount == Decimal("1000.00")

    async def test_deleting_contribution_cannot_make_balance_negative(self, ledger):
        empty = await ledger.goals.create_goal(
            GoalCreate(name="Holiday", target_amount=Decimal("800"), start_date=date(2026, 1, 1))
        )
        contribution = await ledger.goals.apply_contribution(empty.id, movement(300))
        await ledger.goals.apply_drawdown(empty.id, movement(200))

        with pytest.raises(ValidationError):
            await ledger.goals.delete_contribution(empty.id, contribution.id)
        assert len(await ledger.goals.list_contributions(empty.id)) == 1
        assert (await ledger.goals.get_goal(empty.id)).current_amount == Decimal("100.00")


class TestSubGoals:
    """Tests for sub-goals."""

    async def test_create_toggles_has_sub_goals(self, ledger, goal):
        sub_goal = await ledger.goals.create_sub_goal(goal.id, SubGoalCreate(name="Open account", progress=10))
        assert (await ledger.goals.get_goal(goal.id)).has_sub_goals is True

        await ledger.goals.delete_sub_goal(goal.id, sub_goal.id)
        assert (await ledger.goals.get_goal(goal.id)).has_sub_goals is False

    async def test_progress_bounds(self, ledger, goal):
        with pytest.raises(ValidationError) as exc_info:
            await ledger.goals.create_sub_goal(goal.id, SubGoalCreate(name="Step", progress=101))
        assert exc_info.value.message == "Progress must be between 0 and 100"

    async def test_single_date_allowed(self, ledger, goal):
        sub_goal = await ledger.goals.create_sub_goal(
            goal.id, SubGoalCreate(name="Step", end_date=date(2020, 1, 1))
        )
        assert sub_goal.start_date is None

    async def test_date_range_checked_when_both_present(self, ledger, goal):
        sub_goal = await ledger.goals.create_sub_goal(
            goal.id, SubGoalCreate(name="Step", start_date=date(2026, 3, 1))
        )
        with pytest.raises(ValidationError):
            await ledger.goals.update_sub_goal(goal.id, sub_goal.id, SubGoalUpdate(end_date=date(2026, 2, 1)))

    async def test_update_progress(self, ledger, goal):
        sub_goal = await ledger.goals.create_sub_goal(goal.id, SubGoalCreate(name="Step"))
        updated = await ledger.goals.update_sub_goal(goal.id, sub_goal.id, SubGoalUpdate(progress=60))
        assert updated.progress == 60


class TestDeleteGoal:
    """Tests for goal deletion."""

    async def test_delete_removes_ledger_and_unlinks_expenses(self, ledger, goal, month, food_budget):
        expense = await ledger.expenses.create_expense(
            ExpenseCreate(
                budget_id=food_budget.id,
                name="Deposit",
                amount=Decimal("20"),
                date=date(2026, 2, 2),
                financial_goal_id=goal.id,
            )
        )
        await ledger.goals.apply_contribution(goal.id, movement(10))

        assert await ledger.goals.delete_goal(goal.id) is True
        with pytest.raises(NotFoundError):
            await ledger.goals.get_goal(goal.id)
        assert (await ledger.expenses.get_expense(expense.id)).financial_goal_id is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
