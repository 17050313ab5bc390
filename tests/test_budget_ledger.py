"""Tests for BudgetLedger: master budgets, month budgets, overrides and summaries."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from household_ledger.models import (
    Budget,
    BudgetCreate,
    BudgetUpdate,
    Expense,
    ExpenseCreate,
    MasterBudgetCreate,
    MasterBudgetUpdate,
    MonthlyOverviewCreate,
    MovementRequest,
    Transfer,
)
from household_ledger.validation import NotFoundError, OverspendingError, ValidationError


async def make_master(ledger, name, amount):
    return await ledger.budgets.create_master_budget(
        MasterBudgetCreate(name=name, budget_amount=Decimal(str(amount)))
    )


async def spend(ledger, budget, amount, day=date(2026, 2, 14), **extra):
    return await ledger.expenses.create_expense(
        ExpenseCreate(budget_id=budget.id, name="Spend", amount=Decimal(str(amount)), date=day, **extra)
    )


class TestMasterBudgets:
    """Tests for master budget templates."""

    async def test_create_assigns_display_order(self, ledger):
        food = await make_master(ledger, "Food", 350)
        housing = await make_master(ledger, "Housing", 2228)
        assert food.display_order == 1
        assert housing.display_order == 2

    async def test_name_required(self, ledger):
        with pytest.raises(ValidationError) as exc_info:
            await make_master(ledger, "   ", 10)
        assert exc_info.value.message == "Budget name is required"

    async def test_negative_amount_rejected(self, ledger):
        with pytest.raises(ValidationError) as exc_info:
            await make_master(ledger, "Food", -1)
        assert exc_info.value.message == "Budget amount cannot be negative"

    async def test_zero_amount_allowed(self, ledger):
        master = await make_master(ledger, "Placeholder", 0)
        assert master.budget_amount == Decimal("0.00")

    async def test_duplicate_name_case_insensitive(self, ledger):
        await make_master(ledger, "Food", 350)
        with pytest.raises(ValidationError) as exc_info:
            await make_master(ledger, " food ", 100)
        assert exc_info.value.message == 'A master budget named "food" already exists'

    async def test_list_and_total_skip_inactive(self, ledger):
        food = await make_master(ledger, "Food", 350)
        await make_master(ledger, "Transport", 200)
        await ledger.budgets.delete_master_budget(food.id)

        active = await ledger.budgets.list_master_budgets(active_only=True)
        assert [m.name for m in active] == ["Transport"]
        assert len(await ledger.budgets.list_master_budgets()) == 2
        assert await ledger.budgets.get_master_budget_total() == Decimal("200.00")

    async def test_update_master_does_not_touch_months(self, ledger, month):
        master = await make_master(ledger, "Food", 350)
        result = await ledger.budgets.add_master_budgets_to_month(month.id, [master.id])

        await ledger.budgets.update_master_budget(master.id, MasterBudgetUpdate(budget_amount=Decimal("400")))
        budget = await ledger.budgets.get_budget(result.created_ids[0])
        assert budget.budget_amount == Decimal("350.00")

    async def test_hard_delete_removes_template(self, ledger):
        master = await make_master(ledger, "Food", 350)
        await ledger.budgets.delete_master_budget(master.id, hard_delete=True)
        with pytest.raises(NotFoundError) as exc_info:
            await ledger.budgets.get_master_budget(master.id)
        assert exc_info.value.resource == "Master Budget"


class TestPropagation:
    """Tests for copying master budgets into a month."""

    async def test_copy_creates_linked_budgets(self, ledger, month):
        food = await make_master(ledger, "Food", 350)
        housing = await make_master(ledger, "Housing", 2228)

        result = await ledger.budgets.add_master_budgets_to_month(month.id, [food.id, housing.id])
        assert result.created == 2
        assert result.skipped == 0

        budgets = await ledger.budgets.list_budgets(month.id)
        assert {(b.name, b.budget_amount, b.master_budget_id) for b in budgets} == {
            ("Food", Decimal("350.00"), food.id),
            ("Housing", Decimal("2228.00"), housing.id),
        }

    async def test_second_copy_is_skipped(self, ledger, month):
        food = await make_master(ledger, "Food", 350)
        await ledger.budgets.add_master_budgets_to_month(month.id, [food.id])
        result = await ledger.budgets.add_master_budgets_to_month(month.id, [food.id])
        assert result.created == 0
        assert result.skipped == 1
        assert len(await ledger.budgets.list_budgets(month.id)) == 1

    async def test_existing_name_is_skipped(self, ledger, month, food_budget):
        master = await make_master(ledger, "FOOD", 350)
        result = await ledger.budgets.add_master_budgets_to_month(month.id, [master.id])
        assert result.skipped == 1
        assert (await ledger.budgets.get_budget(food_budget.id)).master_budget_id is None

    async def test_missing_master_is_reported(self, ledger, month):
        food = await make_master(ledger, "Food", 350)
        missing = uuid4()
        result = await ledger.budgets.add_master_budgets_to_month(month.id, [missing, food.id])
        assert result.created == 1
        assert len(result.errors) == 1
        assert result.errors[0].name == str(missing)

    async def test_create_month_with_masters(self, ledger):
        food = await make_master(ledger, "Food", 350)
        month, copied = await ledger.months.create_month(
            MonthlyOverviewCreate(name="March 2026", start_date=date(2026, 3, 1), end_date=date(2026, 3, 31)),
            master_budget_ids=[food.id],
        )
        assert copied.created == 1
        assert [b.name for b in await ledger.budgets.list_budgets(month.id)] == ["Food"]


class TestMonthBudgets:
    """Tests for month budget creation, overrides and deletion."""

    async def test_duplicate_name_in_month(self, ledger, month, food_budget):
        with pytest.raises(ValidationError) as exc_info:
            await ledger.budgets.create_budget(
                BudgetCreate(monthly_overview_id=month.id, name="food", budget_amount=Decimal("1"))
            )
        assert exc_info.value.message.startswith('A budget category named "food" already exists')

    async def test_same_name_in_other_month(self, ledger, food_budget):
        march, _ = await ledger.months.create_month(
            MonthlyOverviewCreate(name="March 2026", start_date=date(2026, 3, 1), end_date=date(2026, 3, 31))
        )
        budget = await ledger.budgets.create_budget(
            BudgetCreate(monthly_overview_id=march.id, name="Food", budget_amount=Decimal("500"))
        )
        assert budget.monthly_overview_id == march.id

    async def test_unknown_month(self, ledger):
        with pytest.raises(NotFoundError) as exc_info:
            await ledger.budgets.create_budget(
                BudgetCreate(monthly_overview_id=uuid4(), name="Food", budget_amount=Decimal("1"))
            )
        assert exc_info.value.resource == "Monthly Overview"

    async def test_override_requires_reason(self, ledger, month):
        master = await make_master(ledger, "Food", 350)
        result = await ledger.budgets.add_master_budgets_to_month(month.id, [master.id])
        budget_id = result.created_ids[0]

        with pytest.raises(ValidationError) as exc_info:
            await ledger.budgets.update_budget(budget_id, BudgetUpdate(budget_amount=Decimal("400")))
        assert exc_info.value.field == "override_reason"
        assert (await ledger.budgets.get_budget(budget_id)).budget_amount == Decimal("350.00")

    async def test_override_recorded_then_cleared(self, ledger, month):
        master = await make_master(ledger, "Food", 350)
        result = await ledger.budgets.add_master_budgets_to_month(month.id, [master.id])
        budget_id = result.created_ids[0]

        updated = await ledger.budgets.update_budget(
            budget_id, BudgetUpdate(budget_amount=Decimal("400"), override_reason="Guests visiting")
        )
        assert updated.override_amount == Decimal("400.00")
        assert updated.override_reason == "Guests visiting"

        reverted = await ledger.budgets.update_budget(budget_id, BudgetUpdate(budget_amount=Decimal("350")))
        assert reverted.override_amount is None
        assert reverted.override_reason is None

    async def test_create_linked_budget_requires_reason_off_template(self, ledger, month):
        master = await make_master(ledger, "Food", 350)
        with pytest.raises(ValidationError) as exc_info:
            await ledger.budgets.create_budget(
                BudgetCreate(
                    monthly_overview_id=month.id, name="Food",
                    budget_amount=Decimal("400"), master_budget_id=master.id,
                )
            )
        assert exc_info.value.field == "override_reason"
        assert await ledger.budgets.list_budgets(month.id) == []

    async def test_create_linked_budget_records_override(self, ledger, month):
        master = await make_master(ledger, "Food", 350)
        budget = await ledger.budgets.create_budget(
            BudgetCreate(
                monthly_overview_id=month.id, name="Food", budget_amount=Decimal("400"),
                master_budget_id=master.id, override_reason="Guests visiting",
            )
        )
        assert budget.override_amount == Decimal("400.00")
        assert budget.override_reason == "Guests visiting"
        assert (await ledger.budgets.get_deviation(budget.id)).is_override is True

    async def test_create_linked_budget_within_tolerance(self, ledger, month):
        master = await make_master(ledger, "Food", 350)
        budget = await ledger.budgets.create_budget(
            BudgetCreate(
                monthly_overview_id=month.id, name="Food", budget_amount=Decimal("350.01"),
                master_budget_id=master.id, override_reason="Rounding",
            )
        )
        assert budget.override_amount is None
        assert budget.override_reason is None

    async def test_unlinked_budget_needs_no_reason(self, ledger, food_budget):
        updated = await ledger.budgets.update_budget(food_budget.id, BudgetUpdate(budget_amount=Decimal("900")))
        assert updated.budget_amount == Decimal("900.00")
        assert updated.override_amount is None

    async def test_deviation(self, ledger, month):
        master = await make_master(ledger, "Food", 350)
        result = await ledger.budgets.add_master_budgets_to_month(month.id, [master.id])
        budget_id = result.created_ids[0]
        await ledger.budgets.update_budget(
            budget_id, BudgetUpdate(budget_amount=Decimal("400"), override_reason="Guests")
        )

        deviation = await ledger.budgets.get_deviation(budget_id)
        assert deviation.deviation == Decimal("50.00")
        assert round(deviation.deviation_percent, 2) == Decimal("14.29")
        assert deviation.is_override is True

    async def test_deviation_without_master(self, ledger, food_budget):
        assert await ledger.budgets.get_deviation(food_budget.id) is None

    async def test_deviation_with_deleted_master(self, ledger, month):
        master = await make_master(ledger, "Food", 350)
        result = await ledger.budgets.add_master_budgets_to_month(month.id, [master.id])
        await ledger.budgets.delete_master_budget(master.id, hard_delete=True)

        budget = await ledger.budgets.get_budget(result.created_ids[0])
        assert budget.master_budget_id == master.id
        assert await ledger.budgets.get_deviation(budget.id) is None

    async def test_delete_removes_expenses_and_transfers(self, ledger, storage, month, food_budget, fun_budget, goal):
        await spend(ledger, food_budget, 40)
        await ledger.transfers.create_budget_to_budget(
            month.id, food_budget.id, fun_budget.id, MovementRequest(amount=Decimal("10"), date=date(2026, 2, 3))
        )
        await ledger.transfers.create_goal_to_budget(
            month.id, goal.id, food_budget.id, MovementRequest(amount=Decimal("200"), date=date(2026, 2, 3))
        )
        assert (await ledger.goals.get_goal(goal.id)).current_amount == Decimal("800.00")

        assert await ledger.budgets.delete_budget(food_budget.id) is True
        assert storage.row_count(Budget) == 1
        assert storage.row_count(Expense) == 0
        assert storage.row_count(Transfer) == 0
        assert (await ledger.goals.get_goal(goal.id)).current_amount == Decimal("1000.00")
        assert (await ledger.budgets.get_summary(fun_budget.id)).effective_amount == Decimal("100.00")

    async def test_delete_refused_when_receiver_spent_the_transfer(
        self, ledger, storage, month, food_budget, fun_budget
    ):
        """Test that deleting a source budget cannot leave the budget it funded overspent."""
        await ledger.transfers.create_budget_to_budget(
            month.id, food_budget.id, fun_budget.id, MovementRequest(amount=Decimal("50"), date=date(2026, 2, 3))
        )
        await spend(ledger, fun_budget, 150)

        with pytest.raises(OverspendingError) as exc_info:
            await ledger.budgets.delete_budget(food_budget.id)
        assert exc_info.value.budget_name == "Fun"
        assert exc_info.value.overage == Decimal("50.00")

        assert storage.row_count(Budget) == 2
        assert storage.row_count(Transfer) == 1
        assert (await ledger.budgets.get_summary(fun_budget.id)).amount_left == Decimal("0.00")

    async def test_delete_allowed_when_receiver_can_absorb(self, ledger, month, food_budget, fun_budget):
        await ledger.transfers.create_budget_to_budget(
            month.id, food_budget.id, fun_budget.id, MovementRequest(amount=Decimal("50"), date=date(2026, 2, 3))
        )
        await spend(ledger, fun_budget, 100)

        assert await ledger.budgets.delete_budget(food_budget.id) is True
        fun = await ledger.budgets.get_summary(fun_budget.id)
        assert fun.effective_amount == Decimal("100.00")
        assert fun.amount_left == Decimal("0.00")

    async def test_delete_receiver_returns_allocation_to_source(self, ledger, month, food_budget, fun_budget):
        await ledger.transfers.create_budget_to_budget(
            month.id, food_budget.id, fun_budget.id, MovementRequest(amount=Decimal("50"), date=date(2026, 2, 3))
        )
        await spend(ledger, fun_budget, 150)

        assert await ledger.budgets.delete_budget(fun_budget.id) is True
        assert (await ledger.budgets.get_summary(food_budget.id)).effective_amount == Decimal("500.00")


class TestSummaries:
    """Tests for spent/remaining views."""

    async def test_summary_counts_transfers(self, ledger, month, food_budget, fun_budget):
        await ledger.transfers.create_budget_to_budget(
            month.id, food_budget.id, fun_budget.id, MovementRequest(amount=Decimal("50"), date=date(2026, 2, 1))
        )
        await spend(ledger, fun_budget, 120)

        fun = await ledger.budgets.get_summary(fun_budget.id)
        assert fun.effective_amount == Decimal("150.00")
        assert fun.amount_left == Decimal("30.00")
        assert fun.percent_used == Decimal("80")

        food = await ledger.budgets.get_summary(food_budget.id)
        assert food.effective_amount == Decimal("450.00")
        assert food.budget_amount == Decimal("500.00")

    async def test_list_summaries_covers_month(self, ledger, month, food_budget, fun_budget):
        await spend(ledger, food_budget, 20)
        summaries = {s.name: s for s in await ledger.budgets.list_summaries(month.id)}
        assert set(summaries) == {"Food", "Fun"}
        assert summaries["Food"].amount_spent == Decimal("20.00")
        assert summaries["Fun"].amount_left == Decimal("100.00")

    async def test_utilization(self, ledger, month, food_budget, fun_budget):
        await spend(ledger, food_budget, 300)
        utilization = await ledger.budgets.get_utilization_summary(month.id)
        assert utilization.total_budgeted == Decimal("600.00")
        assert utilization.total_spent == Decimal("300.00")
        assert utilization.total_left == Decimal("300.00")
        assert utilization.percent_used == Decimal("50")

    async def test_overspent_after_allocation_cut(self, ledger, month, food_budget, fun_budget):
        """Lowering an allocation below what was spent is allowed and shows as overspent."""
        await spend(ledger, fun_budget, 90)
        await ledger.budgets.update_budget(fun_budget.id, BudgetUpdate(budget_amount=Decimal("60")))

        overspent = await ledger.budgets.get_overspent_budgets(month.id)
        assert [s.name for s in overspent] == ["Fun"]
        assert overspent[0].amount_left == Decimal("-30.00")

    async def test_empty_month(self, ledger, month):
        utilization = await ledger.budgets.get_utilization_summary(month.id)
        assert utilization.total_budgeted == Decimal("0")
        assert utilization.percent_used == Decimal("0")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
