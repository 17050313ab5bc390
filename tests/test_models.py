"""
Tests for Household Ledger models

Test strategy:
1. Unit tests for individual components (models, rules, normalizer)
2. Ledger tests over the in-memory storage backend
3. No real database in tests
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from household_ledger.models import (
    DEFAULT_BUDGET_CATEGORIES,
    DEFAULT_TOTAL_BUDGET,
    Budget,
    BudgetSummary,
    BudgetType,
    Frequency,
    HistoryAction,
    HistoryEntryBuilder,
    MasterBudget,
    MasterBudgetCreate,
    SubscriptionStatus,
    TransferType,
)


class TestRowModels:
    """Tests for stored row models."""

    def test_master_budget_defaults(self):
        """Test MasterBudget defaults."""
        master = MasterBudget(user_id=uuid4(), name="Food", budget_amount=Decimal("350"))
        assert master.budget_type == BudgetType.FIXED
        assert master.is_active is True
        assert master.id is not None

    def test_strips_whitespace(self):
        """Test that whitespace is stripped from names."""
        master = MasterBudget(user_id=uuid4(), name="  Housing  ", budget_amount=Decimal("2228"))
        assert master.name == "Housing"

    def test_input_models_reject_unknown_fields(self):
        """Test that input models forbid extra fields."""
        with pytest.raises(ValueError):
            MasterBudgetCreate(name="Food", budget_amount=Decimal("1"), colour="red")

    def test_budget_summary_overspent(self):
        """Test BudgetSummary.is_overspent."""
        summary = BudgetSummary(
            budget_id=uuid4(),
            monthly_overview_id=uuid4(),
            name="Food",
            budget_amount=Decimal("100"),
            transfers_in=Decimal("0"),
            transfers_out=Decimal("0"),
            effective_amount=Decimal("100"),
            amount_spent=Decimal("120"),
            amount_left=Decimal("-20"),
            percent_used=Decimal("120"),
        )
        assert summary.is_overspent


class TestEnums:
    """Tests for closed enumerations."""

    def test_frequency_values(self):
        assert [f.value for f in Frequency] == [
            "Weekly", "Bi-Weekly", "Monthly", "Quarterly", "Bi-Annually", "Annually", "One-Time",
        ]

    def test_subscription_status_values(self):
        assert {s.value for s in SubscriptionStatus} == {"Active", "Paused", "Cancelled", "Ended"}

    def test_transfer_types(self):
        assert TransferType("goal_drawdown") is TransferType.GOAL_DRAWDOWN


class TestHistoryModels:
    """Tests for history entries."""

    def _budget(self, **overrides):
        data = dict(
            user_id=uuid4(),
            monthly_overview_id=uuid4(),
            name="Food",
            budget_amount=Decimal("350.00"),
        )
        data.update(overrides)
        return Budget(**data)

    def test_created_entry_has_no_old_data(self):
        """Test budget_created snapshot."""
        budget = self._budget()
        entry = HistoryEntryBuilder.budget_created(budget)
        assert entry.action == HistoryAction.CREATED
        assert entry.old_data is None
        assert entry.new_data["name"] == "Food"
        assert entry.new_data["budget_amount"] == "350.00"

    def test_updated_entry_lists_changed_fields(self):
        """Test changed_fields ignores updated_at."""
        before = self._budget()
        after = before.model_copy(update={"budget_amount": Decimal("400.00"), "name": "Groceries"})
        entry = HistoryEntryBuilder.budget_updated(before, after)
        assert entry.changed_fields() == ["budget_amount", "name"]

    def test_deleted_entry_keeps_references(self):
        """Test budget_deleted keeps the month reference."""
        budget = self._budget()
        entry = HistoryEntryBuilder.budget_deleted(budget)
        assert entry.new_data is None
        assert entry.monthly_overview_id == budget.monthly_overview_id
        assert entry.to_log_dict()["budget_id"] == str(budget.id)


class TestSeedCategories:
    """Tests for the default budget categories."""

    def test_thirteen_categories(self):
        assert len(DEFAULT_BUDGET_CATEGORIES) == 13

    def test_total_is_4588(self):
        assert DEFAULT_TOTAL_BUDGET == Decimal("4588")

    def test_category_names(self):
        assert [c.name for c in DEFAULT_BUDGET_CATEGORIES] == [
            "Tithe", "Offering", "Housing", "Food", "Transport", "Personal Care",
            "Household", "Savings", "Investments", "Subscriptions", "Health",
            "Travel", "Miscellaneous",
        ]

    def test_categories_are_frozen(self):
        with pytest.raises(ValueError):
            DEFAULT_BUDGET_CATEGORIES[0].amount = Decimal("1")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
