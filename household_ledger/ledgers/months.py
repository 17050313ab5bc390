"""
Month Ledger

A monthly overview is the period every budget, expense, income source and
transfer belongs to. Deleting one cascades to all of them; the budget
history survives the cascade.
"""

from typing import Optional
from uuid import UUID

from household_ledger.audit import HistoryLogger
from household_ledger.config import LedgerSettings
from household_ledger.ledgers.base import (
    LedgerBase,
    apply_changes,
    linked_goal_ids,
    recompute_goals,
)
from household_ledger.ledgers.budget import BudgetLedger
from household_ledger.models.ledger import (
    BatchResult,
    Budget,
    Expense,
    GoalContribution,
    GoalDrawdown,
    IncomeSource,
    IncomeSourceCreate,
    MonthlyOverview,
    MonthlyOverviewCreate,
    MonthlyOverviewSummary,
    MonthlyOverviewUpdate,
    Transfer,
)
from household_ledger.services.storage.interface import (
    ConcurrencyError,
    LedgerSession,
    LedgerStorageInterface,
    lock_key,
    retry_on_conflict,
)
from household_ledger.validation.errors import ValidationError
from household_ledger.validation.rules import (
    calculate_monthly_overview_summary,
    to_money,
    validate_date_range,
    validate_date_within_period,
    validate_positive_amount,
    validate_required_text,
)


class MonthLedger(LedgerBase):
    """Monthly overviews and their income for one user."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        user_id: Optional[UUID],
        history_logger: Optional[HistoryLogger] = None,
        settings: Optional[LedgerSettings] = None,
        budget_ledger: Optional[BudgetLedger] = None,
    ):
        super().__init__(storage, user_id, history_logger, settings)
        self._budgets = budget_ledger or BudgetLedger(
            self._storage, self._user_id, self._history, self._settings
        )

    @retry_on_conflict()
    async def create_month(
        self,
        data: MonthlyOverviewCreate,
        master_budget_ids: Optional[list[UUID]] = None,
    ) -> tuple[MonthlyOverview, Optional[BatchResult]]:
        """
        Create a month, optionally seeding it from master budgets.

        Returns the month and, when templates were requested, the copy
        result. Both happen in one transaction.
        """
        validate_required_text(data.name, "Month name")
        validate_date_range(data.start_date, data.end_date)

        month = MonthlyOverview(user_id=self.user_id, **data.model_dump())
        async with self._storage.transaction(lock_key("month", month.id)) as session:
            month = await session.insert(month)
            copied = None
            if master_budget_ids:
                copied = await self._budgets.copy_masters_into_month(session, month, master_budget_ids)

        self._history.event("month_created", monthly_overview_id=month.id, month_name=month.name)
        return month, copied

    @retry_on_conflict()
    async def update_month(self, month_id: UUID, patch: MonthlyOverviewUpdate) -> MonthlyOverview:
        """
        Patch a month. Narrowing the dates is refused while anything already
        recorded in the month would fall outside them.
        """
        changes = {
            k: v for k, v in patch.model_dump(exclude_unset=True).items()
            if v is not None or k == "notes"
        }
        if "name" in patch.model_fields_set:
            validate_required_text(patch.name, "Month name")

        async with self._storage.transaction(lock_key("month", month_id)) as session:
            before = await self._require(session, MonthlyOverview, month_id)
            start = changes.get("start_date", before.start_date)
            end = changes.get("end_date", before.end_date)
            validate_date_range(start, end)

            if "start_date" in changes or "end_date" in changes:
                await self._check_dates_still_cover(session, month_id, start, end)

            return await session.update(apply_changes(before, changes))

    @retry_on_conflict()
    async def delete_month(self, month_id: UUID) -> bool:
        """
        Delete a month with its budgets, expenses, income and transfers.

        Each deleted budget gets a "deleted" history entry. Goals funded by
        the month's expenses or transfers are recomputed, and the delete is
        refused if one would go negative.
        """
        async with self._storage.transaction() as session:
            await self._require(session, MonthlyOverview, month_id)
            budget_ids, goal_ids = await self._month_scope(session, month_id)

        keys = [lock_key("month", month_id)]
        keys += [lock_key("budget", b) for b in budget_ids]
        keys += [lock_key("goal", g) for g in goal_ids]
        async with self._storage.transaction(*keys) as session:
            month = await self._require(session, MonthlyOverview, month_id)
            locked_budgets, locked_goals = await self._month_scope(session, month_id)
            if not (locked_budgets <= budget_ids and locked_goals <= goal_ids):
                raise ConcurrencyError("Month contents changed while deleting")

            for budget in await session.find(Budget, self.user_id, monthly_overview_id=month.id):
                await self._budgets.remove_budget(session, budget)
            for kind in (Transfer, IncomeSource, Expense):
                for row in await session.find(kind, self.user_id, monthly_overview_id=month.id):
                    await session.delete(kind, row.id, self.user_id)
            for kind in (GoalContribution, GoalDrawdown):
                for row in await session.find(kind, self.user_id, monthly_overview_id=month.id):
                    await session.update(apply_changes(row, {"monthly_overview_id": None}))
            await session.delete(MonthlyOverview, month.id, self.user_id)

            await recompute_goals(session, self.user_id, goal_ids, self._settings.currency_symbol)

        self._history.event("month_deleted", monthly_overview_id=month_id, budgets=len(budget_ids))
        return True

    async def get_month(self, month_id: UUID) -> MonthlyOverview:
        async with self._storage.transaction() as session:
            return await self._require(session, MonthlyOverview, month_id)

    async def list_months(self) -> list[MonthlyOverview]:
        """Months, most recent first."""
        async with self._storage.transaction() as session:
            months = await session.find(MonthlyOverview, self.user_id)
        return sorted(months, key=lambda m: m.start_date, reverse=True)

    # =========================================================================
    # INCOME
    # =========================================================================

    @retry_on_conflict()
    async def add_income(self, month_id: UUID, data: IncomeSourceCreate) -> IncomeSource:
        validate_required_text(data.name, "Income name")
        validate_positive_amount(data.amount, "Income amount")

        async with self._storage.transaction(lock_key("month", month_id)) as session:
            month = await self._require(session, MonthlyOverview, month_id)
            validate_date_within_period(data.date, month.start_date, month.end_date, "Income")
            return await session.insert(
                IncomeSource(
                    user_id=self.user_id,
                    monthly_overview_id=month.id,
                    **data.model_dump(exclude={"amount"}),
                    amount=to_money(data.amount),
                )
            )

    @retry_on_conflict()
    async def delete_income(self, income_id: UUID) -> bool:
        async with self._storage.transaction() as session:
            income = await self._require(session, IncomeSource, income_id, "Income Source")
        async with self._storage.transaction(lock_key("month", income.monthly_overview_id)) as session:
            return await session.delete(IncomeSource, income_id, self.user_id)

    async def list_income(self, month_id: UUID) -> list[IncomeSource]:
        async with self._storage.transaction() as session:
            await self._require(session, MonthlyOverview, month_id)
            return await session.find(IncomeSource, self.user_id, monthly_overview_id=month_id)

    async def get_summary(self, month_id: UUID) -> MonthlyOverviewSummary:
        """Income against allocated budget amounts."""
        async with self._storage.transaction() as session:
            await self._require(session, MonthlyOverview, month_id)
            incomes = await session.find(IncomeSource, self.user_id, monthly_overview_id=month_id)
            budgets = await session.find(Budget, self.user_id, monthly_overview_id=month_id)

        summary = calculate_monthly_overview_summary(
            (i.amount for i in incomes),
            (b.budget_amount for b in budgets),
        )
        return summary.model_copy(update={"monthly_overview_id": month_id})

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _month_scope(self, session: LedgerSession, month_id: UUID) -> tuple[set[UUID], set[UUID]]:
        """Budget IDs in the month and the goals its rows feed."""
        budgets = await session.find(Budget, self.user_id, monthly_overview_id=month_id)
        rows = await session.find(Expense, self.user_id, monthly_overview_id=month_id)
        rows += await session.find(Transfer, self.user_id, monthly_overview_id=month_id)
        for budget in budgets:
            rows += await session.find(Transfer, self.user_id, to_budget_id=budget.id)
        return {b.id for b in budgets}, linked_goal_ids(rows)

    async def _check_dates_still_cover(self, session: LedgerSession, month_id: UUID, start, end) -> None:
        dated = await session.find(Expense, self.user_id, monthly_overview_id=month_id)
        dated += await session.find(IncomeSource, self.user_id, monthly_overview_id=month_id)
        outside = [row for row in dated if row.date < start or row.date > end]
        if outside:
            raise ValidationError(
                f"{len(outside)} expense(s) or income source(s) fall outside the new date range",
                "start_date",
            )
