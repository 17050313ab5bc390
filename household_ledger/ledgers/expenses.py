"""
Expense Ledger

Records money spent from a budget.

Rules enforced on every write, in order:
1. Amount is greater than zero
2. The date falls inside the owning month, both ends inclusive
3. The budget's effective allocation is not overspent

An expense linked to a goal counts toward that goal's balance, so the goal
is locked and recomputed in the same transaction.
"""

from typing import Optional
from uuid import UUID

from household_ledger.ledgers.base import (
    LedgerBase,
    apply_changes,
    recompute_goals,
    summarize_budget,
)
from household_ledger.models.ledger import (
    Budget,
    Expense,
    ExpenseCreate,
    ExpenseUpdate,
    FinancialGoal,
    MonthlyOverview,
)
from household_ledger.services.storage.interface import (
    ConcurrencyError,
    LedgerSession,
    lock_key,
    retry_on_conflict,
)
from household_ledger.validation.rules import (
    to_money,
    validate_expense_date_within_month,
    validate_no_overspending,
    validate_positive_amount,
)

_NULLABLE_EXPENSE_FIELDS = {"financial_goal_id", "frequency", "payment_method", "notes"}


class ExpenseLedger(LedgerBase):
    """Expenses for one user."""

    @retry_on_conflict()
    async def create_expense(self, data: ExpenseCreate) -> Expense:
        validate_positive_amount(data.amount, "Expense amount")
        amount = to_money(data.amount)

        keys = [lock_key("budget", data.budget_id)]
        if data.financial_goal_id is not None:
            keys.append(lock_key("goal", data.financial_goal_id))

        async with self._storage.transaction(*keys) as session:
            budget = await self._require(session, Budget, data.budget_id)
            await self._check_placement(session, budget, data.date, data.financial_goal_id)

            summary = await summarize_budget(session, budget)
            validate_no_overspending(
                summary.effective_amount,
                summary.amount_spent,
                amount,
                budget.name,
                self._settings.currency_symbol,
            )

            expense = await session.insert(
                Expense(
                    user_id=self.user_id,
                    monthly_overview_id=budget.monthly_overview_id,
                    **data.model_dump(exclude={"amount"}),
                    amount=amount,
                )
            )
            await recompute_goals(
                session, self.user_id, [expense.financial_goal_id], self._settings.currency_symbol
            )

        self._history.event(
            "expense_created",
            expense_id=expense.id, budget_id=budget.id, amount=amount,
        )
        return expense

    @retry_on_conflict()
    async def update_expense(self, expense_id: UUID, patch: ExpenseUpdate) -> Expense:
        """
        Patch an expense, possibly moving it to another budget.

        The overspend check adds the expense's previous amount back when it
        stays in the same budget.
        """
        changes = {
            k: v for k, v in patch.model_dump(exclude_unset=True).items()
            if v is not None or k in _NULLABLE_EXPENSE_FIELDS
        }
        if "amount" in patch.model_fields_set:
            validate_positive_amount(patch.amount if patch.amount is not None else 0, "Expense amount")
            changes["amount"] = to_money(patch.amount)

        async with self._storage.transaction() as session:
            current = await self._require(session, Expense, expense_id)

        target_budget_id = changes.get("budget_id", current.budget_id)
        new_goal_id = changes["financial_goal_id"] if "financial_goal_id" in changes else current.financial_goal_id
        goal_ids = {current.financial_goal_id, new_goal_id} - {None}

        keys = [lock_key("budget", current.budget_id), lock_key("budget", target_budget_id)]
        keys += [lock_key("goal", g) for g in goal_ids]
        async with self._storage.transaction(*keys) as session:
            before = await self._require(session, Expense, expense_id)
            if (before.budget_id, before.financial_goal_id) != (current.budget_id, current.financial_goal_id):
                raise ConcurrencyError("Expense was moved while being updated")

            budget = await self._require(session, Budget, target_budget_id)
            await self._check_placement(
                session, budget, changes.get("date", before.date), new_goal_id
            )

            if "amount" in changes or budget.id != before.budget_id:
                summary = await summarize_budget(session, budget)
                already_counted = before.amount if budget.id == before.budget_id else 0
                validate_no_overspending(
                    summary.effective_amount,
                    summary.amount_spent - already_counted,
                    changes.get("amount", before.amount),
                    budget.name,
                    self._settings.currency_symbol,
                )

            changes["monthly_overview_id"] = budget.monthly_overview_id
            after = await session.update(apply_changes(before, changes))
            await recompute_goals(session, self.user_id, goal_ids, self._settings.currency_symbol)

        return after

    @retry_on_conflict()
    async def delete_expense(self, expense_id: UUID) -> bool:
        """Remove an expense; refused if a linked goal would go negative."""
        async with self._storage.transaction() as session:
            current = await self._require(session, Expense, expense_id)

        keys = [lock_key("budget", current.budget_id)]
        if current.financial_goal_id is not None:
            keys.append(lock_key("goal", current.financial_goal_id))

        async with self._storage.transaction(*keys) as session:
            expense = await self._require(session, Expense, expense_id)
            if expense.financial_goal_id != current.financial_goal_id:
                raise ConcurrencyError("Expense goal link changed while deleting")
            await session.delete(Expense, expense.id, self.user_id)
            await recompute_goals(
                session, self.user_id, [expense.financial_goal_id], self._settings.currency_symbol
            )
        return True

    async def get_expense(self, expense_id: UUID) -> Expense:
        async with self._storage.transaction() as session:
            return await self._require(session, Expense, expense_id)

    async def list_expenses(
        self,
        budget_id: Optional[UUID] = None,
        month_id: Optional[UUID] = None,
    ) -> list[Expense]:
        filters = {}
        if budget_id is not None:
            filters["budget_id"] = budget_id
        if month_id is not None:
            filters["monthly_overview_id"] = month_id
        async with self._storage.transaction() as session:
            expenses = await session.find(Expense, self.user_id, **filters)
        return sorted(expenses, key=lambda e: (e.date, e.created_at))

    async def _check_placement(
        self,
        session: LedgerSession,
        budget: Budget,
        spent_on,
        goal_id: Optional[UUID],
    ) -> None:
        """Date inside the budget's month; linked goal exists."""
        month = await self._require(session, MonthlyOverview, budget.monthly_overview_id)
        validate_expense_date_within_month(spent_on, month.start_date, month.end_date, month.name)
        if goal_id is not None:
            await self._require(session, FinancialGoal, goal_id)
