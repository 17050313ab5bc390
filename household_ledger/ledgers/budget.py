"""
Budget Ledger

Maintains master budget templates, each month's budget categories, the
override tracking between them, and the append-only history of every
change to either.

DESIGN DECISION: Master budgets are copied into months, never referenced
live. Editing or deleting a template never reaches a month that already
copied it; a month budget keeps its master_budget_id only to report how far
it deviates from the template.

Every mutation appends a history entry inside the same transaction as the
change, so a change without history can never commit.
"""

from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from household_ledger.ledgers.base import (
    LedgerBase,
    ZERO,
    apply_changes,
    linked_goal_ids,
    percent_of,
    recompute_goals,
    summarize_budget,
)
from household_ledger.models.history import (
    BudgetHistoryEntry,
    HistoryEntryBuilder,
    MasterBudgetHistoryEntry,
)
from household_ledger.models.ledger import (
    BatchItemError,
    BatchResult,
    Budget,
    BudgetCreate,
    BudgetDeviation,
    BudgetSummary,
    BudgetUpdate,
    Expense,
    MasterBudget,
    MasterBudgetCreate,
    MasterBudgetUpdate,
    MonthlyOverview,
    Transfer,
    UtilizationSummary,
)
from household_ledger.services.storage.interface import (
    ConcurrencyError,
    LedgerSession,
    lock_key,
    retry_on_conflict,
)
from household_ledger.validation.errors import NotFoundError, OverspendingError, ValidationError
from household_ledger.validation.rules import (
    normalize_name,
    to_money,
    validate_non_negative_amount,
    validate_override_reason,
    validate_required_text,
)


class BudgetLedger(LedgerBase):
    """Master budgets and month budgets for one user."""

    def _master_lock(self) -> str:
        return lock_key("master", self.user_id)

    # =========================================================================
    # MASTER BUDGETS
    # =========================================================================

    @retry_on_conflict()
    async def create_master_budget(self, data: MasterBudgetCreate) -> MasterBudget:
        """
        Create a template. display_order defaults to one past the current
        highest.
        """
        validate_required_text(data.name, "Budget name")
        validate_non_negative_amount(data.budget_amount, "Budget amount")

        async with self._storage.transaction(self._master_lock()) as session:
            masters = await session.find(MasterBudget, self.user_id)
            self._check_master_name(masters, data.name)

            display_order = data.display_order
            if display_order is None:
                display_order = max((m.display_order for m in masters), default=0) + 1

            master = await session.insert(
                MasterBudget(
                    user_id=self.user_id,
                    **data.model_dump(exclude={"display_order", "budget_amount"}),
                    budget_amount=to_money(data.budget_amount),
                    display_order=display_order,
                )
            )
            await self._history.record(session, HistoryEntryBuilder.master_budget_created(master))

        return master

    @retry_on_conflict()
    async def update_master_budget(self, master_budget_id: UUID, patch: MasterBudgetUpdate) -> MasterBudget:
        """Patch a template. Month budgets copied from it are not touched."""
        changes = {
            k: v for k, v in patch.model_dump(exclude_unset=True).items()
            if v is not None or k == "description"
        }
        if "name" in patch.model_fields_set:
            validate_required_text(patch.name, "Budget name")
        if "budget_amount" in changes:
            validate_non_negative_amount(changes["budget_amount"], "Budget amount")
            changes["budget_amount"] = to_money(changes["budget_amount"])

        async with self._storage.transaction(self._master_lock()) as session:
            before = await self._require(session, MasterBudget, master_budget_id, "Master Budget")
            if "name" in changes and normalize_name(changes["name"]) != normalize_name(before.name):
                others = [
                    m for m in await session.find(MasterBudget, self.user_id)
                    if m.id != before.id
                ]
                self._check_master_name(others, changes["name"])

            after = await session.update(apply_changes(before, changes))
            await self._history.record(session, HistoryEntryBuilder.master_budget_updated(before, after))

        return after

    @retry_on_conflict()
    async def delete_master_budget(self, master_budget_id: UUID, hard_delete: bool = False) -> bool:
        """
        Retire a template.

        The default soft delete marks it inactive and is recorded as an
        update. A hard delete removes the template row only; month budgets
        keep their amounts and their now-dangling master_budget_id.
        """
        async with self._storage.transaction(self._master_lock()) as session:
            before = await self._require(session, MasterBudget, master_budget_id, "Master Budget")
            if hard_delete:
                await session.delete(MasterBudget, before.id, self.user_id)
                await self._history.record(session, HistoryEntryBuilder.master_budget_deleted(before))
            else:
                after = await session.update(apply_changes(before, {"is_active": False}))
                await self._history.record(session, HistoryEntryBuilder.master_budget_updated(before, after))
        return True

    async def get_master_budget(self, master_budget_id: UUID) -> MasterBudget:
        async with self._storage.transaction() as session:
            return await self._require(session, MasterBudget, master_budget_id, "Master Budget")

    async def list_master_budgets(self, active_only: bool = False) -> list[MasterBudget]:
        """Templates in display order."""
        filters = {"is_active": True} if active_only else {}
        async with self._storage.transaction() as session:
            masters = await session.find(MasterBudget, self.user_id, **filters)
        return sorted(masters, key=lambda m: (m.display_order, normalize_name(m.name)))

    async def get_master_budget_total(self) -> Decimal:
        """Sum of active template amounts."""
        masters = await self.list_master_budgets(active_only=True)
        return sum((m.budget_amount for m in masters), ZERO)

    async def get_master_budget_history(
        self, master_budget_id: Optional[UUID] = None
    ) -> list[MasterBudgetHistoryEntry]:
        """History newest first, optionally for one template."""
        filters = {"master_budget_id": master_budget_id} if master_budget_id else {}
        async with self._storage.transaction() as session:
            return await session.list_history(MasterBudgetHistoryEntry, self.user_id, **filters)

    @staticmethod
    def _check_master_name(masters: Iterable[MasterBudget], name: str) -> None:
        wanted = normalize_name(name)
        if any(normalize_name(m.name) == wanted for m in masters):
            raise ValidationError(f'A master budget named "{name.strip()}" already exists', "name")

    # =========================================================================
    # MONTH BUDGETS
    # =========================================================================

    @retry_on_conflict()
    async def add_master_budgets_to_month(
        self,
        month_id: UUID,
        master_budget_ids: list[UUID],
    ) -> BatchResult:
        """
        Copy templates into a month.

        A template is skipped when the month already has a budget linked to
        it or a budget with the same name (case-insensitive, trimmed); the
        name match covers budgets created before they were linked.
        """
        async with self._storage.transaction(lock_key("month", month_id)) as session:
            month = await self._require(session, MonthlyOverview, month_id)
            return await self.copy_masters_into_month(session, month, master_budget_ids)

    async def copy_masters_into_month(
        self,
        session: LedgerSession,
        month: MonthlyOverview,
        master_budget_ids: list[UUID],
    ) -> BatchResult:
        """
        add_master_budgets_to_month's body, inside the caller's transaction
        (which must hold the month's lock).
        """
        result = BatchResult()
        existing = await session.find(Budget, self.user_id, monthly_overview_id=month.id)
        linked = {b.master_budget_id for b in existing if b.master_budget_id}
        names = {normalize_name(b.name) for b in existing}

        for master_id in dict.fromkeys(master_budget_ids):
            master = await session.get(MasterBudget, master_id, self.user_id)
            if master is None:
                result.errors.append(BatchItemError(
                    name=str(master_id),
                    error=NotFoundError("Master Budget", master_id).message,
                ))
                continue

            if master.id in linked or normalize_name(master.name) in names:
                result.skipped += 1
                continue

            budget = await self._insert_budget(
                session,
                Budget(
                    user_id=self.user_id,
                    monthly_overview_id=month.id,
                    master_budget_id=master.id,
                    name=master.name,
                    budget_amount=master.budget_amount,
                    description=master.description,
                ),
            )
            linked.add(master.id)
            names.add(normalize_name(budget.name))
            result.created += 1
            result.created_ids.append(budget.id)

        self._history.event(
            "master_budgets_copied",
            monthly_overview_id=month.id, created=result.created, skipped=result.skipped,
        )
        return result

    @retry_on_conflict()
    async def create_budget(self, data: BudgetCreate) -> Budget:
        """
        Create a month budget; names are unique within the month.

        A budget linked to a template follows the same override rule as
        update_budget: an amount outside the tolerance needs a reason and
        is recorded as override_amount.
        """
        validate_required_text(data.name, "Budget name")
        validate_non_negative_amount(data.budget_amount, "Budget amount")
        if data.override_amount is not None:
            validate_override_reason(data.override_reason)
        amount = to_money(data.budget_amount)

        async with self._storage.transaction(lock_key("month", data.monthly_overview_id)) as session:
            month = await self._require(session, MonthlyOverview, data.monthly_overview_id)
            master = None
            if data.master_budget_id is not None:
                master = await self._require(session, MasterBudget, data.master_budget_id, "Master Budget")

            existing = await session.find(Budget, self.user_id, monthly_overview_id=month.id)
            self._check_budget_name(existing, data.name)

            fields = data.model_dump(exclude={"budget_amount"})
            if master is not None:
                if abs(amount - master.budget_amount) > self._settings.override_tolerance:
                    validate_override_reason(data.override_reason)
                    fields["override_amount"] = amount
                else:
                    fields["override_amount"] = None
            if fields["override_amount"] is None:
                fields["override_reason"] = None
            return await self._insert_budget(
                session,
                Budget(user_id=self.user_id, **fields, budget_amount=amount),
            )

    @retry_on_conflict()
    async def update_budget(self, budget_id: UUID, patch: BudgetUpdate) -> Budget:
        """
        Patch a month budget.

        When the new amount departs from the linked template by more than
        the override tolerance, override_reason is required and the amount
        is recorded as override_amount. Back within tolerance, the override
        is cleared.
        """
        changes = {
            k: v for k, v in patch.model_dump(exclude_unset=True).items()
            if v is not None or k == "description"
        }
        if "name" in patch.model_fields_set:
            validate_required_text(patch.name, "Budget name")
        if "budget_amount" in changes:
            validate_non_negative_amount(changes["budget_amount"], "Budget amount")
            changes["budget_amount"] = to_money(changes["budget_amount"])

        month_id = await self._budget_month_id(budget_id)
        async with self._storage.transaction(
            lock_key("month", month_id), lock_key("budget", budget_id)
        ) as session:
            before = await self._require(session, Budget, budget_id)

            if "name" in changes and normalize_name(changes["name"]) != normalize_name(before.name):
                siblings = [
                    b for b in await session.find(Budget, self.user_id, monthly_overview_id=month_id)
                    if b.id != before.id
                ]
                self._check_budget_name(siblings, changes["name"])

            if "budget_amount" in changes and before.master_budget_id is not None:
                master = await session.get(MasterBudget, before.master_budget_id, self.user_id)
                if master is not None:
                    new_amount = changes["budget_amount"]
                    if abs(new_amount - master.budget_amount) > self._settings.override_tolerance:
                        validate_override_reason(patch.override_reason)
                        changes["override_amount"] = new_amount
                    else:
                        changes["override_amount"] = None
                        changes["override_reason"] = None
            if "override_amount" not in changes and before.override_amount is None:
                changes.pop("override_reason", None)

            after = await session.update(apply_changes(before, changes))
            await self._history.record(session, HistoryEntryBuilder.budget_updated(before, after))

        return after

    @retry_on_conflict()
    async def delete_budget(self, budget_id: UUID) -> bool:
        """
        Delete a budget with its expenses and the transfers touching it.

        Goals funded by those expenses or transfers are recomputed in the
        same transaction; the delete is refused if one would go negative.
        Budgets that received allocation from this one lose it, so the
        delete is also refused if one of them has already spent it.
        """
        async with self._storage.transaction() as session:
            budget = await self._require(session, Budget, budget_id)
            goal_ids = await self._goals_touched_by(session, [budget])
            funded_ids = await self._budgets_funded_by(session, budget)

        keys = [lock_key("month", budget.monthly_overview_id), lock_key("budget", budget_id)]
        keys += [lock_key("budget", b) for b in funded_ids]
        keys += [lock_key("goal", g) for g in goal_ids]
        async with self._storage.transaction(*keys) as session:
            budget = await self._require(session, Budget, budget_id)
            if not (await self._goals_touched_by(session, [budget])) <= goal_ids:
                raise ConcurrencyError("Goal links changed while deleting budget")
            if not (await self._budgets_funded_by(session, budget)) <= funded_ids:
                raise ConcurrencyError("Transfers changed while deleting budget")
            await self._check_funded_budgets(session, budget)
            await self.remove_budget(session, budget)
            await recompute_goals(session, self.user_id, goal_ids, self._settings.currency_symbol)

        return True

    async def remove_budget(self, session: LedgerSession, budget: Budget) -> None:
        """
        Delete a budget's expenses, transfers and the budget itself, and
        record the deletion. The caller recomputes affected goals.
        """
        for expense in await session.find(Expense, self.user_id, budget_id=budget.id):
            await session.delete(Expense, expense.id, self.user_id)
        for field in ("from_budget_id", "to_budget_id"):
            for transfer in await session.find(Transfer, self.user_id, **{field: budget.id}):
                await session.delete(Transfer, transfer.id, self.user_id)
        await session.delete(Budget, budget.id, self.user_id)
        await self._history.record(session, HistoryEntryBuilder.budget_deleted(budget))

    async def get_budget(self, budget_id: UUID) -> Budget:
        async with self._storage.transaction() as session:
            return await self._require(session, Budget, budget_id)

    async def list_budgets(self, month_id: UUID) -> list[Budget]:
        async with self._storage.transaction() as session:
            await self._require(session, MonthlyOverview, month_id)
            return await session.find(Budget, self.user_id, monthly_overview_id=month_id)

    async def get_summary(self, budget_id: UUID) -> BudgetSummary:
        async with self._storage.transaction() as session:
            budget = await self._require(session, Budget, budget_id)
            return await summarize_budget(session, budget)

    async def list_summaries(self, month_id: UUID) -> list[BudgetSummary]:
        async with self._storage.transaction() as session:
            await self._require(session, MonthlyOverview, month_id)
            budgets = await session.find(Budget, self.user_id, monthly_overview_id=month_id)
            return [await summarize_budget(session, b) for b in budgets]

    async def get_overspent_budgets(self, month_id: UUID) -> list[BudgetSummary]:
        """Budgets in the month whose amount_left is negative."""
        return [s for s in await self.list_summaries(month_id) if s.is_overspent]

    async def get_utilization_summary(self, month_id: UUID) -> UtilizationSummary:
        """Totals across a month's budgets, using effective allocations."""
        summaries = await self.list_summaries(month_id)
        total_budgeted = sum((s.effective_amount for s in summaries), ZERO)
        total_spent = sum((s.amount_spent for s in summaries), ZERO)
        return UtilizationSummary(
            total_budgeted=total_budgeted,
            total_spent=total_spent,
            total_left=total_budgeted - total_spent,
            percent_used=percent_of(total_spent, total_budgeted),
        )

    async def get_deviation(self, budget_id: UUID) -> Optional[BudgetDeviation]:
        """
        How far a budget sits from its template.

        None when the budget has no template or the template was deleted.
        """
        async with self._storage.transaction() as session:
            budget = await self._require(session, Budget, budget_id)
            if budget.master_budget_id is None:
                return None
            master = await session.get(MasterBudget, budget.master_budget_id, self.user_id)
        if master is None:
            return None

        deviation = budget.budget_amount - master.budget_amount
        return BudgetDeviation(
            budget_id=budget.id,
            master_budget_id=master.id,
            master_amount=master.budget_amount,
            budget_amount=budget.budget_amount,
            deviation=deviation,
            deviation_percent=percent_of(deviation, master.budget_amount) if master.budget_amount > 0 else None,
            is_override=abs(deviation) > self._settings.override_tolerance,
        )

    async def get_budget_history(
        self,
        budget_id: Optional[UUID] = None,
        month_id: Optional[UUID] = None,
    ) -> list[BudgetHistoryEntry]:
        """History newest first; survives deletion of the budget and its month."""
        filters = {}
        if budget_id is not None:
            filters["budget_id"] = budget_id
        if month_id is not None:
            filters["monthly_overview_id"] = month_id
        async with self._storage.transaction() as session:
            return await session.list_history(BudgetHistoryEntry, self.user_id, **filters)

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _insert_budget(self, session: LedgerSession, budget: Budget) -> Budget:
        budget = await session.insert(budget)
        await self._history.record(session, HistoryEntryBuilder.budget_created(budget))
        return budget

    async def _budget_month_id(self, budget_id: UUID) -> UUID:
        """A budget never changes month, so its month lock can be named up front."""
        async with self._storage.transaction() as session:
            budget = await self._require(session, Budget, budget_id)
        return budget.monthly_overview_id

    async def _goals_touched_by(self, session: LedgerSession, budgets: list[Budget]) -> set[UUID]:
        """Goals whose balance depends on expenses or transfers of these budgets."""
        rows = []
        for budget in budgets:
            rows += await session.find(Expense, self.user_id, budget_id=budget.id)
            rows += await session.find(Transfer, self.user_id, to_budget_id=budget.id)
        return linked_goal_ids(rows)

    async def _budgets_funded_by(self, session: LedgerSession, budget: Budget) -> set[UUID]:
        outgoing = await session.find(Transfer, self.user_id, from_budget_id=budget.id)
        return {t.to_budget_id for t in outgoing if t.to_budget_id is not None}

    async def _check_funded_budgets(self, session: LedgerSession, budget: Budget) -> None:
        """Refuse when dropping this budget's outgoing transfers overspends a receiver."""
        withdrawn: dict[UUID, Decimal] = {}
        for transfer in await session.find(Transfer, self.user_id, from_budget_id=budget.id):
            if transfer.to_budget_id is not None:
                withdrawn[transfer.to_budget_id] = withdrawn.get(transfer.to_budget_id, ZERO) + transfer.amount

        for target_id, amount in withdrawn.items():
            target = await session.get(Budget, target_id, self.user_id)
            if target is None:
                continue
            summary = await summarize_budget(session, target)
            left = summary.amount_left - amount
            if left < 0:
                raise OverspendingError(
                    f'Cannot delete "{budget.name}" budget. Without the {self.money(amount)} transferred from it, '
                    f'"{target.name}" budget would be negative by '
                    f"{self.money(-left)}. Available: {self.money(summary.amount_left)}",
                    budget_name=target.name,
                    available=summary.amount_left,
                    overage=-left,
                )

    @staticmethod
    def _check_budget_name(budgets: Iterable[Budget], name: str) -> None:
        wanted = normalize_name(name)
        if any(normalize_name(b.name) == wanted for b in budgets):
            raise ValidationError(
                f'A budget category named "{name.strip()}" already exists for this month. '
                "Please use a different name or edit the existing budget.",
                "name",
            )
