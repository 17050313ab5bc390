"""
Main Orchestrator for Household Ledger

This module ties the ledgers together and defines the money movements that
span more than one of them:
1. Budget to budget (reallocate inside a month)
2. Goal to budget (spend savings through a month's budget)
3. Goal drawdown (withdraw savings with no destination budget)

DESIGN DECISION: Each movement is one transaction that locks every entity
it reads a balance from. The balance check and the Transfer row that depends
on it commit together or not at all, so two concurrent transfers can never
both spend the same remainder.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from household_ledger.audit import HistoryLogger
from household_ledger.config import LedgerSettings, get_settings
from household_ledger.ledgers import (
    BudgetLedger,
    ExpenseLedger,
    GoalLedger,
    LedgerBase,
    MonthLedger,
    SubscriptionBudgetBridge,
)
from household_ledger.ledgers.base import summarize_budget
from household_ledger.models.ledger import (
    Budget,
    FinancialGoal,
    MonthlyOverview,
    MovementRequest,
    Transfer,
    TransferType,
)
from household_ledger.services.storage import (
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    lock_key,
    retry_on_conflict,
)
from household_ledger.validation.errors import InsufficientFundsError, ValidationError
from household_ledger.validation.rules import (
    to_money,
    validate_date_within_period,
    validate_positive_amount,
)


class TransferCoordinator(LedgerBase):
    """
    Executes transfers for one user.

    Every transfer persists exactly one Transfer row. Budget allocations
    are never rewritten: a budget's effective amount is its budget_amount
    plus transfers in minus transfers out.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        user_id: Optional[UUID],
        history_logger: Optional[HistoryLogger] = None,
        settings: Optional[LedgerSettings] = None,
        goal_ledger: Optional[GoalLedger] = None,
    ):
        super().__init__(storage, user_id, history_logger, settings)
        self._goals = goal_ledger or GoalLedger(
            self._storage, self._user_id, self._history, self._settings
        )

    @retry_on_conflict()
    async def create_budget_to_budget(
        self,
        month_id: UUID,
        from_budget_id: UUID,
        to_budget_id: UUID,
        request: MovementRequest,
    ) -> Transfer:
        """
        Move unspent allocation between two budgets of the same month.

        Raises:
            InsufficientFundsError: amount exceeds the source's amount_left
        """
        validate_positive_amount(request.amount, "Transfer amount")
        if from_budget_id == to_budget_id:
            raise ValidationError("Source and destination budget must be different", "to_budget_id")

        async with self._storage.transaction(
            lock_key("month", month_id),
            lock_key("budget", from_budget_id),
            lock_key("budget", to_budget_id),
        ) as session:
            month = await self._require(session, MonthlyOverview, month_id)
            source = await self._require(session, Budget, from_budget_id)
            destination = await self._require(session, Budget, to_budget_id)
            if source.monthly_overview_id != month.id or destination.monthly_overview_id != month.id:
                raise ValidationError(
                    "Both budgets must belong to the selected month", "monthly_overview_id"
                )
            validate_date_within_period(request.date, month.start_date, month.end_date, "Transfer")

            amount = to_money(request.amount)
            summary = await summarize_budget(session, source)
            if amount > summary.amount_left:
                raise InsufficientFundsError(
                    f"Insufficient amount in source budget. "
                    f"Available: {self.money(summary.amount_left)}, Requested: {self.money(amount)}",
                    available=summary.amount_left,
                    requested=amount,
                )

            transfer = await session.insert(
                Transfer(
                    user_id=self.user_id,
                    transfer_type=TransferType.BUDGET_TO_BUDGET,
                    monthly_overview_id=month.id,
                    from_budget_id=source.id,
                    to_budget_id=destination.id,
                    **request.model_dump(exclude={"amount"}),
                    amount=amount,
                )
            )

        self._log_transfer(transfer)
        return transfer

    @retry_on_conflict()
    async def create_goal_to_budget(
        self,
        month_id: UUID,
        goal_id: UUID,
        to_budget_id: UUID,
        request: MovementRequest,
    ) -> Transfer:
        """
        Move saved money from a goal into a month's budget.

        Raises:
            InsufficientFundsError: amount exceeds the goal's balance
        """
        validate_positive_amount(request.amount, "Transfer amount")

        async with self._storage.transaction(
            lock_key("month", month_id),
            lock_key("goal", goal_id),
            lock_key("budget", to_budget_id),
        ) as session:
            month = await self._require(session, MonthlyOverview, month_id)
            await self._require(session, FinancialGoal, goal_id)
            destination = await self._require(session, Budget, to_budget_id)
            if destination.monthly_overview_id != month.id:
                raise ValidationError(
                    "Destination budget must belong to the selected month", "to_budget_id"
                )
            validate_date_within_period(request.date, month.start_date, month.end_date, "Transfer")

            transfer = Transfer(
                user_id=self.user_id,
                transfer_type=TransferType.GOAL_TO_BUDGET,
                monthly_overview_id=month.id,
                from_goal_id=goal_id,
                to_budget_id=destination.id,
                **request.model_dump(exclude={"amount"}),
                amount=to_money(request.amount),
            )
            await self._goals.apply_transfer_out(session, transfer)

        self._log_transfer(transfer)
        return transfer

    @retry_on_conflict()
    async def create_goal_drawdown(
        self,
        goal_id: UUID,
        request: MovementRequest,
        month_id: Optional[UUID] = None,
    ) -> Transfer:
        """
        Withdraw saved money with no destination budget.

        When month_id is given the date must fall inside that month.

        Raises:
            InsufficientFundsError: amount exceeds the goal's balance
        """
        validate_positive_amount(request.amount, "Drawdown amount")

        keys = [lock_key("goal", goal_id)]
        if month_id is not None:
            keys.append(lock_key("month", month_id))

        async with self._storage.transaction(*keys) as session:
            if month_id is not None:
                month = await self._require(session, MonthlyOverview, month_id)
                validate_date_within_period(request.date, month.start_date, month.end_date, "Drawdown")

            transfer = Transfer(
                user_id=self.user_id,
                transfer_type=TransferType.GOAL_DRAWDOWN,
                monthly_overview_id=month_id,
                from_goal_id=goal_id,
                **request.model_dump(exclude={"amount"}),
                amount=to_money(request.amount),
            )
            await self._goals.apply_transfer_out(session, transfer)

        self._log_transfer(transfer)
        return transfer

    async def list_by_month(self, month_id: UUID) -> list[Transfer]:
        """Transfers recorded in a month, newest first."""
        async with self._storage.transaction() as session:
            await self._require(session, MonthlyOverview, month_id)
            transfers = await session.find(Transfer, self.user_id, monthly_overview_id=month_id)
        return sorted(transfers, key=lambda t: (t.date, t.created_at), reverse=True)

    async def list_by_goal(self, goal_id: UUID) -> list[Transfer]:
        """Transfers out of a goal, newest first."""
        async with self._storage.transaction() as session:
            await self._require(session, FinancialGoal, goal_id)
            transfers = await session.find(Transfer, self.user_id, from_goal_id=goal_id)
        return sorted(transfers, key=lambda t: (t.date, t.created_at), reverse=True)

    def _log_transfer(self, transfer: Transfer) -> None:
        self._history.event(
            "transfer_created",
            transfer_id=transfer.id,
            transfer_type=transfer.transfer_type.value,
            amount=transfer.amount,
            from_budget_id=transfer.from_budget_id,
            to_budget_id=transfer.to_budget_id,
            from_goal_id=transfer.from_goal_id,
        )


# =============================================================================
# FACTORY
# =============================================================================

@dataclass
class LedgerComponents:
    """Every ledger bound to one user and one storage backend."""

    storage: LedgerStorageInterface
    months: MonthLedger
    budgets: BudgetLedger
    expenses: ExpenseLedger
    goals: GoalLedger
    transfers: TransferCoordinator
    subscriptions: SubscriptionBudgetBridge


def create_storage(settings: Optional[LedgerSettings] = None) -> LedgerStorageInterface:
    """Storage backend selected by LEDGER_STORAGE_BACKEND."""
    settings = settings or get_settings().ledger
    if settings.storage_backend == "postgres":
        from household_ledger.services.storage.postgres import PostgresLedgerStorage
        return PostgresLedgerStorage()
    return InMemoryLedgerStorage()


def create_ledger_components(
    user_id: Optional[UUID],
    storage: Optional[LedgerStorageInterface] = None,
    settings: Optional[LedgerSettings] = None,
) -> LedgerComponents:
    """
    Factory function to create all ledgers for one caller.

    Args:
        user_id: Authenticated caller. None yields ledgers that refuse
                 every operation with UnauthorizedError.
        storage: Shared backend. Defaults to the configured one.
        settings: Ledger settings. Defaults to the environment.

    Returns:
        LedgerComponents sharing one storage, history logger and settings
    """
    settings = settings or get_settings().ledger
    storage = storage or create_storage(settings)
    history = HistoryLogger(debug=settings.debug_mode)

    budgets = BudgetLedger(storage, user_id, history, settings)
    goals = GoalLedger(storage, user_id, history, settings)
    return LedgerComponents(
        storage=storage,
        months=MonthLedger(storage, user_id, history, settings, budget_ledger=budgets),
        budgets=budgets,
        expenses=ExpenseLedger(storage, user_id, history, settings),
        goals=goals,
        transfers=TransferCoordinator(storage, user_id, history, settings, goal_ledger=goals),
        subscriptions=SubscriptionBudgetBridge(storage, user_id, history, settings, budget_ledger=budgets),
    )
