"""
Subscription Budget Bridge

Tracks recurring charges and turns the ones billed inside a month into
budget categories for that month.

DESIGN DECISION: Turning subscriptions into budgets is a batch of
independent creations, not one transaction. Each subscription either
becomes a budget, is skipped because the month already has a budget of
that name, or is reported with its error; one failure never undoes the
others.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from household_ledger.audit import HistoryLogger
from household_ledger.config import LedgerSettings
from household_ledger.ledgers.base import LedgerBase
from household_ledger.ledgers.budget import BudgetLedger
from household_ledger.ledgers.normalizer import AmountNormalizer
from household_ledger.models.ledger import (
    BatchItemError,
    BatchResult,
    BudgetCreate,
    MonthlyOverview,
    Subscription,
    SubscriptionCreate,
    SubscriptionStatus,
)
from household_ledger.services.storage.interface import LedgerStorageInterface
from household_ledger.validation.errors import LedgerError
from household_ledger.validation.rules import (
    DateLike,
    normalize_name,
    to_date,
    to_money,
    validate_collection_day,
    validate_date_range,
    validate_positive_amount,
    validate_required_text,
)


class SubscriptionBudgetBridge(LedgerBase):
    """Subscriptions for one user and their projection onto month budgets."""

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

    async def create_subscription(self, data: SubscriptionCreate) -> Subscription:
        validate_required_text(data.name, "Subscription name")
        validate_positive_amount(data.amount, "Subscription amount")
        validate_collection_day(data.collection_day)
        if data.start_date and data.end_date:
            validate_date_range(data.start_date, data.end_date)

        async with self._storage.transaction() as session:
            return await session.insert(
                Subscription(
                    user_id=self.user_id,
                    **data.model_dump(exclude={"amount"}),
                    amount=to_money(data.amount),
                )
            )

    async def get_subscription(self, subscription_id: UUID) -> Subscription:
        async with self._storage.transaction() as session:
            return await self._require(session, Subscription, subscription_id)

    async def list_subscriptions(self, status: Optional[SubscriptionStatus] = None) -> list[Subscription]:
        filters = {"status": status} if status is not None else {}
        async with self._storage.transaction() as session:
            return await session.find(Subscription, self.user_id, **filters)

    async def get_by_date_range(
        self,
        start: DateLike,
        end: DateLike,
        status: Optional[SubscriptionStatus] = None,
    ) -> list[Subscription]:
        """
        Subscriptions billed inside [start, end], both ends inclusive.

        A subscription with no next collection date has no billing to place
        and counts as due in every window while it is Active.
        """
        window_start = to_date(start, "Start Date")
        window_end = to_date(end, "End Date")
        validate_date_range(window_start, window_end)

        due = []
        for subscription in await self.list_subscriptions(status):
            next_date = subscription.next_collection_date
            if next_date is None:
                if subscription.status == SubscriptionStatus.ACTIVE:
                    due.append(subscription)
            elif window_start <= next_date <= window_end:
                due.append(subscription)

        return sorted(due, key=lambda s: (s.next_collection_date or date.max, normalize_name(s.name)))

    async def get_total_monthly_cost(self) -> Decimal:
        """Monthly-equivalent cost of all active subscriptions."""
        return AmountNormalizer.total_monthly_cost(
            await self.list_subscriptions(SubscriptionStatus.ACTIVE)
        )

    async def get_total_yearly_cost(self) -> Decimal:
        """Yearly-equivalent cost of all active subscriptions."""
        return AmountNormalizer.total_yearly_cost(
            await self.list_subscriptions(SubscriptionStatus.ACTIVE)
        )

    async def create_budgets_from_subscriptions(
        self,
        month_id: UUID,
        start: DateLike,
        end: DateLike,
        subscription_ids: Optional[list[UUID]] = None,
    ) -> BatchResult:
        """
        Create one budget per active subscription due in [start, end].

        The budget amount is the subscription's monthly-equivalent cost.
        Subscriptions whose name already exists as a budget in the month
        are skipped; per-item failures are collected, never raised.
        """
        async with self._storage.transaction() as session:
            await self._require(session, MonthlyOverview, month_id)

        subscriptions = await self.get_by_date_range(start, end, SubscriptionStatus.ACTIVE)
        if subscription_ids:
            wanted = set(subscription_ids)
            subscriptions = [s for s in subscriptions if s.id in wanted]

        result = BatchResult()
        for subscription in subscriptions:
            try:
                existing = await self._budgets.list_budgets(month_id)
                if any(normalize_name(b.name) == normalize_name(subscription.name) for b in existing):
                    result.skipped += 1
                    continue

                budget = await self._budgets.create_budget(
                    BudgetCreate(
                        monthly_overview_id=month_id,
                        name=subscription.name,
                        budget_amount=AmountNormalizer.monthly_budget_amount(
                            subscription.amount, subscription.frequency
                        ),
                        description=_budget_description(subscription),
                    )
                )
                result.created += 1
                result.created_ids.append(budget.id)
            except LedgerError as e:
                self._history.rejected(
                    "create_budget_from_subscription", e, subscription_id=subscription.id
                )
                result.errors.append(BatchItemError(name=subscription.name, error=e.message))

        self._history.event(
            "subscription_budgets_created",
            monthly_overview_id=month_id,
            created=result.created,
            skipped=result.skipped,
            errors=len(result.errors),
        )
        return result


def _budget_description(subscription: Subscription) -> str:
    due = subscription.next_collection_date.isoformat() if subscription.next_collection_date else "N/A"
    return f"Subscription: {subscription.name} ({subscription.frequency.value}) - Due: {due}"
