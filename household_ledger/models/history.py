"""
History Models for Household Ledger

Every change to a budget definition (master budget or month budget) is
recorded as a history entry. This provides:
1. Complete traceability of budget edits
2. The data behind "how did this category change over time" views
3. Full before/after snapshots for reconstructing any past state

DESIGN DECISION: History is append-only. Entries are never edited or deleted,
not even when the budget or month they describe is deleted.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from household_ledger.models.ledger import Budget, MasterBudget, utcnow


class HistoryAction(str, Enum):
    """What happened to the budget row."""
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class HistoryEntry(BaseModel):
    """
    Shared shape of history rows.

    old_data is None for CREATED, new_data is None for DELETED.
    """

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique entry identifier"
    )
    user_id: UUID = Field(
        ...,
        description="Owner of the budget this entry describes"
    )
    action: HistoryAction
    old_data: Optional[dict[str, Any]] = Field(
        default=None,
        description="Full row before the change"
    )
    new_data: Optional[dict[str, Any]] = Field(
        default=None,
        description="Full row after the change"
    )
    changed_at: datetime = Field(
        default_factory=utcnow,
        description="When the change was recorded (UTC)"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "entry_id": str(self.id),
            "action": self.action.value,
            "changed_at": self.changed_at.isoformat(),
            "changed_fields": self.changed_fields(),
        }

    def changed_fields(self) -> list[str]:
        """Names of fields whose value differs between old_data and new_data."""
        if self.old_data is None or self.new_data is None:
            return []
        keys = set(self.old_data) | set(self.new_data)
        return sorted(
            key for key in keys
            if key != "updated_at" and self.old_data.get(key) != self.new_data.get(key)
        )


class MasterBudgetHistoryEntry(HistoryEntry):
    """A change to a master budget template."""

    master_budget_id: UUID


class BudgetHistoryEntry(HistoryEntry):
    """A change to a month's budget."""

    budget_id: UUID
    master_budget_id: Optional[UUID] = None
    monthly_overview_id: Optional[UUID] = None

    def to_log_dict(self) -> dict:
        log_dict = super().to_log_dict()
        log_dict.update({
            "budget_id": str(self.budget_id),
            "monthly_overview_id": (
                str(self.monthly_overview_id) if self.monthly_overview_id else None
            ),
        })
        return log_dict


def snapshot(row: Optional[BaseModel]) -> Optional[dict[str, Any]]:
    """JSON-safe full copy of a row, or None."""
    if row is None:
        return None
    return row.model_dump(mode="json")


class HistoryEntryBuilder:
    """
    Helper class to build history entries with common patterns.

    Usage:
        entry = HistoryEntryBuilder.budget_updated(before, after)
        entry = HistoryEntryBuilder.master_budget_deleted(before)
    """

    @staticmethod
    def master_budget_created(master: MasterBudget) -> MasterBudgetHistoryEntry:
        return MasterBudgetHistoryEntry(
            user_id=master.user_id,
            master_budget_id=master.id,
            action=HistoryAction.CREATED,
            new_data=snapshot(master),
        )

    @staticmethod
    def master_budget_updated(
        before: MasterBudget,
        after: MasterBudget,
    ) -> MasterBudgetHistoryEntry:
        return MasterBudgetHistoryEntry(
            user_id=after.user_id,
            master_budget_id=after.id,
            action=HistoryAction.UPDATED,
            old_data=snapshot(before),
            new_data=snapshot(after),
        )

    @staticmethod
    def master_budget_deleted(before: MasterBudget) -> MasterBudgetHistoryEntry:
        return MasterBudgetHistoryEntry(
            user_id=before.user_id,
            master_budget_id=before.id,
            action=HistoryAction.DELETED,
            old_data=snapshot(before),
        )

    @staticmethod
    def budget_created(budget: Budget) -> BudgetHistoryEntry:
        return BudgetHistoryEntry(
            user_id=budget.user_id,
            budget_id=budget.id,
            master_budget_id=budget.master_budget_id,
            monthly_overview_id=budget.monthly_overview_id,
            action=HistoryAction.CREATED,
            new_data=snapshot(budget),
        )

    @staticmethod
    def budget_updated(before: Budget, after: Budget) -> BudgetHistoryEntry:
        return BudgetHistoryEntry(
            user_id=after.user_id,
            budget_id=after.id,
            master_budget_id=after.master_budget_id,
            monthly_overview_id=after.monthly_overview_id,
            action=HistoryAction.UPDATED,
            old_data=snapshot(before),
            new_data=snapshot(after),
        )

    @staticmethod
    def budget_deleted(before: Budget) -> BudgetHistoryEntry:
        return BudgetHistoryEntry(
            user_id=before.user_id,
            budget_id=before.id,
            master_budget_id=before.master_budget_id,
            monthly_overview_id=before.monthly_overview_id,
            action=HistoryAction.DELETED,
            old_data=snapshot(before),
        )
