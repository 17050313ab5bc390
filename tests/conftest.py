"""
Shared fixtures.

Every ledger test runs against InMemoryLedgerStorage; nothing touches a
real database.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio

from household_ledger.config import LedgerSettings
from household_ledger.models import (
    BudgetCreate,
    GoalCreate,
    MonthlyOverviewCreate,
)
from household_ledger.orchestrator import create_ledger_components
from household_ledger.services.storage import InMemoryLedgerStorage


@pytest.fixture
def settings():
    return LedgerSettings(
        currency_symbol="€",
        override_tolerance=Decimal("0.01"),
        storage_backend="memory",
    )


@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def ledger(storage, user_id, settings):
    """All ledgers for one user over a shared in-memory store."""
    return create_ledger_components(user_id, storage=storage, settings=settings)


@pytest_asyncio.fixture
async def month(ledger):
    """February 2026 (28 days)."""
    created, _ = await ledger.months.create_month(
        MonthlyOverviewCreate(
            name="February 2026",
            start_date=date(2026, 2, 1),
            end_date=date(2026, 2, 28),
        )
    )
    return created


@pytest_asyncio.fixture
async def food_budget(ledger, month):
    return await ledger.budgets.create_budget(
        BudgetCreate(monthly_overview_id=month.id, name="Food", budget_amount=Decimal("500.00"))
    )


@pytest_asyncio.fixture
async def fun_budget(ledger, month):
    return await ledger.budgets.create_budget(
        BudgetCreate(monthly_overview_id=month.id, name="Fun", budget_amount=Decimal("100.00"))
    )


@pytest_asyncio.fixture
async def goal(ledger):
    """Emergency fund holding 1000.00 against a 5000.00 target."""
    return await ledger.goals.create_goal(
        GoalCreate(
            name="Emergency Fund",
            target_amount=Decimal("5000.00"),
            current_amount=Decimal("1000.00"),
            start_date=date(2026, 1, 1),
        )
    )
