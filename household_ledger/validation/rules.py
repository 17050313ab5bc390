"""
Ledger Validation Rules

DESIGN DECISION: Every business rule is a small, pure guard function.
Each one either returns True or raises a typed error whose message is shown
to the user unmodified. Ledgers call these guards before any write, so a
failed guard always means zero writes.

The guards never fix values. A negative amount is reported, not clamped.

Money is handled as Decimal throughout. Floats and strings passed in are
converted through their string form so 99.99 stays 99.99.
"""

from datetime import date
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Optional, Union

from household_ledger.config import get_settings
from household_ledger.models.ledger import MonthlyOverviewSummary, SpendingSummary
from household_ledger.validation.errors import OverspendingError, ValidationError

Number = Union[Decimal, int, float, str]
DateLike = Union[date, str]

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


# =============================================================================
# CONVERSIONS
# =============================================================================

def to_decimal(value: Number, field_name: str = "Amount") -> Decimal:
    """Convert a number to Decimal without rounding."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number", field_name.lower())
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number", field_name.lower())


def to_money(value: Number, field_name: str = "Amount") -> Decimal:
    """Convert a number to Decimal rounded half-up to cents."""
    return to_decimal(value, field_name).quantize(CENT, rounding=ROUND_HALF_UP)


def to_date(value: DateLike, field_name: str = "Date") -> date:
    """Accept a date or an ISO YYYY-MM-DD string."""
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"{field_name} ({value}) is not a valid calendar date", field_name.lower())


def format_currency(amount: Number, currency_symbol: Optional[str] = None) -> str:
    """
    Format money for messages: symbol plus exactly two decimals.

    format_currency(50) -> "€50.00"; negative values read "-€5.00".
    """
    symbol = currency_symbol or get_settings().ledger.currency_symbol
    value = to_money(amount)
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):.2f}"


def normalize_name(name: str) -> str:
    """Key used for case-insensitive, trimmed name comparisons."""
    return name.strip().casefold()


# =============================================================================
# GUARDS
# =============================================================================

def validate_date_range(
    start: DateLike,
    end: Optional[DateLike],
    label: Optional[str] = None,
    field: str = "end_date",
) -> bool:
    """
    End must be on or after start. Equal dates are a valid single-day period.

    A missing end date (open-ended goal) always passes.
    """
    if end is None:
        return True
    start_date = to_date(start, "Start Date")
    end_date = to_date(end, "End Date")
    if end_date < start_date:
        message = "End Date must be after Start Date"
        if label:
            message = f"{label}: {message}"
        raise ValidationError(message, field)
    return True


def validate_positive_amount(value: Number, field_name: str = "Amount") -> bool:
    """Amount must be strictly greater than zero."""
    if to_decimal(value, field_name) <= 0:
        raise ValidationError(f"{field_name} must be greater than zero", _field_key(field_name))
    return True


def validate_non_negative_amount(value: Number, field_name: str = "Amount") -> bool:
    """Amount may be zero but not negative."""
    if to_decimal(value, field_name) < 0:
        raise ValidationError(f"{field_name} cannot be negative", _field_key(field_name))
    return True


def validate_expense_date_within_month(
    expense_date: DateLike,
    month_start: DateLike,
    month_end: DateLike,
    month_label: str = "the monthly overview",
) -> bool:
    """
    The expense date must fall inside the month, inclusive on both ends.

    An impossible calendar date (2026-02-29) fails like an out-of-range one.
    """
    start = to_date(month_start, "Start Date")
    end = to_date(month_end, "End Date")
    try:
        spent_on = to_date(expense_date, "Expense Date")
    except ValidationError:
        spent_on = None

    if spent_on is None or spent_on < start or spent_on > end:
        raise ValidationError(
            f"The Expense Date ({expense_date}) must be between the Start Date ({start.isoformat()}) "
            f"and End Date ({end.isoformat()}) of {month_label}.",
            "date",
        )
    return True


def validate_date_within_period(
    value: DateLike,
    period_start: DateLike,
    period_end: DateLike,
    subject: str = "Transfer",
) -> bool:
    """Same inclusive check as expenses, worded for transfers and goal movements."""
    start = to_date(period_start, "Start Date")
    end = to_date(period_end, "End Date")
    moved_on = to_date(value, f"{subject} date")
    if moved_on < start or moved_on > end:
        raise ValidationError(
            f"{subject} date must be between {start.isoformat()} and {end.isoformat()}",
            "date",
        )
    return True


def validate_no_overspending(
    budget_amount: Number,
    already_spent: Number,
    new_amount: Number,
    budget_name: str = "this budget",
    currency_symbol: Optional[str] = None,
) -> bool:
    """
    already_spent + new_amount must not exceed budget_amount.

    Spending exactly the remainder is allowed. The error reports the
    requested amount, what was available (floored to cents) and the overage.
    """
    budget = to_decimal(budget_amount, "Budget amount")
    spent = to_decimal(already_spent, "Amount spent")
    requested = to_decimal(new_amount, "Expense amount")

    projected_left = budget - spent - requested
    if projected_left < 0:
        available = (budget - spent).quantize(CENT, rounding=ROUND_FLOOR)
        overage = (-projected_left).quantize(CENT, rounding=ROUND_HALF_UP)
        raise OverspendingError(
            f'Cannot add expense of {format_currency(requested, currency_symbol)} to "{budget_name}" budget. '
            f"Budget would be negative by {format_currency(overage, currency_symbol)}. "
            f"Available: {format_currency(available, currency_symbol)}",
            budget_name=budget_name,
            available=available,
            overage=overage,
        )
    return True


def validate_progress(progress: Number) -> bool:
    """Sub-goal progress is a percentage."""
    value = to_decimal(progress, "Progress")
    if value < 0 or value > HUNDRED:
        raise ValidationError("Progress must be between 0 and 100", "progress")
    return True


def validate_override_reason(reason: Optional[str]) -> bool:
    """An amount that departs from the master budget needs an explanation."""
    if not reason or not reason.strip():
        raise ValidationError(
            "A reason is required when overriding the master budget amount",
            "override_reason",
        )
    return True


def validate_collection_day(day: Optional[int]) -> bool:
    if day is not None and (day < 1 or day > 31):
        raise ValidationError("Collection day must be between 1 and 31", "collection_day")
    return True


def validate_required_text(value: Optional[str], field_name: str) -> bool:
    if value is None or not value.strip():
        raise ValidationError(f"{field_name} is required", _field_key(field_name))
    return True


# =============================================================================
# SUMMARY ARITHMETIC
# =============================================================================

def calculate_budget_summary(
    budget_amount: Number,
    expense_amounts: Iterable[Number],
) -> SpendingSummary:
    """
    Sum expenses against an allocation.

    amount_left goes negative when overspent. percent_used is 0 for a zero
    allocation rather than a division error.
    """
    budget = to_decimal(budget_amount, "Budget amount")
    amount_spent = sum((to_decimal(a) for a in expense_amounts), Decimal("0"))
    amount_left = budget - amount_spent
    percent_used = (amount_spent / budget) * HUNDRED if budget > 0 else Decimal("0")
    return SpendingSummary(
        amount_spent=amount_spent,
        amount_left=amount_left,
        percent_used=percent_used,
    )


def calculate_monthly_overview_summary(
    income_amounts: Iterable[Number],
    budget_amounts: Iterable[Number],
) -> MonthlyOverviewSummary:
    """Income minus allocations; amount_unallocated may be negative."""
    total_income = sum((to_decimal(a) for a in income_amounts), Decimal("0"))
    total_budgeted = sum((to_decimal(a) for a in budget_amounts), Decimal("0"))
    return MonthlyOverviewSummary(
        total_income=total_income,
        total_budgeted=total_budgeted,
        amount_unallocated=total_income - total_budgeted,
    )


def _field_key(field_name: str) -> str:
    return field_name.strip().lower().replace(" ", "_")
