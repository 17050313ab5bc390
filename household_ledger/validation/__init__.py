"""Validation package: ledger guard functions and the error taxonomy."""

from household_ledger.validation.errors import (
    InsufficientFundsError,
    LedgerError,
    NotFoundError,
    OverspendingError,
    UnauthorizedError,
    ValidationError,
)
from household_ledger.validation.rules import (
    calculate_budget_summary,
    calculate_monthly_overview_summary,
    format_currency,
    normalize_name,
    to_date,
    to_decimal,
    to_money,
    validate_collection_day,
    validate_date_range,
    validate_date_within_period,
    validate_expense_date_within_month,
    validate_no_overspending,
    validate_non_negative_amount,
    validate_override_reason,
    validate_positive_amount,
    validate_progress,
    validate_required_text,
)

__all__ = [
    # Errors
    "InsufficientFundsError",
    "LedgerError",
    "NotFoundError",
    "OverspendingError",
    "UnauthorizedError",
    "ValidationError",
    # Conversions
    "format_currency",
    "normalize_name",
    "to_date",
    "to_decimal",
    "to_money",
    # Guards
    "validate_collection_day",
    "validate_date_range",
    "validate_date_within_period",
    "validate_expense_date_within_month",
    "validate_no_overspending",
    "validate_non_negative_amount",
    "validate_override_reason",
    "validate_positive_amount",
    "validate_progress",
    "validate_required_text",
    # Summaries
    "calculate_budget_summary",
    "calculate_monthly_overview_summary",
]
