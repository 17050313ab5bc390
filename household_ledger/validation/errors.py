"""
Ledger Error Taxonomy

Every error carries a human-readable message that callers show to the
user verbatim. The kinds are stable so callers can branch on them:

- ValidationError: field-level, correctable by the caller
- OverspendingError: a budget would go negative
- NotFoundError: entity absent or not owned by the caller
- UnauthorizedError: no authenticated identity
"""

from decimal import Decimal
from typing import Optional


class LedgerError(Exception):
    """Base exception for all ledger rule violations."""

    code: str = "LEDGER_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    """A field failed validation."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class InsufficientFundsError(ValidationError):
    """A withdrawal asked for more than the source holds."""

    code = "INSUFFICIENT_FUNDS"

    def __init__(
        self,
        message: str,
        available: Decimal,
        requested: Decimal,
        field: Optional[str] = "amount",
    ):
        super().__init__(message, field)
        self.available = available
        self.requested = requested


class OverspendingError(LedgerError):
    """An expense would push a budget below zero."""

    code = "OVERSPENDING_NOT_ALLOWED"

    def __init__(
        self,
        message: str,
        budget_name: str,
        available: Decimal,
        overage: Decimal,
    ):
        super().__init__(message)
        self.budget_name = budget_name
        self.available = available
        self.overage = overage


class NotFoundError(LedgerError):
    """Referenced entity does not exist for this user."""

    code = "NOT_FOUND"

    def __init__(self, resource: str, entity_id: object):
        super().__init__(f'{resource} with ID "{entity_id}" not found.')
        self.resource = resource
        self.entity_id = entity_id


class UnauthorizedError(LedgerError):
    """No authenticated user."""

    code = "UNAUTHORIZED"

    def __init__(self, message: str = "You must be logged in to perform this action."):
        super().__init__(message)
