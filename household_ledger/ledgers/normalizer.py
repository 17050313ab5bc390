"""
Amount Normalizer

Converts a subscription's billed amount into its monthly and yearly
equivalents so subscriptions with different billing cycles can be compared
and budgeted.

DESIGN DECISION: Factors are exact Decimal fractions. Weekly monthly cost is
amount * 52 / 12, not amount * 4.33, so monthly * 12 equals yearly to the
cent for every recurring frequency. One-Time charges never recur and
normalize to zero.
"""

from decimal import Decimal
from typing import Iterable

from household_ledger.models.ledger import Frequency, Subscription, SubscriptionStatus
from household_ledger.validation.rules import Number, to_decimal, to_money

# (multiplier, divisor) for the monthly equivalent, multiplier for yearly
MONTHLY_FACTORS: dict[Frequency, tuple[int, int]] = {
    Frequency.WEEKLY: (52, 12),
    Frequency.BI_WEEKLY: (26, 12),
    Frequency.MONTHLY: (1, 1),
    Frequency.QUARTERLY: (1, 3),
    Frequency.BI_ANNUALLY: (1, 6),
    Frequency.ANNUALLY: (1, 12),
    Frequency.ONE_TIME: (0, 1),
}

YEARLY_FACTORS: dict[Frequency, int] = {
    Frequency.WEEKLY: 52,
    Frequency.BI_WEEKLY: 26,
    Frequency.MONTHLY: 12,
    Frequency.QUARTERLY: 4,
    Frequency.BI_ANNUALLY: 2,
    Frequency.ANNUALLY: 1,
    Frequency.ONE_TIME: 0,
}


class AmountNormalizer:
    """Pure conversions between billing frequencies."""

    @staticmethod
    def to_monthly(amount: Number, frequency: Frequency) -> Decimal:
        """Unrounded monthly equivalent of one billed amount."""
        multiplier, divisor = MONTHLY_FACTORS[Frequency(frequency)]
        return to_decimal(amount) * multiplier / divisor

    @staticmethod
    def to_yearly(amount: Number, frequency: Frequency) -> Decimal:
        """Unrounded yearly equivalent of one billed amount."""
        return to_decimal(amount) * YEARLY_FACTORS[Frequency(frequency)]

    @classmethod
    def monthly_budget_amount(cls, amount: Number, frequency: Frequency) -> Decimal:
        """Monthly equivalent rounded half-up to cents, as stored on a budget."""
        return to_money(cls.to_monthly(amount, frequency))

    @classmethod
    def total_monthly_cost(cls, subscriptions: Iterable[Subscription]) -> Decimal:
        """Sum of monthly equivalents of the active subscriptions, rounded to cents."""
        total = sum(
            (cls.to_monthly(s.amount, s.frequency) for s in subscriptions
             if s.status == SubscriptionStatus.ACTIVE),
            Decimal("0"),
        )
        return to_money(total)

    @classmethod
    def total_yearly_cost(cls, subscriptions: Iterable[Subscription]) -> Decimal:
        """Sum of yearly equivalents of the active subscriptions, rounded to cents."""
        total = sum(
            (cls.to_yearly(s.amount, s.frequency) for s in subscriptions
             if s.status == SubscriptionStatus.ACTIVE),
            Decimal("0"),
        )
        return to_money(total)
