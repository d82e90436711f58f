"""Billing cycle arithmetic package."""

from subtracker.billing.cycles import (
    add_months,
    advance_one_period,
    advance_periods,
    daily_equivalent,
    equivalent,
    monthly_equivalent,
    periods_until,
    roll_forward_to_future,
    yearly_equivalent,
)

__all__ = [
    "add_months",
    "advance_one_period",
    "advance_periods",
    "daily_equivalent",
    "equivalent",
    "monthly_equivalent",
    "periods_until",
    "roll_forward_to_future",
    "yearly_equivalent",
]
