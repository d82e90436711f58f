"""
Billing Cycle Arithmetic

Pure functions that translate between a subscription's billing period and
calendar time:
- price per period -> daily / monthly / yearly equivalent
- next payment date -> the date one or more periods later

DESIGN DECISION: A month is treated as exactly 4 weeks when converting a
weekly price to a monthly one (and a month as 30 days for the daily
figure). This is a deliberate simplification of the displayed totals, not
calendar arithmetic. Date advancing, on the other hand, is calendar exact.

Unsupported cycles are rejected at validation and never reach this module;
a ValueError here means a programming error.
"""

import calendar
from datetime import MAXYEAR, MINYEAR, date, timedelta
from decimal import Decimal
from typing import Union

from subtracker.models.subscription import BillingCycle, Granularity


Amount = Union[Decimal, int, float, str]

# (multiplier, divisor) applied to the per-period price
_MONTHLY_FACTORS = {
    BillingCycle.WEEKLY: (4, 1),
    BillingCycle.MONTHLY: (1, 1),
    BillingCycle.YEARLY: (1, 12),
}

_YEARLY_FACTORS = {
    BillingCycle.WEEKLY: (52, 1),
    BillingCycle.MONTHLY: (12, 1),
    BillingCycle.YEARLY: (1, 1),
}

_DAILY_FACTORS = {
    BillingCycle.WEEKLY: (1, 7),
    BillingCycle.MONTHLY: (1, 30),
    BillingCycle.YEARLY: (1, 365),
}


def _as_decimal(value: Amount) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _apply(price: Amount, cycle: BillingCycle, factors: dict) -> Decimal:
    try:
        multiplier, divisor = factors[BillingCycle(cycle)]
    except (KeyError, ValueError):
        raise ValueError(f"Unsupported billing cycle: {cycle!r}")
    amount = _as_decimal(price) * multiplier
    if divisor != 1:
        amount = amount / divisor
    return amount


def monthly_equivalent(price: Amount, cycle: BillingCycle) -> Decimal:
    """weekly x4, monthly x1, yearly /12."""
    return _apply(price, cycle, _MONTHLY_FACTORS)


def yearly_equivalent(price: Amount, cycle: BillingCycle) -> Decimal:
    """weekly x52, monthly x12, yearly x1."""
    return _apply(price, cycle, _YEARLY_FACTORS)


def daily_equivalent(price: Amount, cycle: BillingCycle) -> Decimal:
    """weekly /7, monthly /30, yearly /365."""
    return _apply(price, cycle, _DAILY_FACTORS)


def equivalent(price: Amount, cycle: BillingCycle, granularity: Granularity) -> Decimal:
    """Price normalized to the given time basis."""
    granularity = Granularity(granularity)
    if granularity == Granularity.DAILY:
        return daily_equivalent(price, cycle)
    if granularity == Granularity.MONTHLY:
        return monthly_equivalent(price, cycle)
    return yearly_equivalent(price, cycle)


def add_months(d: date, months: int) -> date:
    """
    Move a date by whole calendar months.

    The day of month is kept and clamped to the length of the target month
    (Jan 31 + 1 month = Feb 28/29).
    """
    month_index = d.year * 12 + (d.month - 1) + months
    year, month = divmod(month_index, 12)
    if not MINYEAR <= year <= MAXYEAR:
        raise OverflowError("date value out of range")
    month += 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def advance_periods(d: date, cycle: BillingCycle, periods: int) -> date:
    """
    The date `periods` whole billing periods after `d`.

    Always computed from `d` itself so that month-end clamping does not
    accumulate: Jan 31 + 2 months is Mar 31, not Mar 28.

    Raises OverflowError when the result is past date.max.
    """
    cycle = BillingCycle(cycle)
    if periods < 0:
        raise ValueError("periods must not be negative")
    if cycle == BillingCycle.WEEKLY:
        return d + timedelta(days=7 * periods)
    if cycle == BillingCycle.MONTHLY:
        return add_months(d, periods)
    if cycle == BillingCycle.YEARLY:
        return add_months(d, 12 * periods)
    raise ValueError(f"Unsupported billing cycle: {cycle!r}")


def advance_one_period(d: date, cycle: BillingCycle) -> date:
    """+7 days, +1 calendar month, or +1 calendar year."""
    return advance_periods(d, cycle, 1)


def periods_until(d: date, cycle: BillingCycle, reference_date: date) -> int:
    """
    Smallest number of whole periods that moves `d` to or past `reference_date`.

    Zero when `d` is already on or after the reference.
    """
    periods = 0
    current = d
    # Each step strictly increases the date, so the loop terminates.
    while current < reference_date:
        periods += 1
        current = advance_periods(d, cycle, periods)
    return periods


def roll_forward_to_future(d: date, cycle: BillingCycle, reference_date: date) -> date:
    """
    Advance `d` by whole periods until it is on or after `reference_date`.

    A subscription may have lapsed several periods while the app was not
    used, so this steps repeatedly rather than once. Dates already on or
    after the reference are returned unchanged.
    """
    return advance_periods(d, cycle, periods_until(d, cycle, reference_date))
