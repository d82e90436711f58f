"""
Currency Conversion and Formatting

Conversion goes through the base currency of the rate table:

    amount_in_pln = amount * rate[from]
    result        = amount_in_pln / rate[to]

DESIGN DECISION: A currency code the table does not know converts with
rate 1. This is a lossy degradation, not an error: the totals screen must
always be renderable, even with an incomplete table. Callers that need
exact numbers should check `RateTable.rate_for` first.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from subtracker.models.rates import RateTable


_FALLBACK_RATE = Decimal("1")
_CENT = Decimal("0.01")


def _code(currency) -> str:
    return str(getattr(currency, "value", currency)).upper()


def convert(
    amount: Union[Decimal, int, float],
    from_currency: str,
    to_currency: str,
    table: RateTable,
) -> Decimal:
    """Convert an amount between currencies using the given rate table."""
    amount = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    source, target = _code(from_currency), _code(to_currency)
    if source == target:
        return amount

    from_rate = table.rate_for(source) or _FALLBACK_RATE
    to_rate = table.rate_for(target) or _FALLBACK_RATE

    amount_in_base = amount * from_rate
    return amount_in_base / to_rate


def round_money(amount: Union[Decimal, int, float]) -> Decimal:
    """Round to cents, half up."""
    amount = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


def format_money(amount: Union[Decimal, int, float], currency: str) -> str:
    """Two decimal places followed by the currency code, e.g. '15.99 USD'."""
    return f"{round_money(amount)} {_code(currency)}"
