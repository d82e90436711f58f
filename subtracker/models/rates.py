"""
Exchange Rate Models

A RateTable maps currency codes to their value in the base currency (PLN).
The table carries the effective date of its data, which drives the
once-per-day refresh policy.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from subtracker.models.subscription import coerce_calendar_date


BASE_CURRENCY = "PLN"

DEFAULT_RATES: dict[str, Decimal] = {
    "PLN": Decimal("1"),
    "USD": Decimal("3.6"),
    "GBP": Decimal("4.86"),
    "EUR": Decimal("4.22"),
}

# The built-in table is dated at process start.
PROCESS_START_DATE = date.today()


class RateTable(BaseModel):
    """
    Exchange rates expressed as base-currency value of one unit.

    INVARIANTS:
    - rates[BASE_CURRENCY] is exactly 1
    - every rate is positive
    """
    model_config = ConfigDict(frozen=True)

    rates: dict[str, Decimal] = Field(
        ...,
        description="Currency code -> value of one unit in PLN"
    )
    last_updated: date = Field(
        ...,
        description="Effective date of the rate data"
    )

    @field_validator('last_updated', mode='before')
    @classmethod
    def truncate_time(cls, v):
        return coerce_calendar_date(v)

    @field_validator('rates', mode='before')
    @classmethod
    def ensure_base(cls, v):
        if isinstance(v, dict):
            v = {str(code).upper(): rate for code, rate in v.items()}
            v.setdefault(BASE_CURRENCY, Decimal("1"))
        return v

    @model_validator(mode='after')
    def validate_rates(self) -> 'RateTable':
        if self.rates[BASE_CURRENCY] != Decimal("1"):
            raise ValueError(f"{BASE_CURRENCY} rate must be exactly 1")
        for code, rate in self.rates.items():
            if rate <= 0:
                raise ValueError(f"Rate for {code} must be positive, got {rate}")
        return self

    def rate_for(self, code: str) -> Optional[Decimal]:
        """Rate for a currency code, or None when the table does not know it."""
        return self.rates.get(str(code).upper())

    def to_storage_dict(self) -> dict:
        """
        Flat shape used by the settings document:
        {"PLN": 1, "USD": 3.6, ..., "lastUpdated": "2024-05-01"}
        """
        data: dict = {code: float(rate) for code, rate in self.rates.items()}
        data["lastUpdated"] = self.last_updated.isoformat()
        return data

    @classmethod
    def from_storage_dict(cls, data: dict) -> 'RateTable':
        data = dict(data)
        last_updated = data.pop("lastUpdated")
        # Decimal(str(...)) keeps 3.6 as 3.6 rather than its binary expansion
        rates = {code: Decimal(str(rate)) for code, rate in data.items()}
        return cls(rates=rates, last_updated=last_updated)


def default_rate_table() -> RateTable:
    """The built-in table used before any refresh has succeeded."""
    return RateTable(rates=dict(DEFAULT_RATES), last_updated=PROCESS_START_DATE)
