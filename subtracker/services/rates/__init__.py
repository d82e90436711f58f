"""Exchange rate services package."""

from subtracker.services.rates.nbp_client import (
    NBPRate,
    NBPRateSource,
    NBPTable,
    RateFetchError,
)
from subtracker.services.rates.service import (
    RateSource,
    RateTableService,
    needs_refresh,
    stale_rates_warning,
)

__all__ = [
    "NBPRate",
    "NBPRateSource",
    "NBPTable",
    "RateFetchError",
    "RateSource",
    "RateTableService",
    "needs_refresh",
    "stale_rates_warning",
]
