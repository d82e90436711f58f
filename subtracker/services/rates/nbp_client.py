"""
Exchange Rate Source using the NBP web API

DESIGN DECISION: We use the National Bank of Poland table API because:
1. Rates are quoted against PLN, our base currency
2. One request returns every currency we need
3. No API key is required

Response shape (table A):

    [{"table": "A", "no": "...", "effectiveDate": "2024-05-01",
      "rates": [{"currency": "dolar amerykański", "code": "USD", "mid": 3.98}, ...]}]

Only `effectiveDate` and `mid` of the expected codes are used. Anything
else, including a table that lacks one of the expected codes, is a
RateFetchError. The caller decides what to do about it.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from subtracker.config import RatesSettings, get_settings
from subtracker.models.rates import BASE_CURRENCY, RateTable


class RateFetchError(Exception):
    """Fetching or parsing the remote rate table failed."""
    pass


class NBPRate(BaseModel):
    """One entry of an NBP table."""
    model_config = ConfigDict(extra="ignore")

    code: str = Field(..., min_length=3, max_length=3)
    mid: Decimal = Field(..., gt=0)


class NBPTable(BaseModel):
    """One NBP table as returned by /exchangerates/tables/{table}/."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    effective_date: date = Field(..., alias="effectiveDate")
    rates: list[NBPRate]


class NBPRateSource:
    """
    Downloads the current NBP table and turns it into a RateTable.

    A single attempt per call: the once-per-day throttle lives in
    RateTableService, and a failed fetch simply keeps the previous table.
    """

    def __init__(
        self,
        settings: Optional[RatesSettings] = None,
        session: Optional[requests.Session] = None,
    ):
        self._settings = settings or get_settings().rates
        self._session = session

    def _get_session(self) -> requests.Session:
        """Get or create the HTTP session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def fetch_table(self) -> RateTable:
        """
        Download and parse the current table.

        Raises:
            RateFetchError: On network errors, non-2xx responses, or an
                unexpected payload
        """
        url = self._settings.table_url
        try:
            response = self._get_session().get(
                url,
                headers={"Accept": "application/json"},
                timeout=self._settings.timeout_seconds,
            )
        except requests.RequestException as e:
            raise RateFetchError(f"NBP API request failed: {e}") from e

        if not response.ok:
            raise RateFetchError(f"NBP API error: {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise RateFetchError(f"NBP API returned invalid JSON: {e}") from e

        return self.parse_payload(payload)

    def parse_payload(self, payload) -> RateTable:
        """Build a RateTable from a decoded NBP response."""
        if not isinstance(payload, list) or not payload:
            raise RateFetchError("No data from NBP API")

        try:
            table = NBPTable.model_validate(payload[0])
        except ValidationError as e:
            raise RateFetchError(f"Unexpected NBP table shape: {e.error_count()} errors") from e

        expected = [code for code in self._settings.currencies_list if code != BASE_CURRENCY]
        found: dict[str, Decimal] = {}
        for rate in table.rates:
            code = rate.code.upper()
            if code in expected:
                found[code] = rate.mid

        missing = [code for code in expected if code not in found]
        if missing:
            raise RateFetchError(f"Missing rates for: {', '.join(missing)}")

        rates = {BASE_CURRENCY: Decimal("1"), **found}
        return RateTable(rates=rates, last_updated=table.effective_date)
