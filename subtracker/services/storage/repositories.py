"""
Document Repositories

Map the engine's models to the two persisted documents:

1. Subscriptions:
   {"state": {"subscriptions": [ {...}, ... ]}, "version": 0}
2. Settings (display currency + rate table):
   {"state": {"defaultCurrency": "PLN",
              "exchangeRates": {"PLN": 1, "USD": 3.6, ..., "lastUpdated": "2024-05-01"}},
    "version": 0}

This is the envelope the mobile app's persisted stores wrote, so an
exported document from the app restores without conversion.

DESIGN DECISION: Legacy 'daily' and 'quarterly' records are handled here,
at deserialization, and nowhere else. Under the 'normalize' policy they
are rewritten to a supported cycle with the same monthly spend; under
'reject' they are skipped and reported.
"""

import json
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ValidationError

from subtracker.audit import AuditLogger
from subtracker.models.rates import RateTable
from subtracker.models.subscription import BillingCycle, Subscription
from subtracker.services.storage.interface import CorruptDataError, KeyValueStoreInterface


DOCUMENT_VERSION = 0

# legacy cycle -> (replacement cycle, price multiplier, price divisor)
_LEGACY_NORMALIZATION = {
    "daily": (BillingCycle.WEEKLY, 7, 1),
    "quarterly": (BillingCycle.MONTHLY, 1, 3),
}


def _wrap(state: dict) -> str:
    return json.dumps({"state": state, "version": DOCUMENT_VERSION})


def _unwrap(key: str, raw: str) -> dict:
    try:
        document = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CorruptDataError(key, str(e)) from e
    if not isinstance(document, dict):
        raise CorruptDataError(key, "top-level value is not an object")
    state = document.get("state", document)
    if not isinstance(state, dict):
        raise CorruptDataError(key, "'state' is not an object")
    return state


class SubscriptionRepository:
    """Loads and saves the whole subscription collection."""

    def __init__(
        self,
        store: KeyValueStoreInterface,
        key: str,
        audit_logger: Optional[AuditLogger] = None,
        legacy_cycle_policy: Literal["normalize", "reject"] = "normalize",
    ):
        self._store = store
        self._key = key
        self._audit_logger = audit_logger
        self._legacy_policy = legacy_cycle_policy

    def _normalize_legacy(self, record: dict) -> Optional[dict]:
        """
        Rewrite or drop a record whose cycle is no longer supported.

        Returns the record to build, or None to skip it.
        """
        cycle = record.get("billingCycle", record.get("billing_cycle"))
        if not isinstance(cycle, str) or cycle.lower() not in _LEGACY_NORMALIZATION:
            return record

        record_id = record.get("id")
        record_id = str(record_id) if record_id is not None else None
        if self._legacy_policy == "reject":
            if self._audit_logger:
                self._audit_logger.log_legacy_rejected(record_id, cycle)
            return None

        new_cycle, multiplier, divisor = _LEGACY_NORMALIZATION[cycle.lower()]
        normalized = {
            k: v for k, v in record.items() if k not in ("billingCycle", "billing_cycle")
        }
        normalized["billingCycle"] = new_cycle.value
        try:
            normalized["price"] = Decimal(str(record.get("price"))) * multiplier / divisor
        except ArithmeticError:
            # Leave the price as-is; model validation reports it
            normalized["price"] = record.get("price")
        if self._audit_logger:
            self._audit_logger.log_legacy_normalized(record_id, cycle, new_cycle.value)
        return normalized

    def load(self) -> list[Subscription]:
        """
        Read the stored collection.

        Records that fail validation are skipped and reported; one bad
        record never prevents the rest from loading.

        Raises:
            CorruptDataError: If the document itself cannot be parsed
        """
        raw = self._store.get(self._key)
        if raw is None:
            return []

        state = _unwrap(self._key, raw)
        records = state.get("subscriptions", [])
        if not isinstance(records, list):
            raise CorruptDataError(self._key, "'subscriptions' is not a list")

        subscriptions: list[Subscription] = []
        for record in records:
            if not isinstance(record, dict):
                continue
            record = self._normalize_legacy(record)
            if record is None:
                continue
            try:
                subscriptions.append(Subscription.model_validate(record))
            except ValidationError as e:
                if self._audit_logger:
                    self._audit_logger.log_storage_error(
                        self._key,
                        f"Skipped record {record.get('id')!r}: {e.error_count()} invalid fields",
                    )
        return subscriptions

    def save(self, subscriptions: list[Subscription]) -> None:
        """Replace the stored collection with `subscriptions`."""
        state = {"subscriptions": [sub.to_storage_dict() for sub in subscriptions]}
        self._store.set(self._key, _wrap(state))

    def delete(self) -> None:
        self._store.delete(self._key)


class StoredSettings(BaseModel):
    """Contents of the settings document."""

    default_currency: str
    rate_table: Optional[RateTable] = None


class SettingsRepository:
    """Loads and saves the display currency and the last known rate table."""

    def __init__(self, store: KeyValueStoreInterface, key: str):
        self._store = store
        self._key = key

    def load(self, fallback_currency: str) -> StoredSettings:
        """
        Read the settings document.

        A missing or unreadable rate table yields rate_table=None; the
        caller falls back to the built-in default table.

        Raises:
            CorruptDataError: If the document itself cannot be parsed
        """
        raw = self._store.get(self._key)
        if raw is None:
            return StoredSettings(default_currency=fallback_currency)

        state = _unwrap(self._key, raw)
        currency = state.get("defaultCurrency") or fallback_currency

        table = None
        rates = state.get("exchangeRates")
        if isinstance(rates, dict):
            try:
                table = RateTable.from_storage_dict(rates)
            except (KeyError, ValueError, ArithmeticError):
                table = None

        return StoredSettings(default_currency=str(currency).upper(), rate_table=table)

    def save(self, default_currency: str, rate_table: RateTable) -> None:
        state = {
            "defaultCurrency": default_currency,
            "exchangeRates": rate_table.to_storage_dict(),
        }
        self._store.set(self._key, _wrap(state))
