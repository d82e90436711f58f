"""
Shared fixtures for the Subscription Tracker tests.

No test touches the network or the real data directory: the rate source
is a stub and storage is either InMemoryStore or a tmp_path directory.
"""

import os
import time
from datetime import date
from decimal import Decimal

import pytest

from subtracker.audit import AuditLogger
from subtracker.config import AppSettings
from subtracker.models.audit import AuditEvent
from subtracker.models.rates import RateTable
from subtracker.models.subscription import BillingCycle, Currency, Subscription
from subtracker.services.storage import InMemoryStore


TODAY = date(2024, 6, 15)


class RecordingAuditLogger(AuditLogger):
    """AuditLogger that keeps every event for assertions."""

    def __init__(self):
        super().__init__("subtracker.tests")
        self.events: list[AuditEvent] = []

    def log(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    def event_types(self) -> list[str]:
        return [event.event_type.value for event in self.events]


class StubRateSource:
    """Rate source returning a fixed table, or raising, and counting calls."""

    def __init__(self, table: RateTable = None, error: Exception = None):
        self.table = table
        self.error = error
        self.calls = 0

    def fetch_table(self) -> RateTable:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.table


def make_subscription(
    name: str = "Netflix",
    price: str = "15.99",
    currency: Currency = Currency.USD,
    billing_cycle: BillingCycle = BillingCycle.MONTHLY,
    next_payment_date: date = date(2024, 7, 1),
    category: str = "Entertainment",
    **kwargs,
) -> Subscription:
    return Subscription(
        name=name,
        price=Decimal(price),
        currency=currency,
        billing_cycle=billing_cycle,
        next_payment_date=next_payment_date,
        category=category,
        **kwargs,
    )


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def audit_logger() -> RecordingAuditLogger:
    return RecordingAuditLogger()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings(
        default_currency="PLN",
        default_next_payment_days=30,
        min_name_length=3,
        legacy_cycle_policy="normalize",
    )


@pytest.fixture
def fresh_table() -> RateTable:
    """A table as a successful fetch on TODAY would produce it."""
    return RateTable(
        rates={
            "PLN": Decimal("1"),
            "USD": Decimal("4"),
            "EUR": Decimal("4.25"),
            "GBP": Decimal("5"),
        },
        last_updated=TODAY,
    )


@pytest.fixture
def stale_table() -> RateTable:
    return RateTable(
        rates={
            "PLN": Decimal("1"),
            "USD": Decimal("3.6"),
            "EUR": Decimal("4.22"),
            "GBP": Decimal("4.86"),
        },
        last_updated=date(2024, 6, 10),
    )


def _set_timezone(name):
    if name is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = name
    time.tzset()


@pytest.fixture(autouse=True)
def utc_local_time():
    """Run every test with a UTC local clock unless it asks for another zone."""
    if not hasattr(time, "tzset"):
        yield
        return
    previous = os.environ.get("TZ")
    _set_timezone("UTC")
    yield
    _set_timezone(previous)


@pytest.fixture
def warsaw_local_time(utc_local_time):
    """Local clock in Europe/Warsaw (UTC+2 in summer)."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    _set_timezone("Europe/Warsaw")
