"""
Tests for the subscription ledger: mutations, aggregates, roll-forward,
and the payment calendar.
"""

import json
import pytest
from datetime import date, timedelta
from decimal import Decimal

from subtracker.ledger import (
    DuplicateSubscriptionError,
    MixedCurrencyError,
    SubscriptionLedger,
)
from subtracker.models.rates import default_rate_table
from subtracker.models.subscription import BillingCycle, Currency, Granularity, SortKey
from subtracker.services.storage import StorageError, SubscriptionRepository

from conftest import TODAY, make_subscription


KEY = "subscription-storage"


@pytest.fixture
def repository(store, audit_logger):
    return SubscriptionRepository(store, KEY, audit_logger=audit_logger)


@pytest.fixture
def ledger(repository, audit_logger):
    return SubscriptionLedger(repository=repository, audit_logger=audit_logger)


class FailingRepository:
    def save(self, subscriptions):
        raise StorageError("disk full")


class TestMutations:
    """Tests for add / remove / update / clear."""

    def test_add_and_get(self, ledger):
        sub = ledger.add(make_subscription())
        assert ledger.get(sub.id) == sub
        assert sub.id in ledger
        assert len(ledger) == 1

    def test_duplicate_id_rejected(self, ledger):
        sub = ledger.add(make_subscription(id="abc"))
        with pytest.raises(DuplicateSubscriptionError):
            ledger.add(make_subscription(id=sub.id, name="Other"))
        assert len(ledger) == 1

    def test_all_keeps_insertion_order(self, ledger):
        names = ["Netflix", "Gym", "Adobe"]
        for name in names:
            ledger.add(make_subscription(name=name))
        assert [sub.name for sub in ledger.all()] == names

    def test_remove(self, ledger):
        sub = ledger.add(make_subscription())
        assert ledger.remove(sub.id) is True
        assert ledger.get(sub.id) is None

    def test_remove_unknown_id_is_noop(self, ledger, store):
        """Test that removing an unknown id changes nothing and writes nothing."""
        ledger.add(make_subscription())
        before = store.get(KEY)
        assert ledger.remove("missing") is False
        assert len(ledger) == 1
        assert store.get(KEY) == before

    def test_update(self, ledger):
        """Test that update replaces the record and keeps its id."""
        sub = ledger.add(make_subscription())
        updated = ledger.update(sub.id, price=Decimal("17.99"), category="Video")
        assert updated.id == sub.id
        assert updated.price == Decimal("17.99")
        assert updated.category == "Video"
        assert ledger.get(sub.id) == updated
        assert sub.price == Decimal("15.99")

    def test_update_unknown_id_is_noop(self, ledger):
        assert ledger.update("missing", price=Decimal("1")) is None
        assert len(ledger) == 0

    def test_update_cannot_change_id(self, ledger):
        sub = ledger.add(make_subscription())
        with pytest.raises(ValueError, match="cannot be changed"):
            ledger.update(sub.id, id="other")

    def test_update_rejects_unknown_fields(self, ledger, store, audit_logger):
        """Test that a misspelled field is an error, not a silent no-op write."""
        sub = ledger.add(make_subscription(id="a"))
        before = store.get(KEY)
        with pytest.raises(ValueError, match="Unknown subscription fields: nmae"):
            ledger.update(sub.id, nmae="Typo")
        assert ledger.get(sub.id).name == "Netflix"
        assert store.get(KEY) == before
        assert "subscription_updated" not in audit_logger.event_types()

    def test_update_without_change_writes_nothing(self, ledger, store, audit_logger):
        sub = ledger.add(make_subscription())
        before = store.get(KEY)
        assert ledger.update(sub.id, name=sub.name) is sub
        assert store.get(KEY) == before
        assert "subscription_updated" not in audit_logger.event_types()

    def test_update_rejects_invalid_values(self, ledger):
        """Test that an update breaking an invariant leaves the record as it was."""
        sub = ledger.add(make_subscription())
        with pytest.raises(ValueError):
            ledger.update(sub.id, price=Decimal("-1"))
        assert ledger.get(sub.id) == sub

    def test_clear(self, ledger, repository, audit_logger):
        ledger.add(make_subscription(name="A12"))
        ledger.add(make_subscription(name="B12"))
        assert ledger.clear() == 2
        assert len(ledger) == 0
        assert repository.load() == []
        assert "ledger_cleared" in audit_logger.event_types()

    def test_storage_failure_is_not_fatal(self, audit_logger):
        """Test that a failed write is logged and the in-memory state kept."""
        ledger = SubscriptionLedger(repository=FailingRepository(), audit_logger=audit_logger)
        sub = ledger.add(make_subscription())
        assert ledger.get(sub.id) == sub
        assert "storage_error" in audit_logger.event_types()


class TestPersistence:
    """Tests for writing the collection after every mutation."""

    def test_every_mutation_is_persisted(self, ledger, repository):
        sub = ledger.add(make_subscription())
        assert repository.load() == [sub]
        updated = ledger.update(sub.id, name="Netflix Premium")
        assert repository.load() == [updated]
        ledger.remove(sub.id)
        assert repository.load() == []

    def test_restore(self, ledger, repository):
        """Test that a new ledger restores the same records."""
        subs = [ledger.add(make_subscription(name=n)) for n in ("Netflix", "Spotify")]
        restored = SubscriptionLedger.restore(repository)
        assert restored.all() == subs

    def test_document_written_as_envelope(self, ledger, store):
        ledger.add(make_subscription())
        document = json.loads(store.get(KEY))
        assert set(document) == {"state", "version"}
        assert len(document["state"]["subscriptions"]) == 1

    def test_memory_only_ledger(self):
        ledger = SubscriptionLedger()
        ledger.add(make_subscription())
        assert len(ledger) == 1


class TestTotals:
    """Tests for totals normalized to a time basis."""

    def test_empty_ledger(self):
        ledger = SubscriptionLedger()
        for granularity in Granularity:
            assert ledger.total_at(granularity) == Decimal("0")
        assert ledger.count_active(TODAY) == 0
        assert ledger.count_expired(TODAY) == 0

    def test_single_currency_totals(self):
        """Test native sums for a ledger priced in one currency."""
        ledger = SubscriptionLedger([
            make_subscription(price="15.99", billing_cycle=BillingCycle.MONTHLY),
            make_subscription(name="Gym", price="10", billing_cycle=BillingCycle.WEEKLY),
        ])
        assert ledger.total_at(Granularity.MONTHLY) == Decimal("55.99")
        assert ledger.total_at(Granularity.YEARLY) == Decimal("711.88")

    def test_mixed_currencies_require_target(self):
        """Test that different currencies are never summed unconverted."""
        ledger = SubscriptionLedger([
            make_subscription(currency=Currency.USD),
            make_subscription(name="Gym", currency=Currency.PLN),
        ])
        with pytest.raises(MixedCurrencyError, match="PLN, USD"):
            ledger.total_at(Granularity.MONTHLY)

    def test_converted_total(self):
        """Test conversion of every record before summing."""
        ledger = SubscriptionLedger([
            make_subscription(price="10", currency=Currency.USD),
            make_subscription(name="Gym", price="10", currency=Currency.EUR),
        ])
        total = ledger.total_at(Granularity.MONTHLY, currency="PLN", table=default_rate_table())
        assert total == Decimal("78.2")

    def test_target_currency_needs_table(self):
        ledger = SubscriptionLedger([make_subscription()])
        with pytest.raises(ValueError, match="rate table is required"):
            ledger.total_at(Granularity.MONTHLY, currency="PLN")


class TestGroupByCategory:
    """Tests for the per-category breakdown."""

    def test_native_sums(self):
        """Test that per-period prices are summed per category as-is."""
        ledger = SubscriptionLedger([
            make_subscription(name="Netflix", price="15.99", category="Video"),
            make_subscription(name="Gym", price="30", category="Health",
                              currency=Currency.PLN, billing_cycle=BillingCycle.WEEKLY),
            make_subscription(name="HBO", price="4.01", category="Video"),
        ])
        assert ledger.group_by_category() == {
            "Video": Decimal("20.00"),
            "Health": Decimal("30"),
        }
        assert list(ledger.group_by_category()) == ["Video", "Health"]

    def test_converted_sums(self):
        ledger = SubscriptionLedger([
            make_subscription(name="Netflix", price="10", category="Video"),
            make_subscription(name="Canal", price="14", category="Video",
                              currency=Currency.PLN),
        ])
        grouped = ledger.group_by_category(currency="PLN", table=default_rate_table())
        assert grouped == {"Video": Decimal("50")}


class TestCounts:
    """Tests for active and expired counts."""

    def test_boundary_counts_as_expired(self):
        """Test that a payment due on the reference date is expired, not active."""
        ledger = SubscriptionLedger([
            make_subscription(name="Past", next_payment_date=TODAY - timedelta(days=1)),
            make_subscription(name="Due", next_payment_date=TODAY),
            make_subscription(name="Future", next_payment_date=TODAY + timedelta(days=1)),
        ])
        assert ledger.count_active(TODAY) == 1
        assert ledger.count_expired(TODAY) == 2


class TestRollForward:
    """Tests for moving lapsed payment dates forward."""

    def test_lapsed_record_is_rolled(self, ledger, repository, audit_logger):
        sub = ledger.add(make_subscription(next_payment_date=TODAY - timedelta(days=40)))
        changes = ledger.roll_forward_expired(TODAY)

        assert changes == {sub.id: (date(2024, 5, 6), date(2024, 7, 6))}
        assert ledger.get(sub.id).next_payment_date == date(2024, 7, 6)
        assert repository.load()[0].next_payment_date == date(2024, 7, 6)
        assert "subscriptions_rolled_forward" in audit_logger.event_types()

    def test_future_and_due_records_untouched(self, ledger):
        """Test that only dates before the reference move."""
        future = ledger.add(make_subscription(name="Future", next_payment_date=date(2024, 8, 1)))
        due = ledger.add(make_subscription(name="Due", next_payment_date=TODAY))
        assert ledger.roll_forward_expired(TODAY) == {}
        assert ledger.get(future.id) == future
        assert ledger.get(due.id) == due

    def test_idempotent(self, ledger):
        """Test that a second pass with the same date changes nothing."""
        ledger.add(make_subscription(name="Weekly", billing_cycle=BillingCycle.WEEKLY,
                                     next_payment_date=date(2024, 1, 3)))
        ledger.add(make_subscription(name="Yearly", billing_cycle=BillingCycle.YEARLY,
                                     next_payment_date=date(2021, 2, 28)))
        ledger.roll_forward_expired(TODAY)
        snapshot = ledger.all()

        assert ledger.roll_forward_expired(TODAY) == {}
        assert ledger.all() == snapshot

    def test_never_moves_backward(self, ledger):
        ledger.add(make_subscription(next_payment_date=date(2023, 11, 30)))
        ledger.add(make_subscription(name="Other", next_payment_date=date(2025, 1, 1)))
        before = {sub.id: sub.next_payment_date for sub in ledger.all()}
        ledger.roll_forward_expired(TODAY)
        for sub in ledger.all():
            assert sub.next_payment_date >= before[sub.id]
            assert sub.next_payment_date >= TODAY

    def test_nothing_to_roll_writes_nothing(self, ledger, store):
        ledger.add(make_subscription(next_payment_date=date(2024, 8, 1)))
        before = store.get(KEY)
        ledger.roll_forward_expired(TODAY)
        assert store.get(KEY) == before


class TestSortedListing:
    """Tests for the sorted subscription list."""

    @pytest.fixture
    def populated(self):
        return SubscriptionLedger([
            make_subscription(name="netflix", price="15.99", currency=Currency.USD,
                              next_payment_date=date(2024, 7, 3)),
            make_subscription(name="Adobe", price="60", currency=Currency.PLN,
                              next_payment_date=date(2024, 7, 1)),
            make_subscription(name="Gym", price="20", currency=Currency.EUR,
                              next_payment_date=date(2024, 7, 2)),
        ])

    def test_by_name_case_insensitive(self, populated):
        names = [sub.name for sub in populated.list_sorted(SortKey.NAME)]
        assert names == ["Adobe", "Gym", "netflix"]

    def test_by_date(self, populated):
        names = [sub.name for sub in populated.list_sorted(SortKey.DATE)]
        assert names == ["Adobe", "Gym", "netflix"]

    def test_by_native_price_descending(self, populated):
        names = [sub.name for sub in populated.list_sorted("price", reverse=True)]
        assert names == ["Adobe", "Gym", "netflix"]

    def test_by_converted_price(self, populated):
        """Test that price ordering can compare in one currency."""
        # 15.99 USD = 57.56 PLN, 20 EUR = 84.40 PLN, 60 PLN
        listed = populated.list_sorted(
            SortKey.PRICE, currency="PLN", table=default_rate_table(),
        )
        assert [sub.name for sub in listed] == ["netflix", "Adobe", "Gym"]


class TestPaymentSchedule:
    """Tests for the payment calendar."""

    def test_monthly_charges_clamped_from_anchor(self):
        """Test month-end charges across a leap February."""
        ledger = SubscriptionLedger([
            make_subscription(next_payment_date=date(2024, 1, 31)),
        ])
        dates = [p.payment_date for p in ledger.payment_schedule(date(2024, 1, 1), date(2024, 4, 30))]
        assert dates == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)]

    def test_weekly_charges_in_window(self):
        """Test that the window may start after the next payment date."""
        ledger = SubscriptionLedger([
            make_subscription(billing_cycle=BillingCycle.WEEKLY,
                              next_payment_date=date(2024, 1, 3)),
        ])
        dates = [p.payment_date for p in ledger.payment_schedule(date(2024, 1, 10), date(2024, 1, 24))]
        assert dates == [date(2024, 1, 10), date(2024, 1, 17), date(2024, 1, 24)]

    def test_no_charges_before_next_payment_date(self):
        ledger = SubscriptionLedger([make_subscription(next_payment_date=date(2024, 7, 1))])
        schedule = ledger.payment_schedule(date(2024, 6, 1), date(2024, 7, 31))
        assert [p.payment_date for p in schedule] == [date(2024, 7, 1)]

    def test_ordered_by_date_then_name(self):
        ledger = SubscriptionLedger([
            make_subscription(name="Zoom", next_payment_date=date(2024, 7, 1)),
            make_subscription(name="Adobe", next_payment_date=date(2024, 7, 1)),
            make_subscription(name="Gym", next_payment_date=date(2024, 6, 20)),
        ])
        schedule = ledger.payment_schedule(date(2024, 6, 15), date(2024, 7, 5))
        assert [p.name for p in schedule] == ["Gym", "Adobe", "Zoom"]
        assert schedule[0].amount == Decimal("15.99")
        assert schedule[0].currency == Currency.USD

    def test_empty_range(self):
        ledger = SubscriptionLedger([make_subscription()])
        assert ledger.payment_schedule(date(2024, 7, 5), date(2024, 7, 1)) == []

    def test_window_ending_at_calendar_limit(self):
        """Test that generation stops at the last charge before date.max."""
        ledger = SubscriptionLedger([
            make_subscription(name="Monthly", next_payment_date=date(9999, 11, 15)),
            make_subscription(name="Weekly", billing_cycle=BillingCycle.WEEKLY,
                              next_payment_date=date(9999, 12, 20)),
            make_subscription(name="Yearly", billing_cycle=BillingCycle.YEARLY,
                              next_payment_date=date(9999, 1, 1)),
        ])
        schedule = ledger.payment_schedule(date(9999, 1, 1), date.max)
        assert [(p.name, p.payment_date) for p in schedule] == [
            ("Yearly", date(9999, 1, 1)),
            ("Monthly", date(9999, 11, 15)),
            ("Monthly", date(9999, 12, 15)),
            ("Weekly", date(9999, 12, 20)),
            ("Weekly", date(9999, 12, 27)),
        ]

    def test_window_starting_after_last_possible_charge(self):
        ledger = SubscriptionLedger([make_subscription(next_payment_date=date(9999, 12, 15))])
        assert ledger.payment_schedule(date(9999, 12, 20), date.max) == []

    def test_upcoming_payments_with_huge_window(self):
        """Test that a window past the end of the calendar is clamped."""
        ledger = SubscriptionLedger([make_subscription(next_payment_date=TODAY)])
        upcoming = ledger.upcoming_payments(TODAY, 10 ** 9)
        assert upcoming[0].payment_date == TODAY
        assert upcoming[-1].payment_date.year == 9999

    def test_upcoming_payments(self):
        ledger = SubscriptionLedger([
            make_subscription(name="Soon", next_payment_date=TODAY + timedelta(days=3)),
            make_subscription(name="Later", next_payment_date=TODAY + timedelta(days=20)),
        ])
        assert [p.name for p in ledger.upcoming_payments(TODAY, 7)] == ["Soon"]
