"""
Subscription Ledger

The authoritative collection of subscriptions, its derived aggregates, and
the roll-forward maintenance routine.

GUARANTEES:
- Every mutation is followed by a whole-collection write to the repository
- Records are frozen models; the ledger replaces them, never edits them
- remove/update of an unknown id is a silent no-op
- Amounts in different currencies are never summed without conversion
- Maintenance only moves next payment dates forward, and running it twice
  with the same reference date changes nothing the second time
"""

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from subtracker.audit import AuditLogger
from subtracker.billing import (
    advance_periods,
    equivalent,
    periods_until,
    roll_forward_to_future,
)
from subtracker.models.rates import RateTable
from subtracker.models.subscription import (
    Granularity,
    ScheduledPayment,
    SortKey,
    Subscription,
)
from subtracker.money import convert
from subtracker.services.storage import StorageError, SubscriptionRepository


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class DuplicateSubscriptionError(LedgerError):
    """A subscription with the same id is already in the ledger."""
    pass


class MixedCurrencyError(LedgerError):
    """An aggregate over several currencies was requested without a target currency."""
    pass


class SubscriptionLedger:
    """
    In-process store of subscriptions.

    Construct once per process and inject. Pass a repository to persist
    after each mutation; without one the ledger is memory-only.
    """

    def __init__(
        self,
        subscriptions: Optional[Iterable[Subscription]] = None,
        repository: Optional[SubscriptionRepository] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._records: dict[str, Subscription] = {}
        for subscription in subscriptions or []:
            self._records[subscription.id] = subscription
        self._repository = repository
        self._audit_logger = audit_logger

    @classmethod
    def restore(
        cls,
        repository: SubscriptionRepository,
        audit_logger: Optional[AuditLogger] = None,
    ) -> 'SubscriptionLedger':
        """Build a ledger from the persisted collection."""
        return cls(repository.load(), repository=repository, audit_logger=audit_logger)

    def _persist(self) -> None:
        if self._repository is None:
            return
        try:
            self._repository.save(list(self._records.values()))
        except StorageError as e:
            # In-memory state stays authoritative; the next mutation rewrites
            # the whole collection
            if self._audit_logger:
                self._audit_logger.log_storage_error("subscriptions", str(e))

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, subscription_id: object) -> bool:
        return subscription_id in self._records

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def add(self, subscription: Subscription) -> Subscription:
        """
        Append a subscription.

        Raises:
            DuplicateSubscriptionError: If the id is already present
        """
        if subscription.id in self._records:
            raise DuplicateSubscriptionError(f"Subscription {subscription.id} already exists")
        self._records[subscription.id] = subscription
        self._persist()
        if self._audit_logger:
            self._audit_logger.log_subscription_added(subscription.id, subscription.name)
        return subscription

    def remove(self, subscription_id: str) -> bool:
        """Delete by id. Returns False (and does nothing) if the id is unknown."""
        if subscription_id not in self._records:
            return False
        del self._records[subscription_id]
        self._persist()
        if self._audit_logger:
            self._audit_logger.log_subscription_removed(subscription_id)
        return True

    def update(self, subscription_id: str, **fields) -> Optional[Subscription]:
        """
        Merge fields into an existing record.

        Returns the new record, or None if the id is unknown. A merge that
        changes nothing returns the existing record without writing.

        Raises:
            ValueError: If the merged record breaks an invariant, `id` is
                among the fields, or a field name is unknown
        """
        existing = self._records.get(subscription_id)
        if existing is None:
            return None
        if "id" in fields:
            raise ValueError("Subscription id cannot be changed")
        unknown = sorted(set(fields) - set(Subscription.model_fields))
        if unknown:
            raise ValueError(f"Unknown subscription fields: {', '.join(unknown)}")

        merged = Subscription.model_validate({**existing.model_dump(), **fields})
        if merged == existing:
            return existing
        self._records[subscription_id] = merged
        self._persist()
        if self._audit_logger:
            self._audit_logger.log_subscription_updated(subscription_id, sorted(fields))
        return merged

    def clear(self) -> int:
        """
        Remove every record. Irreversible; the UI must confirm first.

        Returns the number of records removed.
        """
        removed = len(self._records)
        self._records.clear()
        self._persist()
        if self._audit_logger:
            self._audit_logger.log_ledger_cleared(removed)
        return removed

    def roll_forward_expired(self, reference_date: date) -> dict[str, tuple[date, date]]:
        """
        Move lapsed next payment dates to their next occurrence.

        Every record with next_payment_date <= reference_date is advanced by
        whole billing periods to the first date on or after the reference.
        Records already in the future are untouched.

        Returns:
            {subscription_id: (old_date, new_date)} for records that moved
        """
        changes: dict[str, tuple[date, date]] = {}
        for subscription_id, subscription in list(self._records.items()):
            old_date = subscription.next_payment_date
            if old_date > reference_date:
                continue
            new_date = roll_forward_to_future(old_date, subscription.billing_cycle, reference_date)
            if new_date != old_date:
                self._records[subscription_id] = subscription.model_copy(
                    update={"next_payment_date": new_date}
                )
                changes[subscription_id] = (old_date, new_date)

        if changes:
            self._persist()
        if self._audit_logger:
            self._audit_logger.log_rolled_forward(reference_date, changes)
        return changes

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get(self, subscription_id: str) -> Optional[Subscription]:
        return self._records.get(subscription_id)

    def all(self) -> list[Subscription]:
        """Records in insertion order."""
        return list(self._records.values())

    def list_sorted(
        self,
        sort_by: SortKey = SortKey.DATE,
        reverse: bool = False,
        currency: Optional[str] = None,
        table: Optional[RateTable] = None,
    ) -> list[Subscription]:
        """
        Records ordered by name (case-insensitive), next payment date, or price.

        Price ordering compares native prices, or prices converted to
        `currency` when both `currency` and `table` are given. Ties keep
        insertion order.
        """
        sort_by = SortKey(sort_by)
        if sort_by == SortKey.NAME:
            def key(sub):
                return sub.name.casefold()
        elif sort_by == SortKey.PRICE:
            if currency is not None and table is not None:
                def key(sub):
                    return convert(sub.price, sub.currency, currency, table)
            else:
                def key(sub):
                    return sub.price
        else:
            def key(sub):
                return sub.next_payment_date
        return sorted(self._records.values(), key=key, reverse=reverse)

    # -------------------------------------------------------------------------
    # Aggregates
    # -------------------------------------------------------------------------

    def _amount_in(
        self,
        subscription: Subscription,
        amount: Decimal,
        currency: Optional[str],
        table: Optional[RateTable],
    ) -> Decimal:
        if currency is None:
            return amount
        return convert(amount, subscription.currency, currency, table)

    def _require_table(self, currency: Optional[str], table: Optional[RateTable]) -> None:
        if currency is not None and table is None:
            raise ValueError("A rate table is required to convert to a target currency")

    def total_at(
        self,
        granularity: Granularity = Granularity.MONTHLY,
        currency: Optional[str] = None,
        table: Optional[RateTable] = None,
    ) -> Decimal:
        """
        Total spend normalized to a time basis.

        With `currency` (and `table`) every record is converted before
        summing. Without it the ledger must hold a single currency.

        Raises:
            MixedCurrencyError: If no target currency is given and the
                records use more than one currency
        """
        self._require_table(currency, table)
        if currency is None:
            currencies = {sub.currency for sub in self._records.values()}
            if len(currencies) > 1:
                codes = ", ".join(sorted(c.value for c in currencies))
                raise MixedCurrencyError(
                    f"Cannot total subscriptions in {codes} without a target currency"
                )

        total = Decimal("0")
        for sub in self._records.values():
            amount = equivalent(sub.price, sub.billing_cycle, granularity)
            total += self._amount_in(sub, amount, currency, table)
        return total

    def group_by_category(
        self,
        currency: Optional[str] = None,
        table: Optional[RateTable] = None,
    ) -> dict[str, Decimal]:
        """
        Sum of per-period prices per category.

        Without `currency` the native prices are summed as-is, whatever
        currency they are in. This matches the breakdown the app has always
        shown, but mixes currencies; pass `currency` and `table` to convert
        first. Categories appear in order of first occurrence.
        """
        self._require_table(currency, table)
        grouped: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        for sub in self._records.values():
            grouped[sub.category] += self._amount_in(sub, sub.price, currency, table)
        return dict(grouped)

    def count_active(self, reference_date: date) -> int:
        """Records whose next payment is after the reference date."""
        return sum(1 for sub in self._records.values() if sub.next_payment_date > reference_date)

    def count_expired(self, reference_date: date) -> int:
        """Records whose next payment is on or before the reference date."""
        return sum(1 for sub in self._records.values() if sub.next_payment_date <= reference_date)

    def payment_schedule(self, start: date, end: date) -> list[ScheduledPayment]:
        """
        Every charge between `start` and `end` (inclusive), in date order.

        Charges are generated forward from each record's next payment date
        by whole billing periods; dates before it are never produced.
        Generation stops at the last charge that fits in the calendar.
        """
        if end < start:
            return []
        payments: list[ScheduledPayment] = []
        for sub in self._records.values():
            payments.extend(self._charges_between(sub, start, end))
        payments.sort(key=lambda p: (p.payment_date, p.name.casefold()))
        return payments

    def _charges_between(self, sub: Subscription, start: date, end: date) -> list[ScheduledPayment]:
        charges: list[ScheduledPayment] = []
        try:
            periods = periods_until(sub.next_payment_date, sub.billing_cycle, start)
            charge = advance_periods(sub.next_payment_date, sub.billing_cycle, periods)
            while charge <= end:
                charges.append(ScheduledPayment(
                    payment_date=charge,
                    subscription_id=sub.id,
                    name=sub.name,
                    amount=sub.price,
                    currency=sub.currency,
                ))
                periods += 1
                charge = advance_periods(sub.next_payment_date, sub.billing_cycle, periods)
        except OverflowError:
            # The next charge would fall after date.max
            pass
        return charges

    def upcoming_payments(self, reference_date: date, days: int) -> list[ScheduledPayment]:
        """Charges from the reference date through `days` days later."""
        try:
            end = reference_date + timedelta(days=days)
        except OverflowError:
            end = date.max
        return self.payment_schedule(reference_date, end)
