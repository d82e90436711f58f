"""
Main Orchestrator for Subscription Tracker

This module ties together all the components and exposes the operations
the presentation layer calls:
1. Subscription management (create / edit / delete / list / clear)
2. Spend views (totals, category breakdown, active/expired counts,
   payment calendar)
3. Exchange rates (startup refresh, "refresh rates now") and the default
   display currency

DESIGN DECISION: There is no global store. create_app_components() builds
one SubscriptionTracker per process and the UI event handlers receive it
explicitly. Persistence is an adapter the ledger and tracker call after
every mutation.

Nothing here is fatal: a corrupt document, an unreachable rate source or
a rejected form all leave the tracker usable with the default rate table
and an empty or restored ledger.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Callable, Optional

from subtracker.audit import AuditLogger
from subtracker.config import Settings, get_settings
from subtracker.ledger import SubscriptionLedger
from subtracker.models.rates import RateTable, default_rate_table
from subtracker.models.subscription import (
    DisplayCurrency,
    Granularity,
    ScheduledPayment,
    SortKey,
    Subscription,
)
from subtracker.money import format_money
from subtracker.services.rates import NBPRateSource, RateSource, RateTableService
from subtracker.services.storage import (
    JsonFileStore,
    KeyValueStoreInterface,
    SettingsRepository,
    StorageError,
    SubscriptionRepository,
)
from subtracker.validation import SubscriptionValidationError, SubscriptionValidator


class ConfirmationRequiredError(Exception):
    """A destructive action was requested without explicit user confirmation."""
    pass


class SubscriptionTracker:
    """
    UI-facing facade over the ledger, the rate service and the settings.

    All monetary views are expressed in the default display currency
    unless a currency is passed explicitly.
    """

    def __init__(
        self,
        ledger: SubscriptionLedger,
        rate_service: RateTableService,
        settings_repository: Optional[SettingsRepository] = None,
        validator: Optional[SubscriptionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        default_currency: str = "PLN",
        convert_category_breakdown: bool = False,
        upcoming_window_days: int = 7,
        clock: Callable[[], date] = date.today,
    ):
        self._ledger = ledger
        self._rates = rate_service
        self._settings_repository = settings_repository
        self._validator = validator or SubscriptionValidator(audit_logger=audit_logger, clock=clock)
        self._audit_logger = audit_logger
        self._default_currency = DisplayCurrency(default_currency.upper()).value
        self._convert_category_breakdown = convert_category_breakdown
        self._upcoming_window_days = upcoming_window_days
        self._clock = clock

    @property
    def ledger(self) -> SubscriptionLedger:
        return self._ledger

    @property
    def rate_table(self) -> RateTable:
        return self._rates.table

    @property
    def default_currency(self) -> str:
        return self._default_currency

    def _save_settings(self) -> None:
        if self._settings_repository is None:
            return
        try:
            self._settings_repository.save(self._default_currency, self._rates.table)
        except StorageError as e:
            # The in-memory state is still correct; the next save retries
            if self._audit_logger:
                self._audit_logger.log_storage_error("settings", str(e))

    # -------------------------------------------------------------------------
    # Startup
    # -------------------------------------------------------------------------

    async def startup(self) -> tuple[bool, Optional[str]]:
        """
        App-start maintenance: roll lapsed subscriptions forward, then
        refresh rates if the table is not from today.

        Returns:
            (rates_ok, warning). warning is the stale-rates message when
            the refresh failed.
        """
        self._ledger.roll_forward_expired(self._clock())
        return await self.refresh_rates()

    # -------------------------------------------------------------------------
    # Subscription management
    # -------------------------------------------------------------------------

    def create_subscription(
        self,
        name: Any = None,
        price: Any = None,
        currency: Any = None,
        billing_cycle: Any = None,
        category: Any = None,
        next_payment_date: Any = None,
    ) -> Subscription:
        """
        Validate form input and add the new subscription.

        Raises:
            SubscriptionValidationError: If the form is invalid; the ledger
                is not touched
        """
        subscription = self._validator.build_subscription(
            name=name,
            price=price,
            currency=currency,
            billing_cycle=billing_cycle,
            category=category,
            next_payment_date=next_payment_date,
        )
        return self._ledger.add(subscription)

    def edit_subscription(self, subscription_id: str, **changes) -> Optional[Subscription]:
        """
        Validate and apply a partial edit.

        Returns the updated record, or None if the id is unknown.

        Raises:
            SubscriptionValidationError: If a change is invalid
        """
        existing = self._ledger.get(subscription_id)
        if existing is None:
            return None
        normalized = self._validator.validate_changes(existing, changes)
        if not normalized:
            return existing
        return self._ledger.update(subscription_id, **normalized)

    def delete_subscription(self, subscription_id: str) -> bool:
        return self._ledger.remove(subscription_id)

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        return self._ledger.get(subscription_id)

    def list_subscriptions(
        self,
        sort_by: SortKey = SortKey.DATE,
        reverse: bool = False,
    ) -> list[Subscription]:
        """List sorted by name, date or price; price compares in the display currency."""
        return self._ledger.list_sorted(
            sort_by=sort_by,
            reverse=reverse,
            currency=self._default_currency,
            table=self._rates.table,
        )

    def clear_all_data(self, confirmed: bool = False) -> int:
        """
        Delete every subscription.

        Raises:
            ConfirmationRequiredError: Unless `confirmed` is True
        """
        if not confirmed:
            raise ConfirmationRequiredError(
                "Deleting all subscriptions cannot be undone; confirm first"
            )
        return self._ledger.clear()

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def total_spend(
        self,
        granularity: Granularity = Granularity.MONTHLY,
        currency: Optional[str] = None,
    ) -> Decimal:
        """Total spend at a granularity, converted to `currency` (default display currency)."""
        return self._ledger.total_at(
            granularity,
            currency=(currency or self._default_currency).upper(),
            table=self._rates.table,
        )

    def category_breakdown(self, currency: Optional[str] = None) -> dict[str, Decimal]:
        """
        Per-category sum of per-period prices.

        Converted to `currency` when one is given or when
        convert_category_breakdown is enabled; native sums otherwise.
        """
        if currency is None and self._convert_category_breakdown:
            currency = self._default_currency
        if currency is None:
            return self._ledger.group_by_category()
        return self._ledger.group_by_category(currency=currency.upper(), table=self._rates.table)

    def active_count(self) -> int:
        return self._ledger.count_active(self._clock())

    def expired_count(self) -> int:
        return self._ledger.count_expired(self._clock())

    def payment_schedule(self, start: date, end: date) -> list[ScheduledPayment]:
        return self._ledger.payment_schedule(start, end)

    def upcoming_payments(self, days: Optional[int] = None) -> list[ScheduledPayment]:
        days = self._upcoming_window_days if days is None else days
        return self._ledger.upcoming_payments(self._clock(), days)

    def format_amount(self, amount: Decimal, currency: Optional[str] = None) -> str:
        return format_money(amount, currency or self._default_currency)

    # -------------------------------------------------------------------------
    # Rates and settings
    # -------------------------------------------------------------------------

    async def refresh_rates(self, force: bool = False) -> tuple[bool, Optional[str]]:
        """
        Refresh the rate table (throttled to once per day unless forced).

        Returns:
            (success, warning). On failure the previous table stays in use
            and warning names its last-updated date, unless that table is
            already from today.
        """
        _, success = await self._rates.refresh(force=force, today=self._clock())
        if not success:
            return False, self._rates.stale_warning()
        self._save_settings()
        return True, None

    async def refresh_rates_now(self) -> tuple[bool, Optional[str]]:
        """The explicit "refresh rates now" action; bypasses the daily throttle."""
        return await self.refresh_rates(force=True)

    def set_default_currency(self, currency: str) -> str:
        """
        Change the display currency.

        Raises:
            ValueError: If the code is not a selectable display currency
        """
        new = DisplayCurrency(str(currency).strip().upper()).value
        old = self._default_currency
        if new != old:
            self._default_currency = new
            self._save_settings()
            if self._audit_logger:
                self._audit_logger.log_default_currency_changed(old, new)
        return new


def create_app_components(
    store: Optional[KeyValueStoreInterface] = None,
    rate_source: Optional[RateSource] = None,
    settings: Optional[Settings] = None,
    clock: Callable[[], date] = date.today,
) -> SubscriptionTracker:
    """
    Factory function to create the tracker and everything it depends on.

    Args:
        store: Key-value store. Defaults to a JsonFileStore in the
               configured data directory.
        rate_source: Remote rate source. Defaults to the NBP client.
        settings: Configuration. Defaults to get_settings().
        clock: Source of "today"; injectable for tests.

    Returns:
        A tracker with the persisted ledger and settings restored.
        Call `await tracker.startup()` afterwards.
    """
    settings = settings or get_settings()
    app_settings = settings.app
    storage_settings = settings.storage

    audit_logger = AuditLogger()
    store = store or JsonFileStore(storage_settings.data_dir)

    subscription_repository = SubscriptionRepository(
        store,
        storage_settings.subscriptions_key,
        audit_logger=audit_logger,
        legacy_cycle_policy=app_settings.legacy_cycle_policy,
    )
    settings_repository = SettingsRepository(store, storage_settings.settings_key)

    try:
        ledger = SubscriptionLedger.restore(subscription_repository, audit_logger=audit_logger)
    except StorageError as e:
        audit_logger.log_storage_error(storage_settings.subscriptions_key, str(e))
        ledger = SubscriptionLedger(repository=subscription_repository, audit_logger=audit_logger)

    default_currency = app_settings.default_currency
    table = None
    try:
        stored = settings_repository.load(default_currency)
        default_currency = stored.default_currency
        table = stored.rate_table
    except StorageError as e:
        audit_logger.log_storage_error(storage_settings.settings_key, str(e))

    try:
        DisplayCurrency(default_currency)
    except ValueError:
        default_currency = app_settings.default_currency

    rate_service = RateTableService(
        rate_source or NBPRateSource(settings.rates),
        table=table or default_rate_table(),
        audit_logger=audit_logger,
        clock=clock,
    )

    validator = SubscriptionValidator(app_settings, audit_logger=audit_logger, clock=clock)

    return SubscriptionTracker(
        ledger=ledger,
        rate_service=rate_service,
        settings_repository=settings_repository,
        validator=validator,
        audit_logger=audit_logger,
        default_currency=default_currency,
        convert_category_breakdown=app_settings.convert_category_breakdown,
        upcoming_window_days=app_settings.upcoming_window_days,
        clock=clock,
    )


__all__ = [
    "ConfirmationRequiredError",
    "SubscriptionTracker",
    "SubscriptionValidationError",
    "create_app_components",
]
