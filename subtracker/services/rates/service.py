"""
Rate Table Service

Owns the current RateTable and the refresh policy:

- A refresh is needed only when the table's effective date differs from
  today. Otherwise refresh() returns the table unchanged without touching
  the network. This is an at-most-once-per-day throttle, not a backoff.
- A needed refresh makes exactly one fetch. On success the new table
  replaces the old one. On ANY failure the previous table is kept and the
  outcome is reported as unsuccessful so the caller can warn that rates may
  be stale.
- Only one fetch is in flight at a time. A second caller arriving while a
  fetch is pending awaits that same fetch.
"""

import asyncio
from datetime import date
from typing import Callable, Optional, Protocol

from subtracker.audit import AuditLogger
from subtracker.models.rates import RateTable, default_rate_table


class RateSource(Protocol):
    """Anything that can produce a fresh RateTable (blocking call)."""

    def fetch_table(self) -> RateTable:
        ...


def needs_refresh(table: RateTable, today: date) -> bool:
    """True iff the table's effective date is not today."""
    return table.last_updated != today


def stale_rates_warning(table: RateTable) -> str:
    """Message shown to the user after a failed refresh."""
    return (
        "Exchange rates may be out of date "
        f"(last updated {table.last_updated.isoformat()})."
    )


class RateTableService:
    """
    Process-wide holder of the exchange rate table.

    Construct once and inject wherever conversions are needed.
    """

    def __init__(
        self,
        source: RateSource,
        table: Optional[RateTable] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], date] = date.today,
    ):
        self._source = source
        self._table = table or default_rate_table()
        self._audit_logger = audit_logger
        self._clock = clock
        self._pending: Optional[asyncio.Future] = None
        self._last_error: Optional[str] = None

    @property
    def table(self) -> RateTable:
        return self._table

    @property
    def last_error(self) -> Optional[str]:
        """Error of the most recent failed fetch, cleared by a successful one."""
        return self._last_error

    @property
    def is_refreshing(self) -> bool:
        return self._pending is not None

    def needs_refresh(self, today: Optional[date] = None) -> bool:
        return needs_refresh(self._table, today or self._clock())

    def stale_warning(self) -> Optional[str]:
        """
        Warning text if the last fetch failed and the kept table is not
        from today, else None.
        """
        if self._last_error is None or not self.needs_refresh():
            return None
        return stale_rates_warning(self._table)

    async def refresh(
        self,
        force: bool = False,
        today: Optional[date] = None,
    ) -> tuple[RateTable, bool]:
        """
        Refresh the table if needed.

        Args:
            force: Fetch even if the table is already dated today
                   ("refresh rates now")
            today: Reference day, defaults to the service clock

        Returns:
            (table, success). On failure `table` is the previous table.
        """
        if not force and not self.needs_refresh(today):
            if self._audit_logger:
                self._audit_logger.log_rates_refresh_skipped(self._table.last_updated)
            return self._table, True

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._fetch(force))
            self._pending.add_done_callback(self._clear_pending)
        return await self._pending

    def _clear_pending(self, future: asyncio.Future) -> None:
        if self._pending is future:
            self._pending = None

    async def _fetch(self, forced: bool) -> tuple[RateTable, bool]:
        previous = self._table
        try:
            table = await asyncio.to_thread(self._source.fetch_table)
        except Exception as e:
            # Any failure keeps the previous table; the app stays usable
            self._last_error = str(e) or e.__class__.__name__
            if self._audit_logger:
                self._audit_logger.log_rates_fetch_failed(self._last_error, previous.last_updated)
            return previous, False

        self._table = table
        self._last_error = None
        if self._audit_logger:
            self._audit_logger.log_rates_refreshed(table.last_updated, forced)
        return table, True
