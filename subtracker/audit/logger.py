"""
Audit Logger

DESIGN DECISION: Every ledger mutation and rate refresh attempt is logged.
This provides:
1. Traceability of automatic changes the user did not make themselves
2. Debugging capability when the rate source misbehaves
3. A record of destructive actions

The audit logger:
- Writes structured JSON lines through structlog
- Gracefully handles failures (doesn't crash the app if logging fails)
"""

import structlog

from subtracker.models.audit import AuditEvent, AuditEventBuilder


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Services receive one instance through their constructor; none of them
    reaches for a module-level logger to record audit events.
    """

    def __init__(self, logger_name: str = "subtracker.audit"):
        self._logger = structlog.get_logger(logger_name)

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event at its severity.

        Returns False if the log write itself failed.
        """
        try:
            log_dict = event.to_log_dict()
            severity = event.severity.value
            if severity == "error":
                self._logger.error("audit_event", **log_dict)
            elif severity == "warning":
                self._logger.warning("audit_event", **log_dict)
            elif severity == "debug":
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
            return True
        except Exception:
            # Logging must never break the ledger or the rate refresh
            return False

    def log_subscription_added(self, subscription_id: str, name: str) -> None:
        self.log(AuditEventBuilder.subscription_added(subscription_id, name))

    def log_subscription_updated(self, subscription_id: str, fields: list[str]) -> None:
        self.log(AuditEventBuilder.subscription_updated(subscription_id, fields))

    def log_subscription_removed(self, subscription_id: str) -> None:
        self.log(AuditEventBuilder.subscription_removed(subscription_id))

    def log_ledger_cleared(self, removed_count: int) -> None:
        self.log(AuditEventBuilder.ledger_cleared(removed_count))

    def log_rolled_forward(self, reference_date, changes) -> None:
        """Log a maintenance pass; silent when nothing moved."""
        if changes:
            self.log(AuditEventBuilder.subscriptions_rolled_forward(reference_date, changes))

    def log_validation_failed(self, issues: list[dict]) -> None:
        self.log(AuditEventBuilder.validation_failed(issues))

    def log_rates_refreshed(self, effective_date, forced: bool = False) -> None:
        self.log(AuditEventBuilder.rates_refreshed(effective_date, forced))

    def log_rates_refresh_skipped(self, last_updated) -> None:
        self.log(AuditEventBuilder.rates_refresh_skipped(last_updated))

    def log_rates_fetch_failed(self, error_message: str, last_updated) -> None:
        self.log(AuditEventBuilder.rates_fetch_failed(error_message, last_updated))

    def log_default_currency_changed(self, old: str, new: str) -> None:
        self.log(AuditEventBuilder.default_currency_changed(old, new))

    def log_legacy_normalized(self, subscription_id: str, old_cycle: str, new_cycle: str) -> None:
        self.log(AuditEventBuilder.legacy_record_normalized(subscription_id, old_cycle, new_cycle))

    def log_legacy_rejected(self, subscription_id, old_cycle: str) -> None:
        self.log(AuditEventBuilder.legacy_record_rejected(subscription_id, old_cycle))

    def log_storage_error(self, key: str, error_message: str) -> None:
        self.log(AuditEventBuilder.storage_error(key, error_message))
