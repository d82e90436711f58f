"""
Audit Models for Subscription Tracker

Every ledger mutation and every rate refresh attempt is logged.
This provides:
1. Traceability of automatic changes (roll-forward, legacy normalization)
2. Debugging information when a rate fetch fails
3. A record of destructive actions such as clearing all data

DESIGN DECISION: Audit events are append-only log lines. We never
rewrite them.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Ledger mutations
    SUBSCRIPTION_ADDED = "subscription_added"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_REMOVED = "subscription_removed"
    LEDGER_CLEARED = "ledger_cleared"
    SUBSCRIPTIONS_ROLLED_FORWARD = "subscriptions_rolled_forward"

    # Form boundary
    VALIDATION_FAILED = "validation_failed"

    # Exchange rates
    RATES_REFRESHED = "rates_refreshed"
    RATES_REFRESH_SKIPPED = "rates_refresh_skipped"
    RATES_FETCH_FAILED = "rates_fetch_failed"

    # Settings
    DEFAULT_CURRENCY_CHANGED = "default_currency_changed"

    # Stored data
    LEGACY_RECORD_NORMALIZED = "legacy_record_normalized"
    LEGACY_RECORD_REJECTED = "legacy_record_rejected"
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Subscription id the event relates to, if any"
    )
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )
    error_message: Optional[str] = None
    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_id": self.entity_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.subscription_added(sub_id, name)
        event = AuditEventBuilder.rates_fetch_failed(error, last_updated)
    """

    @staticmethod
    def subscription_added(subscription_id: str, name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBSCRIPTION_ADDED,
            entity_id=subscription_id,
            description=f"Subscription added: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def subscription_updated(subscription_id: str, fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBSCRIPTION_UPDATED,
            entity_id=subscription_id,
            description=f"Subscription updated: {', '.join(fields) or 'no fields'}",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def subscription_removed(subscription_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBSCRIPTION_REMOVED,
            entity_id=subscription_id,
            description="Subscription removed",
            is_user_action=True,
        )

    @staticmethod
    def ledger_cleared(removed_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_CLEARED,
            severity=AuditSeverity.WARNING,
            description=f"All subscriptions deleted ({removed_count} records)",
            details={"removed_count": removed_count},
            is_user_action=True,
        )

    @staticmethod
    def subscriptions_rolled_forward(
        reference_date: date,
        changes: dict[str, tuple[date, date]],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBSCRIPTIONS_ROLLED_FORWARD,
            description=f"Rolled forward {len(changes)} lapsed subscriptions",
            details={
                "reference_date": reference_date.isoformat(),
                "changes": {
                    sub_id: [old.isoformat(), new.isoformat()]
                    for sub_id, (old, new) in changes.items()
                },
            },
        )

    @staticmethod
    def validation_failed(issues: list[dict]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            description=f"Subscription form rejected with {len(issues)} issues",
            details={"issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def rates_refreshed(effective_date: date, forced: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATES_REFRESHED,
            description=f"Exchange rates refreshed (effective {effective_date.isoformat()})",
            details={"effective_date": effective_date.isoformat(), "forced": forced},
        )

    @staticmethod
    def rates_refresh_skipped(last_updated: date) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATES_REFRESH_SKIPPED,
            severity=AuditSeverity.DEBUG,
            description="Exchange rates already current",
            details={"last_updated": last_updated.isoformat()},
        )

    @staticmethod
    def rates_fetch_failed(error_message: str, last_updated: date) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATES_FETCH_FAILED,
            severity=AuditSeverity.WARNING,
            description="Exchange rate fetch failed; keeping previous table",
            error_message=error_message,
            details={"last_updated": last_updated.isoformat()},
        )

    @staticmethod
    def default_currency_changed(old: str, new: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEFAULT_CURRENCY_CHANGED,
            description=f"Default currency changed from {old} to {new}",
            details={"old": old, "new": new},
            is_user_action=True,
        )

    @staticmethod
    def legacy_record_normalized(
        subscription_id: str,
        old_cycle: str,
        new_cycle: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEGACY_RECORD_NORMALIZED,
            severity=AuditSeverity.WARNING,
            entity_id=subscription_id,
            description=f"Stored '{old_cycle}' subscription converted to '{new_cycle}'",
            details={"old_cycle": old_cycle, "new_cycle": new_cycle},
        )

    @staticmethod
    def legacy_record_rejected(subscription_id: Optional[str], old_cycle: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEGACY_RECORD_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_id=subscription_id,
            description=f"Stored subscription with unsupported cycle '{old_cycle}' skipped",
            details={"old_cycle": old_cycle},
        )

    @staticmethod
    def storage_error(key: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error for key '{key}'",
            error_message=error_message,
            details={"key": key},
        )
