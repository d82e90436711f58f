"""
Data Models Package

This package contains all Pydantic models used in the Subscription Tracker.
All data flowing through the system must conform to these schemas.
"""

from subtracker.models.subscription import (
    DEFAULT_CATEGORY,
    LEGACY_BILLING_CYCLES,
    BillingCycle,
    Currency,
    DisplayCurrency,
    Granularity,
    ScheduledPayment,
    SortKey,
    Subscription,
    ValidationIssue,
    ValidationResult,
    generate_subscription_id,
)
from subtracker.models.rates import (
    BASE_CURRENCY,
    DEFAULT_RATES,
    RateTable,
    default_rate_table,
)
from subtracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Subscription models
    "DEFAULT_CATEGORY",
    "LEGACY_BILLING_CYCLES",
    "BillingCycle",
    "Currency",
    "DisplayCurrency",
    "Granularity",
    "ScheduledPayment",
    "SortKey",
    "Subscription",
    "ValidationIssue",
    "ValidationResult",
    "generate_subscription_id",
    # Rate models
    "BASE_CURRENCY",
    "DEFAULT_RATES",
    "RateTable",
    "default_rate_table",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
