"""
Core Data Models for Subscription Tracker

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce the record invariants at runtime (positive price, known currency,
   supported billing cycle)
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: Subscriptions are frozen. The ledger owns every record and
replaces it on change, so no caller can hold a reference that mutates
ledger state behind its back.

Serialized field names are camelCase (billingCycle, nextPaymentDate) so
documents written by the mobile app restore unchanged.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)
from pydantic.alias_generators import to_camel


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Currency(str, Enum):
    """
    Currencies a subscription can be priced in.

    PLN is the base currency of the rate table.
    """
    PLN = "PLN"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"


class DisplayCurrency(str, Enum):
    """
    Currencies the user may pick for displaying totals.

    Codes missing from the rate table convert with rate 1.
    """
    PLN = "PLN"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    JPY = "JPY"
    AUD = "AUD"
    CAD = "CAD"
    CHF = "CHF"


class BillingCycle(str, Enum):
    """
    Supported recurrence periods.

    DESIGN DECISION: This is a closed set. Older app versions also wrote
    'daily' and 'quarterly'; those are only understood by the storage
    layer, which normalizes or rejects them before a model is built.
    """
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


LEGACY_BILLING_CYCLES = frozenset({"daily", "quarterly"})


class Granularity(str, Enum):
    """Time basis for aggregated spend."""
    DAILY = "daily"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class SortKey(str, Enum):
    """Orderings offered by the subscription list."""
    NAME = "name"
    DATE = "date"
    PRICE = "price"


DEFAULT_CATEGORY = "Other"


def generate_subscription_id() -> str:
    """Create a new opaque subscription identifier."""
    return uuid4().hex


def coerce_calendar_date(value):
    """
    Truncate datetimes (or ISO datetime strings) to their calendar date.

    The mobile app stored JavaScript Date objects, serialized in UTC as
    '2024-05-05T22:00:00.000Z', and read them back on the device's local
    calendar. Aware values are therefore converted to local time before
    truncating: in Warsaw the example above is May 6, not May 5.
    """
    if isinstance(value, str) and "T" in value:
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date()
    return value


# =============================================================================
# SUBSCRIPTION
# =============================================================================

class Subscription(BaseModel):
    """
    A recurring payment owned by the ledger.

    Price is expressed in `currency` units per one `billing_cycle` period.
    """
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str = Field(
        default_factory=generate_subscription_id,
        min_length=1,
        description="Opaque unique identifier, never changes"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Display name"
    )
    price: Decimal = Field(
        ...,
        gt=0,
        description="Amount charged per billing period"
    )
    currency: Currency = Field(
        ...,
        description="Currency the price is expressed in"
    )
    billing_cycle: BillingCycle = Field(
        ...,
        description="Recurrence period"
    )
    category: str = Field(
        default=DEFAULT_CATEGORY,
        max_length=100,
        description="Free-form grouping label"
    )
    next_payment_date: date = Field(
        ...,
        description="Calendar date of the next charge"
    )

    @field_validator('id', mode='before')
    @classmethod
    def stringify_id(cls, v):
        """Older documents used numeric timestamps as ids."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator('category', mode='before')
    @classmethod
    def default_category(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_CATEGORY
        return v

    @field_validator('billing_cycle', mode='before')
    @classmethod
    def reject_legacy_cycle(cls, v):
        if isinstance(v, str) and v.lower() in LEGACY_BILLING_CYCLES:
            raise ValueError(f"Billing cycle '{v}' is no longer supported")
        return v

    @field_validator('next_payment_date', mode='before')
    @classmethod
    def truncate_time(cls, v):
        return coerce_calendar_date(v)

    @field_serializer('price', when_used='json')
    def serialize_price(self, v: Decimal) -> float:
        return float(v)

    def to_storage_dict(self) -> dict:
        """Convert to the JSON-ready, camelCase shape used in storage."""
        return self.model_dump(mode="json", by_alias=True)


class ScheduledPayment(BaseModel):
    """One future charge of a subscription, as shown in the payment calendar."""
    model_config = ConfigDict(frozen=True)

    payment_date: date
    subscription_id: str
    name: str
    amount: Decimal
    currency: Currency


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'too_short', 'not_positive')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """Outcome of checking one subscription form submission."""

    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    def field_errors(self) -> dict[str, str]:
        """First error message per field, for showing next to form inputs."""
        errors: dict[str, str] = {}
        for issue in self.issues:
            if issue.severity == "error" and issue.field not in errors:
                errors[issue.field] = issue.message
        return errors

    def first_error(self) -> Optional[str]:
        for issue in self.issues:
            if issue.severity == "error":
                return issue.message
        return None
