"""
Subscription Form Validation

DESIGN DECISION: Validation happens at the form boundary, before anything
reaches the ledger.

Checks:
- name present and at least `min_name_length` characters
- price is a positive number (a decimal comma is accepted: "12,99")
- currency is one of the supported codes
- billing cycle is present and supported
- next payment date, if given, is a calendar date

A rejected form produces one ValidationIssue per offending field so the
UI can show the message next to the input. A rejected form never mutates
the ledger.

IMPORTANT: Validation never silently fixes input. The only normalizations
are whitespace stripping, the decimal comma, and upper-casing currency
codes.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

from pydantic import ValidationError

from subtracker.audit import AuditLogger
from subtracker.config import AppSettings, get_settings
from subtracker.models.subscription import (
    DEFAULT_CATEGORY,
    LEGACY_BILLING_CYCLES,
    BillingCycle,
    Currency,
    Subscription,
    ValidationIssue,
    ValidationResult,
    coerce_calendar_date,
)


EDITABLE_FIELDS = frozenset({
    "name",
    "price",
    "currency",
    "billing_cycle",
    "category",
    "next_payment_date",
})


class SubscriptionValidationError(ValueError):
    """A subscription form was rejected."""

    def __init__(self, result: ValidationResult):
        self.result = result
        super().__init__(result.first_error() or "Invalid subscription")

    @property
    def field_errors(self) -> dict[str, str]:
        return self.result.field_errors()


def parse_price(value: Any) -> Decimal:
    """
    Parse user-entered price text.

    Raises:
        ValueError: If the value is not a finite number
    """
    if isinstance(value, bool):
        raise ValueError("not a number")
    if isinstance(value, Decimal):
        price = value
    elif isinstance(value, (int, float)):
        price = Decimal(str(value))
    elif isinstance(value, str):
        try:
            price = Decimal(value.strip().replace(",", "."))
        except InvalidOperation as e:
            raise ValueError("not a number") from e
    else:
        raise ValueError("not a number")
    if not price.is_finite():
        raise ValueError("not a finite number")
    return price


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


class SubscriptionValidator:
    """
    Turns raw form input into a valid Subscription or a ValidationResult.
    """

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], date] = date.today,
    ):
        self._settings = settings or get_settings().app
        self._audit_logger = audit_logger
        self._clock = clock

    # -------------------------------------------------------------------------
    # Field checks
    # -------------------------------------------------------------------------

    def _check_name(self, value: Any, issues: list[ValidationIssue]) -> Optional[str]:
        min_length = self._settings.min_name_length
        if value is None or not str(value).strip():
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Name is required",
            ))
            return None
        name = str(value).strip()
        if len(name) < min_length:
            issues.append(ValidationIssue(
                field="name",
                issue_type="too_short",
                message=f"Name must be at least {min_length} characters",
            ))
            return None
        return name

    def _check_price(self, value: Any, issues: list[ValidationIssue]) -> Optional[Decimal]:
        try:
            price = parse_price(value)
        except ValueError:
            price = None
        if price is None or price <= 0:
            issues.append(ValidationIssue(
                field="price",
                issue_type="not_positive",
                message="Price must be a positive number",
            ))
            return None
        return price

    def _check_currency(self, value: Any, issues: list[ValidationIssue]) -> Optional[Currency]:
        value = _enum_value(value)
        if value is None or not str(value).strip():
            issues.append(ValidationIssue(
                field="currency",
                issue_type="missing",
                message="Currency is required",
            ))
            return None
        try:
            return Currency(str(value).strip().upper())
        except ValueError:
            supported = ", ".join(c.value for c in Currency)
            issues.append(ValidationIssue(
                field="currency",
                issue_type="unsupported",
                message=f"Currency must be one of {supported}",
            ))
            return None

    def _check_billing_cycle(
        self,
        value: Any,
        issues: list[ValidationIssue],
    ) -> Optional[BillingCycle]:
        value = _enum_value(value)
        if value is None or not str(value).strip():
            issues.append(ValidationIssue(
                field="billing_cycle",
                issue_type="missing",
                message="Billing cycle is required",
            ))
            return None
        text = str(value).strip().lower()
        if text in LEGACY_BILLING_CYCLES:
            issues.append(ValidationIssue(
                field="billing_cycle",
                issue_type="unsupported",
                message=f"Billing cycle '{text}' is no longer supported",
            ))
            return None
        try:
            return BillingCycle(text)
        except ValueError:
            supported = ", ".join(c.value for c in BillingCycle)
            issues.append(ValidationIssue(
                field="billing_cycle",
                issue_type="unsupported",
                message=f"Billing cycle must be one of {supported}",
            ))
            return None

    def _check_next_payment_date(
        self,
        value: Any,
        issues: list[ValidationIssue],
    ) -> Optional[date]:
        try:
            value = coerce_calendar_date(value)
            if isinstance(value, str):
                value = date.fromisoformat(value.strip())
        except ValueError:
            value = None
        if not isinstance(value, date) or isinstance(value, datetime):
            issues.append(ValidationIssue(
                field="next_payment_date",
                issue_type="invalid_format",
                message="Next payment date must be a calendar date (YYYY-MM-DD)",
            ))
            return None
        return value

    def _check_category(self, value: Any) -> str:
        if value is None or not str(value).strip():
            return DEFAULT_CATEGORY
        return str(value).strip()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def _reject(self, issues: list[ValidationIssue]) -> SubscriptionValidationError:
        result = ValidationResult(issues=issues)
        if self._audit_logger:
            self._audit_logger.log_validation_failed([
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in issues
            ])
        return SubscriptionValidationError(result)

    def _build(self, values: dict) -> Subscription:
        try:
            return Subscription(**values)
        except ValidationError as e:
            issues = [
                ValidationIssue(
                    field=str(error["loc"][0]) if error["loc"] else "subscription",
                    issue_type=error["type"],
                    message=error["msg"],
                )
                for error in e.errors()
            ]
            raise self._reject(issues) from e

    def validate(self, form: dict) -> ValidationResult:
        """Check a form without building anything."""
        issues: list[ValidationIssue] = []
        self._check_name(form.get("name"), issues)
        self._check_price(form.get("price"), issues)
        self._check_currency(form.get("currency"), issues)
        self._check_billing_cycle(form.get("billing_cycle"), issues)
        if form.get("next_payment_date") is not None:
            self._check_next_payment_date(form["next_payment_date"], issues)
        return ValidationResult(issues=issues)

    def build_subscription(
        self,
        name: Any = None,
        price: Any = None,
        currency: Any = None,
        billing_cycle: Any = None,
        category: Any = None,
        next_payment_date: Any = None,
    ) -> Subscription:
        """
        Validate a creation form and build a new Subscription.

        A fresh id is generated. Without an explicit date the next payment
        is `default_next_payment_days` from today.

        Raises:
            SubscriptionValidationError: If any field is invalid
        """
        issues: list[ValidationIssue] = []
        values = {
            "name": self._check_name(name, issues),
            "price": self._check_price(price, issues),
            "currency": self._check_currency(currency, issues),
            "billing_cycle": self._check_billing_cycle(billing_cycle, issues),
            "category": self._check_category(category),
        }
        if next_payment_date is None:
            values["next_payment_date"] = self._clock() + timedelta(
                days=self._settings.default_next_payment_days
            )
        else:
            values["next_payment_date"] = self._check_next_payment_date(next_payment_date, issues)

        if issues:
            raise self._reject(issues)
        return self._build(values)

    def validate_changes(self, existing: Subscription, changes: dict) -> dict:
        """
        Validate a partial edit of an existing subscription.

        Returns the normalized changes, ready for SubscriptionLedger.update.

        Raises:
            SubscriptionValidationError: If a field is unknown, immutable,
                or invalid
        """
        issues: list[ValidationIssue] = []
        normalized: dict = {}

        for field in changes:
            if field not in EDITABLE_FIELDS:
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="not_editable",
                    message=f"Field '{field}' cannot be edited",
                ))

        checks = {
            "name": self._check_name,
            "price": self._check_price,
            "currency": self._check_currency,
            "billing_cycle": self._check_billing_cycle,
            "next_payment_date": self._check_next_payment_date,
        }
        for field, check in checks.items():
            if field in changes:
                normalized[field] = check(changes[field], issues)
        if "category" in changes:
            normalized["category"] = self._check_category(changes["category"])

        if issues:
            raise self._reject(issues)

        # Full-record check for constraints only the model knows (lengths)
        self._build({**existing.model_dump(), **normalized})
        return normalized
