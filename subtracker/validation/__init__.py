"""Validation package."""

from subtracker.validation.validator import (
    EDITABLE_FIELDS,
    SubscriptionValidationError,
    SubscriptionValidator,
    parse_price,
)

__all__ = [
    "EDITABLE_FIELDS",
    "SubscriptionValidationError",
    "SubscriptionValidator",
    "parse_price",
]
