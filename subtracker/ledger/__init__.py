"""Subscription ledger package."""

from subtracker.ledger.ledger import (
    DuplicateSubscriptionError,
    LedgerError,
    MixedCurrencyError,
    SubscriptionLedger,
)

__all__ = [
    "DuplicateSubscriptionError",
    "LedgerError",
    "MixedCurrencyError",
    "SubscriptionLedger",
]
