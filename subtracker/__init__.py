"""
Subscription Tracker - Source Package

The recurring-billing and currency-normalisation engine behind a personal
subscription-expense tracker. The presentation layer calls into it with
plain data and renders the results.

DESIGN PRINCIPLES:
1. Billing arithmetic is pure and lives in one place
2. Never sum amounts in different currencies without converting them
3. Stale exchange rates are a warning, never a failure
4. Maintenance only moves payment dates forward
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Subscription Tracker Team"
