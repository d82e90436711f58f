"""Money helpers package."""

from subtracker.money.currency import convert, format_money, round_money

__all__ = ["convert", "format_money", "round_money"]
