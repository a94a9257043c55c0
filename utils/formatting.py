"""
Formatting utilities.
"""

from datetime import date
from typing import Optional


def format_currency(amount: Optional[float], currency: str = "GBP") -> str:
    """
    Format an amount as whole-unit currency.

    Args:
        amount: The amount in whole units (e.g., pounds, not pence).
            None is shown as zero.
        currency: Currency code (default GBP).

    Returns:
        Formatted currency string.
    """
    symbols = {
        "GBP": "£",
        "USD": "$",
        "EUR": "€",
    }
    symbol = symbols.get(currency, currency + " ")
    if amount is None or amount != amount:  # NaN
        amount = 0
    return f"{symbol}{round(amount):,}"


def format_distance(metres: Optional[float]) -> str:
    """
    Format a distance: metres below 100 m, otherwise km to one decimal.
    """
    if metres is None or metres != metres:
        return "0m"
    if metres < 100:
        return f"{metres:g}m"
    return f"{metres / 1000:.1f}km"


def format_date(value: date) -> str:
    """Format a date as e.g. '15 Jun 2023'."""
    return value.strftime("%d %b %Y")
