"""
Display formatting for prices, rents and ratios.

Amounts are whole currency units; rents are monthly.
"""

CURRENCY_SYMBOLS = {
    "CAD": "$",
    "USD": "$",
    "GBP": "£",
    "EUR": "€",
}


def format_currency(amount: int, currency: str = "CAD") -> str:
    """
    Format a whole-unit amount, e.g. 649000 -> "$649,000".

    Unknown currency codes are used as a prefix ("CHF 1,200").
    """
    symbol = CURRENCY_SYMBOLS.get(currency, currency + " ")
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,}"


def format_price(amount: int, monthly: bool = False, currency: str = "CAD") -> str:
    """Sale price, or rent with a "/month" suffix."""
    text = format_currency(amount, currency)
    return f"{text}/month" if monthly else text


def format_percent(ratio: float, decimals: int = 1, signed: bool = False) -> str:
    """
    Format a ratio as a percentage.

    Args:
        ratio: 0.05 -> "5.0%"
        decimals: Decimal places
        signed: Prefix positive values with "+"
    """
    pattern = f"{{:+.{decimals}f}}%" if signed else f"{{:.{decimals}f}}%"
    return pattern.format(ratio * 100)
