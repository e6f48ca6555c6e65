"""Money helpers. All amounts are Decimal, rounded half-up to cents."""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Decimal | int | float | str | None) -> Decimal:
    """Coerce a numeric input to Decimal without binary float artifacts."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def to_money(value: Decimal | int | float | str | None) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_currency(value: Decimal, currency_code: str = "USD") -> str:
    symbol = "$" if currency_code == "USD" else f"{currency_code} "
    return f"{symbol}{to_money(value):,.2f}"
