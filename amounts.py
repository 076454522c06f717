import math
from decimal import Decimal, InvalidOperation


def parse_amount(value: str, *, allow_negative: bool = False) -> float:
    clean = value.strip().replace("€", "").replace("$", "").replace(" ", "")
    clean = clean.replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    if not clean:
        raise ValueError("Invalid amount")
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    if amount < 0 and not allow_negative:
        raise ValueError("Amount must be positive")
    return float(amount)


def format_currency(amount: float) -> str:
    """Display form used throughout the UI: ``$`` and the absolute value, two decimals."""
    if amount is None or math.isnan(amount):
        amount = 0.0
    return f"${abs(amount):.2f}"


def format_percentage(value: float) -> str:
    return f"{value:.2f}%"
