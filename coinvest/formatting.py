"""Display helpers shared by the UI pages."""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from coinvest.config import get_settings


def format_money(amount: Union[Decimal, int, float], currency: Optional[str] = None) -> str:
    """
    Whole currency units with thousands separators, e.g. "฿1,250,000".

    THB is shown with its symbol, any other currency with its code.
    """
    currency = currency or get_settings().app.currency_code
    value = Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    digits = f"{abs(value):,}"
    if currency == "THB":
        return f"{sign}฿{digits}"
    return f"{sign}{digits} {currency}"


def format_percent(value: float) -> str:
    return f"{value:.1f}%"
