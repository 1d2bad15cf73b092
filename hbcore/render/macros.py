"""Creative macro substitution."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

AUCTION_PRICE_MACRO = "${AUCTION_PRICE}"
CLICKTHROUGH_MACRO = "${CLICKTHROUGH}"

_CENTS = Decimal("0.01")


def format_price(price: Any) -> str:
    """Render a price with at least two decimal places (1.5 -> "1.50", 0.849 -> "0.849")."""
    if isinstance(price, str):
        return price
    try:
        value = Decimal(str(price))
    except (InvalidOperation, ValueError):
        return str(price)
    if not value.is_finite():
        return str(price)
    if -value.as_tuple().exponent < 2:
        value = value.quantize(_CENTS)
    return format(value, "f")


def replace_auction_price(text: str | None, price: Any) -> str | None:
    if not text:
        return text
    return text.replace(AUCTION_PRICE_MACRO, format_price(price))


def replace_click_through(text: str | None, click_through: str) -> str | None:
    if not text:
        return text
    return text.replace(CLICKTHROUGH_MACRO, click_through)
