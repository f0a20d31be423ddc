"""
Currency helpers shared by the billing engine.

Amounts are carried as Decimal end to end. Anything that cannot be read as a
finite number is booked as zero instead of raising, so one malformed invoice
line never breaks a dashboard render.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

DEFAULT_CURRENCY = "USD"
ZERO = Decimal("0")
_CENT = Decimal("0.01")


def normalize_currency_code(currency: Any, default: str = DEFAULT_CURRENCY) -> str:
    """ISO currency code, upper-cased; blank or missing falls back to default."""
    normalized = str(currency or "").strip().upper()
    return normalized or default


def to_decimal(value: Any) -> Decimal | None:
    """Parse value as a finite Decimal, or None when it is not one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        candidate = value
    else:
        try:
            candidate = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None
    if not candidate.is_finite():
        return None
    return candidate


def safe_decimal(value: Any) -> Decimal:
    """Finite Decimal for value; malformed or non-finite input becomes zero."""
    parsed = to_decimal(value)
    return parsed if parsed is not None else ZERO


def round_currency_amount(value: Any) -> Decimal:
    return safe_decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)
