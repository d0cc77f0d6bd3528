# Overview: Price parsing and formatting; amounts are stored as integer cents.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import ValidationError

# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999
MAX_PRICE = Decimal(MAX_PRICE_CENTS) / 100


def to_cents(value, field: str = "price") -> int:
    """
    Convert a client-supplied decimal amount (99.99, "99.99") to cents.

    Rejects booleans, negatives, more than two decimal places and amounts
    above MAX_PRICE_CENTS.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    # Checked before quantize, which cannot represent very large exponents
    if amount > MAX_PRICE:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE:,}")
    if amount != amount.quantize(Decimal("0.01")):
        raise ValidationError(f"{field} cannot have more than two decimal places")
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


def to_amount(cents: int | None) -> float | None:
    if cents is None:
        return None
    return cents / 100
