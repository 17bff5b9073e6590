"""
Money Utilities - Safe Decimal operations for monetary values.

Avoids float precision issues by using Decimal throughout. Prices coming
from the catalog are turned into a ``Money`` value once, at the boundary,
and every cart computation works on ``Money.amount`` from then on.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, Optional, Union

# Default precision for money operations (2 decimal places)
MONEY_PRECISION = Decimal("0.01")

ZERO = Decimal("0")

# Currency symbols mapping
CURRENCY_SYMBOLS: Dict[str, str] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "RUB": "₽",
    "UAH": "₴",
    "TRY": "₺",
    "INR": "₹",
    "CNY": "¥",
    "JPY": "¥",
    "KRW": "₩",
    "BRL": "R$",
}

Numeric = Union[str, int, float, Decimal]


def to_decimal(value: Union[Numeric, None]) -> Decimal:
    """
    Convert a trusted numeric value to Decimal.

    Args:
        value: Value to convert (str, int, float, Decimal, or None)

    Returns:
        Decimal representation of the value, or Decimal("0") if None/invalid
    """
    if value is None:
        return ZERO

    if isinstance(value, Decimal):
        return value

    try:
        # Convert via string to avoid float precision issues
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return ZERO


def round_money(value: Numeric) -> Decimal:
    """Round monetary value to cents (ROUND_HALF_UP)."""
    return to_decimal(value).quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Money:
    """
    Canonical fixed-point amount.

    ``raw`` keeps whatever the catalog sent so the cart can show it back or
    persist it; ``amount`` is always a non-negative Decimal in cents
    precision. An invalid raw price becomes ``Money(0.00, is_valid=False)``.
    """
    amount: Decimal
    is_valid: bool = True
    raw: Any = None
    error: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Any) -> "Money":
        """Normalize a raw catalog price into Money."""
        if isinstance(raw, Money):
            return raw

        from storefront.services.prices import validate_price

        validation = validate_price(raw)
        return cls(
            amount=round_money(validation.numeric_value),
            is_valid=validation.is_valid,
            raw=raw,
            error=validation.error,
        )

    def to_json(self) -> Optional[str]:
        """
        Value written to the saved cart.

        Valid amounts are stored as their canonical string; invalid ones keep
        the raw string (if any) so a reload re-normalizes to the same result.
        """
        if self.is_valid:
            return str(self.amount)
        return self.raw if isinstance(self.raw, str) else None

    def __str__(self) -> str:
        return str(self.amount)
