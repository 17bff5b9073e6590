"""
Price Normalization

The catalog does not guarantee the type of its ``price`` field: it can be a
number, a numeric string, or a string such as "$1,299.99". Everything that
reads a price (cart totals, display, sorting) goes through this module so
malformed input behaves the same everywhere and never turns into NaN.

None of the public functions raise on bad input. They return a zero or
fallback value together with an explicit validity flag.
"""
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, Iterable, Optional, Tuple

from storefront.errors import (
    ERROR_FRACTION_DIGITS,
    ERROR_PRICE_BAD_FORMAT,
    ERROR_PRICE_MISSING,
    ERROR_PRICE_NOT_FINITE,
    ERROR_UNSUPPORTED_CURRENCY,
    ERROR_UNSUPPORTED_LOCALE,
)
from storefront.services.money import CURRENCY_SYMBOLS, ZERO, Money, to_decimal
from storefront.services.price_monitoring import get_price_monitor

DEFAULT_CURRENCY = "USD"
DEFAULT_LOCALE = "en-US"
DEFAULT_FALLBACK = "$0.00"

# Anything at or above this is treated as garbage rather than a price
MAX_PRICE = Decimal("1e15")

_DECIMAL_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_SEPARATORS_RE = re.compile(r"[\s,]")

# Longest first so "R$" goes before "$"
_CURRENCY_TOKENS = sorted(
    set(CURRENCY_SYMBOLS.values()) | set(CURRENCY_SYMBOLS.keys()),
    key=len,
    reverse=True,
)


@dataclass(frozen=True)
class LocaleFormat:
    group: str
    decimal: str
    symbol_first: bool
    spacing: str = ""


LOCALE_FORMATS: Dict[str, LocaleFormat] = {
    "en-US": LocaleFormat(group=",", decimal=".", symbol_first=True),
    "en-GB": LocaleFormat(group=",", decimal=".", symbol_first=True),
    "ja-JP": LocaleFormat(group=",", decimal=".", symbol_first=True),
    "de-DE": LocaleFormat(group=".", decimal=",", symbol_first=False, spacing="\xa0"),
    "es-ES": LocaleFormat(group=".", decimal=",", symbol_first=False, spacing="\xa0"),
    "fr-FR": LocaleFormat(group="\u202f", decimal=",", symbol_first=False, spacing="\xa0"),
    "ru-RU": LocaleFormat(group="\xa0", decimal=",", symbol_first=False, spacing="\xa0"),
}


@dataclass(frozen=True)
class PriceFormatOptions:
    currency: str = DEFAULT_CURRENCY
    locale: str = DEFAULT_LOCALE
    min_fraction_digits: int = 2
    max_fraction_digits: int = 2
    fallback_text: str = DEFAULT_FALLBACK


DEFAULT_FORMAT_OPTIONS = PriceFormatOptions()


@dataclass(frozen=True)
class PriceValidation:
    """Result of normalizing one raw price."""
    is_valid: bool
    numeric_value: Decimal
    original_value: Any
    error: Optional[str] = None


@dataclass(frozen=True)
class PriceValue:
    """A computed price together with its display text."""
    raw: Any
    numeric: Decimal
    formatted: str
    is_valid: bool


class PriceFormatError(ValueError):
    """Raised internally when a format configuration is unsupported."""


def _invalid(raw: Any, error: str) -> PriceValidation:
    get_price_monitor().log_validation_error("validate_price", raw, error)
    return PriceValidation(is_valid=False, numeric_value=ZERO, original_value=raw, error=error)


def _valid(raw: Any, value: Decimal) -> PriceValidation:
    get_price_monitor().log_successful_validation()
    return PriceValidation(is_valid=True, numeric_value=max(ZERO, value), original_value=raw)


def _clean_price_text(text: str) -> str:
    cleaned = text
    for token in _CURRENCY_TOKENS:
        cleaned = cleaned.replace(token, "")
    return _SEPARATORS_RE.sub("", cleaned)


def validate_price(price: Any) -> PriceValidation:
    """
    Validate and convert a raw price to a non-negative Decimal.

    Rules:
    - None is invalid (missing)
    - NaN and +/-Infinity are invalid
    - strings lose whitespace, grouping commas and currency symbols and
      must then be a plain decimal literal
    - negative values are clamped to 0 and stay valid

    Already-normalized values (PriceValidation, Money) pass through.
    """
    if isinstance(price, PriceValidation):
        return price
    if isinstance(price, Money):
        return PriceValidation(
            is_valid=price.is_valid,
            numeric_value=price.amount,
            original_value=price.raw,
            error=price.error,
        )

    if price is None:
        return _invalid(price, ERROR_PRICE_MISSING)

    # bool is an int subclass but never a price
    if isinstance(price, bool):
        return _invalid(price, ERROR_PRICE_BAD_FORMAT)

    if isinstance(price, float) and not math.isfinite(price):
        return _invalid(price, ERROR_PRICE_NOT_FINITE)

    if isinstance(price, Decimal) and not price.is_finite():
        return _invalid(price, ERROR_PRICE_NOT_FINITE)

    if isinstance(price, (int, float, Decimal)):
        value = to_decimal(price)
    elif isinstance(price, str):
        cleaned = _clean_price_text(price)
        if not _DECIMAL_RE.fullmatch(cleaned):
            return _invalid(price, ERROR_PRICE_BAD_FORMAT)
        try:
            value = Decimal(cleaned)
        except InvalidOperation:
            return _invalid(price, ERROR_PRICE_BAD_FORMAT)
    else:
        return _invalid(price, ERROR_PRICE_BAD_FORMAT)

    if abs(value) >= MAX_PRICE:
        return _invalid(price, ERROR_PRICE_BAD_FORMAT)

    return _valid(price, value)


def get_numeric_price(price: Any) -> Decimal:
    """Numeric value of a price, 0 when invalid."""
    return validate_price(price).numeric_value


def is_valid_price(price: Any) -> bool:
    return validate_price(price).is_valid


def _render_currency(amount: Decimal, options: PriceFormatOptions) -> str:
    locale_format = LOCALE_FORMATS.get(options.locale)
    if locale_format is None:
        raise PriceFormatError(f"{ERROR_UNSUPPORTED_LOCALE}: {options.locale}")

    symbol = CURRENCY_SYMBOLS.get(str(options.currency).upper())
    if symbol is None:
        raise PriceFormatError(f"{ERROR_UNSUPPORTED_CURRENCY}: {options.currency}")

    min_digits = options.min_fraction_digits
    max_digits = options.max_fraction_digits
    if not (
        isinstance(min_digits, int)
        and isinstance(max_digits, int)
        and 0 <= min_digits <= max_digits <= 20
    ):
        raise PriceFormatError(ERROR_FRACTION_DIGITS)

    if not amount.is_finite():
        raise PriceFormatError(ERROR_PRICE_NOT_FINITE)

    quantized = amount.quantize(Decimal(1).scaleb(-max_digits), rounding=ROUND_HALF_UP)
    sign = "-" if quantized < 0 else ""

    int_part, _, fraction = f"{abs(quantized):f}".partition(".")
    fraction = fraction.rstrip("0").ljust(min_digits, "0")

    number = f"{int(int_part):,}".replace(",", locale_format.group)
    if fraction:
        number = f"{number}{locale_format.decimal}{fraction}"

    if locale_format.symbol_first:
        return f"{sign}{symbol}{locale_format.spacing}{number}"
    return f"{sign}{number}{locale_format.spacing}{symbol}"


def format_currency(amount: Any, options: Optional[PriceFormatOptions] = None) -> str:
    """
    Format a numeric amount as currency text.

    Never raises: an unsupported currency/locale or a broken fraction-digits
    configuration yields ``options.fallback_text``.
    """
    options = options or DEFAULT_FORMAT_OPTIONS
    try:
        return _render_currency(to_decimal(amount), options)
    except (PriceFormatError, InvalidOperation, ValueError, TypeError) as e:
        get_price_monitor().log_formatting_error(
            "format_currency", {"amount": amount, "currency": options.currency, "locale": options.locale}, str(e)
        )
        return options.fallback_text


def format_price(price: Any, options: Optional[PriceFormatOptions] = None) -> str:
    """Format a raw price; invalid prices render as the fallback text."""
    options = options or DEFAULT_FORMAT_OPTIONS
    validation = validate_price(price)
    if not validation.is_valid:
        return options.fallback_text
    return format_currency(validation.numeric_value, options)


def parse_price(price: Any, options: Optional[PriceFormatOptions] = None) -> PriceValue:
    """Parse a raw price into numeric + formatted values."""
    options = options or DEFAULT_FORMAT_OPTIONS
    validation = validate_price(price)
    formatted = (
        format_currency(validation.numeric_value, options)
        if validation.is_valid
        else options.fallback_text
    )
    return PriceValue(
        raw=price,
        numeric=validation.numeric_value,
        formatted=formatted,
        is_valid=validation.is_valid,
    )


def _safe_quantity(quantity: Any, context: str) -> Tuple[Decimal, bool]:
    """
    Clamp a quantity to a non-negative Decimal.

    Returns (value, is_number). Non-numbers become 0 and are reported to the
    monitor as conversion errors.
    """
    if isinstance(quantity, int) and not isinstance(quantity, bool):
        return Decimal(max(quantity, 0)), True
    if isinstance(quantity, float) and math.isfinite(quantity):
        return max(ZERO, to_decimal(quantity)), True
    if isinstance(quantity, Decimal) and quantity.is_finite():
        return max(ZERO, quantity), True

    get_price_monitor().log_conversion_error(context, quantity, "Quantity is not a finite number")
    return ZERO, False


def _line_value(line: Any, name: str) -> Any:
    if isinstance(line, Mapping):
        return line.get(name)
    return getattr(line, name, None)


def sum_prices(lines: Iterable[Any], options: Optional[PriceFormatOptions] = None) -> PriceValue:
    """
    Total of price x quantity over a list of lines.

    Each line is an object or mapping exposing ``price`` and ``quantity``.
    A line with an invalid price contributes 0 and marks the result invalid,
    but does not stop the sum.
    """
    total = ZERO
    has_invalid_prices = False

    for line in lines:
        validation = validate_price(_line_value(line, "price"))
        if not validation.is_valid:
            has_invalid_prices = True
            continue
        quantity, _ = _safe_quantity(_line_value(line, "quantity"), "sum_prices")
        total += validation.numeric_value * quantity

    return PriceValue(
        raw=total,
        numeric=total,
        formatted=format_currency(total, options),
        is_valid=not has_invalid_prices,
    )


def multiply_price(price: Any, quantity: Any, options: Optional[PriceFormatOptions] = None) -> PriceValue:
    """Price x quantity, with negative or non-numeric quantities treated as 0."""
    validation = validate_price(price)
    safe_quantity, quantity_is_number = _safe_quantity(quantity, "multiply_price")
    result = validation.numeric_value * safe_quantity
    return PriceValue(
        raw=result,
        numeric=result,
        formatted=format_currency(result, options),
        is_valid=validation.is_valid and quantity_is_number,
    )


def add_prices(first: Any, second: Any, options: Optional[PriceFormatOptions] = None) -> PriceValue:
    a = validate_price(first)
    b = validate_price(second)
    result = a.numeric_value + b.numeric_value
    return PriceValue(
        raw=result,
        numeric=result,
        formatted=format_currency(result, options),
        is_valid=a.is_valid and b.is_valid,
    )


def compare_prices(first: Any, second: Any) -> int:
    """
    Compare two prices numerically.

    Returns:
        -1 if first < second, 0 if equal, 1 if first > second.
        Invalid prices compare as 0.
    """
    a = get_numeric_price(first)
    b = get_numeric_price(second)
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


def format_price_range(min_price: Any, max_price: Any, options: Optional[PriceFormatOptions] = None) -> str:
    """Format "min - max", collapsing to one value when both render the same."""
    low = format_price(min_price, options)
    high = format_price(max_price, options)
    if low == high:
        return low
    return f"{low} - {high}"


__all__ = [
    "PriceFormatOptions",
    "PriceValidation",
    "PriceValue",
    "validate_price",
    "get_numeric_price",
    "is_valid_price",
    "format_currency",
    "format_price",
    "parse_price",
    "sum_prices",
    "multiply_price",
    "add_prices",
    "compare_prices",
    "format_price_range",
]
