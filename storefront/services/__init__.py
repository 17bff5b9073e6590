# Services Module
from .money import Money
from .prices import (
    PriceFormatOptions,
    PriceValidation,
    PriceValue,
    validate_price,
    format_price,
    sum_prices,
)
from .price_monitoring import PriceMonitor, get_price_monitor

__all__ = [
    "Money",
    "PriceFormatOptions",
    "PriceValidation",
    "PriceValue",
    "validate_price",
    "format_price",
    "sum_prices",
    "PriceMonitor",
    "get_price_monitor",
]
