"""
EggyPro Storefront Core

This package contains the shopper-side cart and price handling:
- services: price normalization, Money, price health monitoring
- cart: cart state machine, local storage, controller
- routers: FastAPI health endpoints

Note: Imports are lazy so that importing one piece (e.g. the price
normalizer) does not pull in the web stack.
"""

__all__ = [
    "get_cart_controller",
    "get_price_monitor",
    "validate_price",
    "format_price",
]


def __getattr__(name):
    """Lazy attribute access."""
    if name == "get_cart_controller":
        from storefront.cart.service import get_cart_controller
        return get_cart_controller
    elif name == "get_price_monitor":
        from storefront.services.price_monitoring import get_price_monitor
        return get_price_monitor
    elif name == "validate_price":
        from storefront.services.prices import validate_price
        return validate_price
    elif name == "format_price":
        from storefront.services.prices import format_price
        return format_price
    raise AttributeError(f"module 'storefront' has no attribute '{name}'")
