"""Cart aggregate helpers built on the price normalizer."""
import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Iterable, Optional, Sequence

from storefront.services.prices import sum_prices

if TYPE_CHECKING:
    from .models import CartItem

MIN_QUANTITY = 1
MAX_QUANTITY = 99

# Badge shows "9+" above this
BADGE_LIMIT = 9


def calculate_cart_total(items: Iterable["CartItem"]) -> Decimal:
    """Sum of price x quantity; invalid prices count as 0."""
    return sum_prices(items).numeric


def calculate_item_count(items: Iterable["CartItem"]) -> int:
    return sum(item.quantity for item in items)


def format_cart_badge_count(count: int) -> str:
    return f"{BADGE_LIMIT}+" if count > BADGE_LIMIT else str(count)


def generate_cart_item_id(product_id: Any) -> str:
    """Cart-line id: product id plus a random suffix, unique per line."""
    return f"cart-item-{product_id}-{uuid.uuid4().hex[:12]}"


def validate_quantity(quantity: Any) -> bool:
    """Quantity must be a real int (not bool) in [1, 99]."""
    return (
        isinstance(quantity, int)
        and not isinstance(quantity, bool)
        and MIN_QUANTITY <= quantity <= MAX_QUANTITY
    )


def find_cart_item(items: Sequence["CartItem"], product_id: str) -> Optional["CartItem"]:
    """First line holding the given product."""
    return next((item for item in items if item.product_id == product_id), None)


def find_cart_item_by_id(items: Sequence["CartItem"], item_id: str) -> Optional["CartItem"]:
    return next((item for item in items if item.id == item_id), None)
