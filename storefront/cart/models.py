"""Cart models: catalog boundary, cart lines, cart state and its view."""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from storefront.services.money import Money
from storefront.services.prices import format_currency
from .calculations import (
    calculate_cart_total,
    calculate_item_count,
    format_cart_badge_count,
    generate_cart_item_id,
    validate_quantity,
)


class CatalogProduct(BaseModel):
    """
    Product as received from the catalog API.

    ``price`` is untyped: the catalog may send a number, a
    numeric string or a decorated string. It is normalized into Money when
    the product enters the cart.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Union[int, str]
    name: str
    price: Any = None
    images: List[str] = Field(default_factory=list)
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    slug: str = ""

    @property
    def primary_image(self) -> str:
        if self.images:
            return self.images[0]
        return self.image_url or ""


@dataclass(frozen=True)
class CartItem:
    """Single line in the cart. Name, price and image are frozen at add time."""
    id: str
    product_id: str
    name: str
    price: Money
    quantity: int
    image_url: str = ""
    slug: str = ""
    is_deleting: bool = False  # Exit animation in progress

    @classmethod
    def from_product(cls, product: CatalogProduct, quantity: int) -> "CartItem":
        product_id = str(product.id)
        return cls(
            id=generate_cart_item_id(product_id),
            product_id=product_id,
            name=product.name,
            price=Money.from_raw(product.price),
            quantity=quantity,
            image_url=product.primary_image,
            slug=product.slug,
        )

    @property
    def line_total(self) -> Decimal:
        return self.price.amount * self.quantity

    def to_dict(self) -> dict:
        """Convert to dictionary for storage (the deleting marker is not saved)."""
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "price": self.price.to_json(),
            "quantity": self.quantity,
            "image_url": self.image_url,
            "slug": self.slug,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartItem":
        """
        Create from dictionary.

        Raises:
            KeyError, TypeError, ValueError: if the entry is malformed
        """
        quantity = data["quantity"]
        if not validate_quantity(quantity):
            raise ValueError(f"Invalid quantity in saved cart: {quantity!r}")
        item_id = data["id"]
        if not isinstance(item_id, str) or not item_id:
            raise ValueError("Saved cart item has no id")
        return cls(
            id=item_id,
            product_id=str(data["product_id"]),
            name=str(data["name"]),
            price=Money.from_raw(data.get("price")),
            quantity=quantity,
            image_url=data.get("image_url") or "",
            slug=data.get("slug") or "",
        )


@dataclass(frozen=True)
class CartView:
    """Read-only projection handed to the view layer."""
    items: Tuple[CartItem, ...]
    total_items: int
    total_price: Decimal
    is_open: bool
    can_undo: bool

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def formatted_total(self) -> str:
        return format_currency(self.total_price)

    @property
    def badge_count(self) -> str:
        return format_cart_badge_count(self.total_items)


@dataclass(frozen=True)
class CartState:
    """
    Whole cart state.

    ``total_items`` and ``total_price`` are computed from ``items`` on
    construction and cannot be passed in, so they never drift from the lines.
    """
    items: Tuple[CartItem, ...] = ()
    is_open: bool = False
    last_deleted_item: Optional[CartItem] = None
    total_items: int = field(init=False)
    total_price: Decimal = field(init=False)

    def __post_init__(self):
        items = tuple(self.items)
        object.__setattr__(self, "items", items)
        object.__setattr__(self, "total_items", calculate_item_count(items))
        object.__setattr__(self, "total_price", calculate_cart_total(items))

    @property
    def can_undo(self) -> bool:
        return self.last_deleted_item is not None

    def to_view(self) -> CartView:
        return CartView(
            items=self.items,
            total_items=self.total_items,
            total_price=self.total_price,
            is_open=self.is_open,
            can_undo=self.can_undo,
        )
