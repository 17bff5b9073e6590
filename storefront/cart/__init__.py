"""Cart package: models, state machine, storage, and controller facade."""
from .models import CartItem, CartState, CartView, CatalogProduct
from .state import TransitionStatus, transition, reduce_cart
from .storage import CartStorage, FileKeyValueStore, KeyValueStore, MemoryKeyValueStore
from .service import CartController, CartResult, CartSettings, close_cart_controller, get_cart_controller

__all__ = [
    "CartItem",
    "CartState",
    "CartView",
    "CatalogProduct",
    "TransitionStatus",
    "transition",
    "reduce_cart",
    "CartStorage",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "FileKeyValueStore",
    "CartController",
    "CartResult",
    "CartSettings",
    "get_cart_controller",
    "close_cart_controller",
]
