"""
Cart controller: the single façade the view layer talks to.

Wires the pure state machine to local storage, owns the deferred-deletion
and undo-expiry timers, and notifies subscribers on every state change.
"""
import functools
import inspect
import os
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Union

from storefront.errors import (
    ERROR_CART_ITEM_NOT_FOUND,
    ERROR_INVALID_QUANTITY,
    ERROR_NOTHING_TO_UNDO,
    ERROR_UNKNOWN_ACTION,
)
from storefront.logging import get_logger, sanitize_id_for_logging
from .models import CartItem, CartState, CartView, CatalogProduct
from .scheduler import TaskScheduler
from .state import (
    AddItem,
    ClearCart,
    ClearUndo,
    CompleteItemDeletion,
    LoadCart,
    MarkItemDeleting,
    RemoveItem,
    SetCartOpen,
    ToggleCart,
    TransitionStatus,
    UndoDelete,
    UpdateQuantity,
    transition,
)
from .storage import CART_STORAGE_KEY, CartStorage, FileKeyValueStore

logger = get_logger(__name__)

DELETE_TASK_PREFIX = "delete:"
UNDO_TASK_KEY = "undo"

STATUS_MESSAGES = {
    TransitionStatus.INVALID_QUANTITY: ERROR_INVALID_QUANTITY,
    TransitionStatus.ITEM_NOT_FOUND: ERROR_CART_ITEM_NOT_FOUND,
    TransitionStatus.NOTHING_TO_UNDO: ERROR_NOTHING_TO_UNDO,
    TransitionStatus.UNKNOWN_ACTION: ERROR_UNKNOWN_ACTION,
}

Listener = Callable[[CartView], None]
Navigator = Callable[[str], Union[None, Awaitable[None]]]


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        parsed = float(value)
    except ValueError:
        logger.warning(f"Invalid {name}={value!r}, using {default}")
        return default
    if parsed < 0:
        logger.warning(f"Negative {name}={value!r}, using {default}")
        return default
    return parsed


@dataclass(frozen=True)
class CartSettings:
    """Timing and wiring knobs; delays are in seconds."""
    storage_key: str = CART_STORAGE_KEY
    storage_dir: str = ".cart"
    deletion_delay: float = 0.3  # Exit animation length
    undo_timeout: float = 5.0
    undo_settle_delay: float = 0.05
    checkout_path: str = "/checkout"

    @classmethod
    def from_env(cls) -> "CartSettings":
        defaults = cls()
        return cls(
            storage_key=os.environ.get("CART_STORAGE_KEY") or defaults.storage_key,
            storage_dir=os.environ.get("CART_STORAGE_DIR") or defaults.storage_dir,
            deletion_delay=_env_float("CART_DELETION_DELAY", defaults.deletion_delay),
            undo_timeout=_env_float("CART_UNDO_TIMEOUT", defaults.undo_timeout),
            undo_settle_delay=_env_float("CART_UNDO_SETTLE_DELAY", defaults.undo_settle_delay),
            checkout_path=os.environ.get("CART_CHECKOUT_PATH") or defaults.checkout_path,
        )


@dataclass(frozen=True)
class CartResult:
    """What an operation did, plus the view right after it."""
    status: TransitionStatus
    view: CartView

    @property
    def ok(self) -> bool:
        return self.status == TransitionStatus.APPLIED

    @property
    def message(self) -> Optional[str]:
        return STATUS_MESSAGES.get(self.status)


class CartController:
    """
    Shopper-side cart.

    Usage:
        async with CartController(CartStorage(store)) as cart:
            await cart.add_item(product)
    """

    def __init__(
        self,
        storage: CartStorage,
        settings: Optional[CartSettings] = None,
        navigate: Optional[Navigator] = None,
        scheduler: Optional[TaskScheduler] = None,
    ):
        self.storage = storage
        self.settings = settings or CartSettings()
        self._navigate = navigate
        self._scheduler = scheduler if scheduler is not None else TaskScheduler()
        self._state = CartState()
        self._listeners: List[Listener] = []

    @property
    def state(self) -> CartState:
        return self._state

    @property
    def view(self) -> CartView:
        return self._state.to_view()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a view listener; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ==================== Core dispatch ====================

    async def _dispatch(self, action: object, persist: bool = True) -> CartResult:
        previous = self._state
        outcome = transition(previous, action)
        self._state = outcome.state

        if not outcome.ok:
            logger.debug(f"{type(action).__name__} rejected: {STATUS_MESSAGES.get(outcome.status)}")

        if outcome.state is not previous:
            self._notify()
            if persist and outcome.state.items is not previous.items:
                await self.storage.save_items(self._state.items)

        return CartResult(outcome.status, outcome.state.to_view())

    def _notify(self) -> None:
        view = self._state.to_view()
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception as e:
                logger.error(f"Cart listener failed: {e}", exc_info=True)

    # ==================== Lifecycle ====================

    async def load(self) -> CartResult:
        """Hydrate from storage. Anything unreadable is treated as an empty cart."""
        items = await self.storage.load_items()
        if items:
            logger.info(f"Restored cart with {len(items)} line(s)")
        # Rewrites legacy payloads in the current format
        return await self._dispatch(LoadCart(items), persist=bool(items))

    async def aclose(self) -> None:
        """Finish deletions already on screen, then drop every timer."""
        for key in self._scheduler.pending_keys(DELETE_TASK_PREFIX):
            self._scheduler.cancel(key)
            await self._finish_deletion(key[len(DELETE_TASK_PREFIX):])
        await self._scheduler.aclose()
        self._listeners.clear()

    async def __aenter__(self) -> "CartController":
        await self.load()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ==================== Items ====================

    async def add_item(
        self,
        product: Union[CatalogProduct, Mapping[str, Any]],
        quantity: int = 1,
    ) -> CartResult:
        """
        Add a catalog product, merging into its existing line if present.

        Raises:
            pydantic.ValidationError: if a mapping is not a valid product
        """
        if not isinstance(product, CatalogProduct):
            product = CatalogProduct.model_validate(product)

        item = CartItem.from_product(product, quantity)
        if not item.price.is_valid:
            logger.warning(
                f"Product {sanitize_id_for_logging(item.product_id)} added with invalid price: "
                f"{item.price.error}"
            )
        return await self._dispatch(AddItem(item))

    async def update_quantity(self, item_id: str, quantity: int) -> CartResult:
        return await self._dispatch(UpdateQuantity(item_id, quantity))

    async def remove(self, item_id: str, deferred: bool = False) -> CartResult:
        """
        Delete a line.

        Immediate removal fills the undo buffer at once. Deferred removal
        marks the line as deleting and completes it after
        ``settings.deletion_delay`` unless cancelled or completed earlier.
        """
        key = f"{DELETE_TASK_PREFIX}{item_id}"

        if not deferred:
            self._scheduler.cancel(key)
            result = await self._dispatch(RemoveItem(item_id))
            if result.ok:
                self._arm_undo_expiry()
            return result

        result = await self._dispatch(MarkItemDeleting(item_id))
        if result.ok and not self._scheduler.is_pending(key):
            self._scheduler.schedule(
                key,
                self.settings.deletion_delay,
                functools.partial(self._finish_deletion, item_id),
            )
        return result

    async def mark_item_deleting(self, item_id: str) -> CartResult:
        return await self.remove(item_id, deferred=True)

    async def complete_item_deletion(self, item_id: str) -> CartResult:
        self._scheduler.cancel(f"{DELETE_TASK_PREFIX}{item_id}")
        return await self._finish_deletion(item_id)

    async def remove_item(self, item_id: str) -> CartResult:
        return await self.remove(item_id)

    async def _finish_deletion(self, item_id: str) -> CartResult:
        result = await self._dispatch(CompleteItemDeletion(item_id))
        if result.ok:
            self._arm_undo_expiry()
        return result

    async def clear_cart(self) -> CartResult:
        cancelled = self._scheduler.cancel_prefix(DELETE_TASK_PREFIX)
        if cancelled:
            logger.debug(f"Cancelled {len(cancelled)} pending deletion(s)")
        return await self._dispatch(ClearCart())

    # ==================== Undo ====================

    def _arm_undo_expiry(self) -> None:
        # Replaces any running expiry: each deletion gets the full window
        self._scheduler.schedule(UNDO_TASK_KEY, self.settings.undo_timeout, self._expire_undo)

    async def _expire_undo(self) -> None:
        await self._dispatch(ClearUndo())

    async def undo_delete(self) -> CartResult:
        result = await self._dispatch(UndoDelete())
        if result.ok:
            self._scheduler.schedule(UNDO_TASK_KEY, self.settings.undo_settle_delay, self._expire_undo)
        return result

    async def clear_undo(self) -> CartResult:
        self._scheduler.cancel(UNDO_TASK_KEY)
        return await self._dispatch(ClearUndo())

    # ==================== Drawer ====================

    async def toggle_cart(self) -> CartResult:
        return await self._dispatch(ToggleCart())

    async def set_cart_open(self, is_open: bool) -> CartResult:
        return await self._dispatch(SetCartOpen(is_open))

    async def open_cart(self) -> CartResult:
        return await self.set_cart_open(True)

    async def close_cart(self) -> CartResult:
        return await self.set_cart_open(False)

    # ==================== Checkout ====================

    async def buy_now(
        self,
        product: Union[CatalogProduct, Mapping[str, Any]],
        quantity: int = 1,
    ) -> CartResult:
        """Add, close the drawer and go to checkout (even if the add was rejected)."""
        added = await self.add_item(product, quantity)
        await self.close_cart()
        await self._go_to_checkout()
        return CartResult(added.status, self.view)

    async def _go_to_checkout(self) -> None:
        path = self.settings.checkout_path
        if self._navigate is None:
            logger.warning(f"No navigator configured, cannot open {path}")
            return
        try:
            outcome = self._navigate(path)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error(f"Navigation to {path} failed: {e}", exc_info=True)


# Singleton instance
_cart_controller: Optional[CartController] = None


def get_cart_controller() -> CartController:
    """
    Get or create the process-wide controller backed by file storage.

    The returned controller is not hydrated; call ``await load()`` first.
    """
    global _cart_controller
    if _cart_controller is None:
        settings = CartSettings.from_env()
        storage = CartStorage(FileKeyValueStore(settings.storage_dir), key=settings.storage_key)
        _cart_controller = CartController(storage, settings)
    return _cart_controller


async def close_cart_controller() -> None:
    """Release the singleton's timers (app shutdown)."""
    global _cart_controller
    if _cart_controller is not None:
        await _cart_controller.aclose()
        _cart_controller = None
