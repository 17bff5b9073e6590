"""
Cart State Machine

A pure transition function over ``CartState``. Every action against every
state yields a valid successor state; nothing here raises, logs or touches
storage. When an action changes nothing the *same* state object is
returned, which is how callers detect no-ops cheaply.
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, Optional, Tuple, Union

from .calculations import (
    MAX_QUANTITY,
    find_cart_item,
    find_cart_item_by_id,
    validate_quantity,
)
from .models import CartItem, CartState


class TransitionStatus(str, Enum):
    """Outcome of applying one action."""
    APPLIED = "applied"
    INVALID_QUANTITY = "invalid_quantity"
    ITEM_NOT_FOUND = "item_not_found"
    NOTHING_TO_UNDO = "nothing_to_undo"
    UNKNOWN_ACTION = "unknown_action"


# ============================================================
# Actions
# ============================================================

@dataclass(frozen=True)
class AddItem:
    """Add a prepared line; merged into the existing line for the same product."""
    item: CartItem


@dataclass(frozen=True)
class UpdateQuantity:
    item_id: str
    quantity: int


@dataclass(frozen=True)
class MarkItemDeleting:
    item_id: str


@dataclass(frozen=True)
class CompleteItemDeletion:
    item_id: str


@dataclass(frozen=True)
class RemoveItem:
    item_id: str


@dataclass(frozen=True)
class UndoDelete:
    pass


@dataclass(frozen=True)
class ClearUndo:
    pass


@dataclass(frozen=True)
class ClearCart:
    pass


@dataclass(frozen=True)
class ToggleCart:
    pass


@dataclass(frozen=True)
class SetCartOpen:
    is_open: bool


@dataclass(frozen=True)
class LoadCart:
    items: Tuple[CartItem, ...]


CartAction = Union[
    AddItem,
    UpdateQuantity,
    MarkItemDeleting,
    CompleteItemDeletion,
    RemoveItem,
    UndoDelete,
    ClearUndo,
    ClearCart,
    ToggleCart,
    SetCartOpen,
    LoadCart,
]


@dataclass(frozen=True)
class Transition:
    state: CartState
    status: TransitionStatus

    @property
    def ok(self) -> bool:
        return self.status == TransitionStatus.APPLIED


def _applied(state: CartState) -> Transition:
    return Transition(state, TransitionStatus.APPLIED)


def _rejected(state: CartState, status: TransitionStatus) -> Transition:
    return Transition(state, status)


# ============================================================
# Handlers
# ============================================================

def _add_item(state: CartState, action: AddItem) -> Transition:
    new_item = action.item
    if not isinstance(new_item, CartItem) or not validate_quantity(new_item.quantity):
        return _rejected(state, TransitionStatus.INVALID_QUANTITY)

    existing = find_cart_item(state.items, new_item.product_id)
    if existing is None:
        return _applied(replace(state, items=state.items + (new_item,)))

    combined = existing.quantity + new_item.quantity
    if combined > MAX_QUANTITY:
        # Rejected in full, never clamped
        return _rejected(state, TransitionStatus.INVALID_QUANTITY)

    items = tuple(
        replace(item, quantity=combined) if item.id == existing.id else item
        for item in state.items
    )
    return _applied(replace(state, items=items))


def _update_quantity(state: CartState, action: UpdateQuantity) -> Transition:
    if not validate_quantity(action.quantity):
        return _rejected(state, TransitionStatus.INVALID_QUANTITY)
    if find_cart_item_by_id(state.items, action.item_id) is None:
        return _rejected(state, TransitionStatus.ITEM_NOT_FOUND)

    items = tuple(
        replace(item, quantity=action.quantity) if item.id == action.item_id else item
        for item in state.items
    )
    return _applied(replace(state, items=items))


def _mark_item_deleting(state: CartState, action: MarkItemDeleting) -> Transition:
    target = find_cart_item_by_id(state.items, action.item_id)
    if target is None:
        return _rejected(state, TransitionStatus.ITEM_NOT_FOUND)
    if target.is_deleting:
        return _applied(state)

    items = tuple(
        replace(item, is_deleting=True) if item.id == action.item_id else item
        for item in state.items
    )
    return _applied(replace(state, items=items))


def _remove_line(state: CartState, item_id: str) -> Transition:
    target = find_cart_item_by_id(state.items, item_id)
    if target is None:
        return _rejected(state, TransitionStatus.ITEM_NOT_FOUND)

    items = tuple(item for item in state.items if item.id != item_id)
    # Single-slot buffer: any earlier deletion is lost here
    return _applied(replace(state, items=items, last_deleted_item=target))


def _complete_item_deletion(state: CartState, action: CompleteItemDeletion) -> Transition:
    return _remove_line(state, action.item_id)


def _remove_item(state: CartState, action: RemoveItem) -> Transition:
    return _remove_line(state, action.item_id)


def _undo_delete(state: CartState, action: UndoDelete) -> Transition:
    restored = state.last_deleted_item
    if restored is None:
        return _rejected(state, TransitionStatus.NOTHING_TO_UNDO)

    # Appended at the end, not at the original position
    items = state.items + (replace(restored, is_deleting=False),)
    return _applied(replace(state, items=items, last_deleted_item=None))


def _clear_undo(state: CartState, action: ClearUndo) -> Transition:
    if state.last_deleted_item is None:
        return _applied(state)
    return _applied(replace(state, last_deleted_item=None))


def _clear_cart(state: CartState, action: ClearCart) -> Transition:
    return _applied(replace(state, items=()))


def _toggle_cart(state: CartState, action: ToggleCart) -> Transition:
    return _applied(replace(state, is_open=not state.is_open))


def _set_cart_open(state: CartState, action: SetCartOpen) -> Transition:
    is_open = bool(action.is_open)
    if state.is_open == is_open:
        return _applied(state)
    return _applied(replace(state, is_open=is_open))


def _load_cart(state: CartState, action: LoadCart) -> Transition:
    raw_items = action.items if isinstance(action.items, (list, tuple)) else ()
    items = tuple(
        item for item in raw_items
        if isinstance(item, CartItem) and validate_quantity(item.quantity)
    )
    return _applied(replace(state, items=items))


_HANDLERS: Dict[type, Callable[[CartState, object], Transition]] = {
    AddItem: _add_item,
    UpdateQuantity: _update_quantity,
    MarkItemDeleting: _mark_item_deleting,
    CompleteItemDeletion: _complete_item_deletion,
    RemoveItem: _remove_item,
    UndoDelete: _undo_delete,
    ClearUndo: _clear_undo,
    ClearCart: _clear_cart,
    ToggleCart: _toggle_cart,
    SetCartOpen: _set_cart_open,
    LoadCart: _load_cart,
}


def transition(state: Optional[CartState], action: object) -> Transition:
    """Apply one action and report what happened."""
    if state is None:
        state = CartState()
    handler = _HANDLERS.get(type(action))
    if handler is None:
        return _rejected(state, TransitionStatus.UNKNOWN_ACTION)
    return handler(state, action)


def reduce_cart(state: Optional[CartState], action: object) -> CartState:
    """Reducer form of ``transition``: just the successor state."""
    return transition(state, action).state


__all__ = [
    "TransitionStatus",
    "Transition",
    "CartAction",
    "AddItem",
    "UpdateQuantity",
    "MarkItemDeleting",
    "CompleteItemDeletion",
    "RemoveItem",
    "UndoDelete",
    "ClearUndo",
    "ClearCart",
    "ToggleCart",
    "SetCartOpen",
    "LoadCart",
    "transition",
    "reduce_cart",
]
