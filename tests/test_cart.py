"""
Tests for Cart Controller
"""
import asyncio
import json
from dataclasses import replace
from decimal import Decimal
from unittest.mock import AsyncMock, Mock

import pytest

import storefront.cart.service as cart_service
from storefront.cart import CartController, CartSettings, CartStorage, MemoryKeyValueStore
from storefront.cart.scheduler import TaskScheduler
from storefront.cart.state import TransitionStatus
from storefront.errors import ERROR_INVALID_QUANTITY


class FailingStore(MemoryKeyValueStore):
    """Store that refuses every write"""

    async def set(self, key, value):
        raise OSError("disk full")


class SlowStore(MemoryKeyValueStore):
    """Store whose writes take a while"""

    async def set(self, key, value):
        await asyncio.sleep(0.1)
        await super().set(key, value)


def saved_document(store):
    return json.loads(store.data["eggypro-cart"])


class TestAddAndUpdate:
    """Tests for adding and updating lines."""

    @pytest.mark.asyncio
    async def test_add_merges_same_product(self, make_controller, product_a):
        """Test adding a product twice merges into one line."""
        cart = make_controller()
        await cart.add_item(product_a, 2)
        result = await cart.add_item(product_a, 1)

        assert result.ok
        assert len(result.view.items) == 1
        assert result.view.total_items == 3
        assert result.view.total_price == Decimal("89.97")
        assert result.view.formatted_total == "$89.97"

    @pytest.mark.asyncio
    async def test_add_accepts_mapping(self, make_controller):
        """Test a raw catalog mapping is accepted as a product."""
        cart = make_controller()
        result = await cart.add_item({"id": 5, "name": "Oats", "price": "$4.00", "imageUrl": "/oats.jpg"})

        item = result.view.items[0]
        assert item.product_id == "5"
        assert item.image_url == "/oats.jpg"
        assert item.price.amount == Decimal("4.00")

    @pytest.mark.asyncio
    async def test_add_with_broken_price(self, make_controller, product_broken):
        """Test a product with an unusable price is added at zero."""
        cart = make_controller()
        result = await cart.add_item(product_broken)
        assert result.ok
        assert not result.view.items[0].price.is_valid
        assert result.view.total_price == 0

    @pytest.mark.asyncio
    async def test_add_over_limit_rejected(self, make_controller, product_a):
        """Test adding past the per-line limit is rejected."""
        cart = make_controller()
        await cart.add_item(product_a, 99)
        result = await cart.add_item(product_a, 1)
        assert result.status == TransitionStatus.INVALID_QUANTITY
        assert result.view.total_items == 99

    @pytest.mark.asyncio
    async def test_update_quantity_zero_is_ignored(self, make_controller, product_a):
        """Test setting quantity to zero leaves the line alone."""
        cart = make_controller()
        added = await cart.add_item(product_a, 2)
        item_id = added.view.items[0].id

        result = await cart.update_quantity(item_id, 0)
        assert not result.ok
        assert result.message == ERROR_INVALID_QUANTITY
        assert cart.view.items[0].quantity == 2

        assert (await cart.update_quantity(item_id, 5)).view.total_items == 5


class TestPersistence:
    """Tests for storage wiring."""

    @pytest.mark.asyncio
    async def test_items_written_after_change(self, make_controller, memory_store, product_a):
        """Test item changes are saved as a versioned document."""
        cart = make_controller()
        await cart.add_item(product_a, 2)

        document = saved_document(memory_store)
        assert document["version"] == 2
        assert document["items"][0]["price"] == "29.99"
        assert document["items"][0]["quantity"] == 2

    @pytest.mark.asyncio
    async def test_drawer_changes_are_not_written(self, make_controller, memory_store):
        """Test opening the drawer does not touch storage."""
        cart = make_controller()
        await cart.toggle_cart()
        assert memory_store.data == {}

    @pytest.mark.asyncio
    async def test_reload_restores_lines(self, make_controller, product_a, product_b):
        """Test a fresh controller loads what the previous one saved."""
        first = make_controller()
        await first.add_item(product_a, 2)
        await first.add_item(product_b)

        second = make_controller()
        result = await second.load()
        assert [item.name for item in result.view.items] == ["Protein Bar", "Shaker"]
        assert result.view.total_price == Decimal("75.48")

    @pytest.mark.asyncio
    async def test_write_failure_keeps_cart_working(self, product_a):
        """Test a failing store does not break the in-memory cart."""
        cart = CartController(CartStorage(FailingStore()))
        result = await cart.add_item(product_a)
        assert result.ok
        assert cart.view.total_items == 1

    @pytest.mark.asyncio
    async def test_context_manager_loads(self, make_controller, product_a):
        """Test async with loads on enter and closes on exit."""
        async with make_controller() as first:
            await first.add_item(product_a, 3)

        async with make_controller() as second:
            assert second.view.total_items == 3


class TestDeletion:
    """Tests for deferred deletion, undo and their timers."""

    @pytest.mark.asyncio
    async def test_deferred_removal_completes_after_delay(self, make_controller, product_a, product_b):
        """Test deferred removal finishes once the delay passes."""
        cart = make_controller(undo_timeout=10)
        await cart.add_item(product_a)
        added = await cart.add_item(product_b)
        item_id = added.view.items[1].id

        marked = await cart.remove(item_id, deferred=True)
        assert marked.view.items[1].is_deleting
        assert marked.view.total_items == 2

        await asyncio.sleep(0.1)
        assert [item.name for item in cart.view.items] == ["Protein Bar"]
        assert cart.view.can_undo
        assert cart.state.last_deleted_item.id == item_id

        await cart.aclose()

    @pytest.mark.asyncio
    async def test_complete_now_cancels_timer(self, make_controller, product_a):
        """Test completing a deletion early cancels its timer."""
        cart = make_controller(deletion_delay=10, undo_timeout=10)
        item_id = (await cart.add_item(product_a)).view.items[0].id

        await cart.mark_item_deleting(item_id)
        result = await cart.complete_item_deletion(item_id)
        assert result.ok
        assert cart.view.is_empty
        assert cart._scheduler.pending_keys("delete:") == []

        await cart.aclose()

    @pytest.mark.asyncio
    async def test_double_completion_is_a_no_op(self, make_controller, product_a):
        """Test completing an already removed line reports not found."""
        cart = make_controller(undo_timeout=10)
        item_id = (await cart.add_item(product_a)).view.items[0].id

        await cart.remove_item(item_id)
        result = await cart.complete_item_deletion(item_id)
        assert result.status == TransitionStatus.ITEM_NOT_FOUND
        assert cart.view.can_undo

        await cart.aclose()

    @pytest.mark.asyncio
    async def test_clear_cart_cancels_pending_deletion(self, make_controller, product_a):
        """Test clearing the cart drops pending deletions."""
        cart = make_controller(deletion_delay=0.05)
        item_id = (await cart.add_item(product_a)).view.items[0].id

        await cart.remove(item_id, deferred=True)
        result = await cart.clear_cart()
        assert result.view.is_empty
        assert result.view.total_price == 0

        await asyncio.sleep(0.1)
        assert not cart.view.can_undo

    @pytest.mark.asyncio
    async def test_undo_restores_line(self, make_controller, product_a, product_b):
        """Test undo brings back the last removed line."""
        cart = make_controller(undo_timeout=10)
        await cart.add_item(product_a, 3)
        removed_id = (await cart.add_item(product_b)).view.items[1].id

        await cart.remove(removed_id)
        assert cart.view.total_price == Decimal("89.97")

        result = await cart.undo_delete()
        assert result.ok
        assert [item.id for item in result.view.items][-1] == removed_id
        assert not result.view.can_undo
        assert result.view.total_price == Decimal("105.47")

        await asyncio.sleep(0.05)
        assert len(cart._scheduler) == 0

    @pytest.mark.asyncio
    async def test_undo_without_deletion(self, make_controller):
        """Test undo with nothing removed is rejected."""
        cart = make_controller()
        result = await cart.undo_delete()
        assert result.status == TransitionStatus.NOTHING_TO_UNDO

    @pytest.mark.asyncio
    async def test_undo_window_expires(self, make_controller, product_a):
        """Test the undo buffer empties after the timeout."""
        cart = make_controller(undo_timeout=0.05)
        item_id = (await cart.add_item(product_a)).view.items[0].id

        await cart.remove(item_id)
        assert cart.view.can_undo

        await asyncio.sleep(0.3)
        assert not cart.view.can_undo

    @pytest.mark.asyncio
    async def test_new_deletion_restarts_undo_window(self, make_controller, product_a, product_b):
        """Test each deletion gets the full undo window."""
        cart = make_controller(undo_timeout=0.3)
        first_id = (await cart.add_item(product_a)).view.items[0].id
        second_id = (await cart.add_item(product_b)).view.items[1].id

        await cart.remove(first_id)
        await asyncio.sleep(0.2)
        await cart.remove(second_id)
        await asyncio.sleep(0.15)

        # Past the first window, inside the second
        assert cart.view.can_undo
        assert cart.state.last_deleted_item.id == second_id

        await asyncio.sleep(0.4)
        assert not cart.view.can_undo

    @pytest.mark.asyncio
    async def test_clear_undo_cancels_expiry(self, make_controller, product_a):
        """Test clearing undo also cancels its expiry timer."""
        cart = make_controller(undo_timeout=10)
        item_id = (await cart.add_item(product_a)).view.items[0].id
        await cart.remove(item_id)

        result = await cart.clear_undo()
        assert not result.view.can_undo
        assert len(cart._scheduler) == 0

    @pytest.mark.asyncio
    async def test_aclose_finishes_pending_deletions(self, make_controller, memory_store, product_a):
        """Test closing completes deletions that are still waiting."""
        cart = make_controller(deletion_delay=10)
        item_id = (await cart.add_item(product_a)).view.items[0].id
        await cart.remove(item_id, deferred=True)

        await cart.aclose()
        assert cart.view.is_empty
        assert saved_document(memory_store)["items"] == []
        assert len(cart._scheduler) == 0

    @pytest.mark.asyncio
    async def test_aclose_waits_for_running_deletion(self, fast_settings, product_a):
        """Test a completion already writing when the cart closes arms no new timer."""
        store = SlowStore()
        cart = CartController(CartStorage(store), settings=replace(fast_settings, undo_timeout=10))
        item_id = (await cart.add_item(product_a)).view.items[0].id

        await cart.remove(item_id, deferred=True)
        await asyncio.sleep(0.05)
        await cart.aclose()

        assert cart.view.is_empty
        assert cart._scheduler.pending_keys() == []
        await asyncio.sleep(0.15)
        assert cart._scheduler.pending_keys() == []
        assert json.loads(store.data["eggypro-cart"])["items"] == []

    @pytest.mark.asyncio
    async def test_closed_scheduler_ignores_new_timers(self):
        """Test scheduling after close is a no-op."""
        scheduler = TaskScheduler()
        await scheduler.aclose()
        assert scheduler.schedule("undo", 0, Mock()) is None
        assert scheduler.closed
        assert len(scheduler) == 0


class TestDrawerAndCheckout:
    """Tests for drawer state and buy-now."""

    @pytest.mark.asyncio
    async def test_open_close_toggle(self, make_controller):
        """Test the drawer open, close and toggle operations."""
        cart = make_controller()
        assert (await cart.open_cart()).view.is_open
        assert not (await cart.close_cart()).view.is_open
        assert (await cart.toggle_cart()).view.is_open
        assert not (await cart.set_cart_open(False)).view.is_open

    @pytest.mark.asyncio
    async def test_buy_now(self, make_controller, navigator, product_a):
        """Test buy now adds the product and goes to checkout."""
        cart = make_controller()
        await cart.open_cart()

        result = await cart.buy_now(product_a, 2)
        assert result.ok
        assert result.view.total_items == 2
        assert not result.view.is_open
        assert navigator.paths == ["/checkout"]

    @pytest.mark.asyncio
    async def test_buy_now_navigates_even_when_rejected(self, make_controller, navigator, product_a):
        """Test buy now navigates even if the add is rejected."""
        cart = make_controller()
        result = await cart.buy_now(product_a, 0)
        assert result.status == TransitionStatus.INVALID_QUANTITY
        assert navigator.paths == ["/checkout"]

    @pytest.mark.asyncio
    async def test_async_navigator(self, cart_storage, fast_settings, product_a):
        """Test an async navigator is awaited."""
        navigate = AsyncMock()
        cart = CartController(cart_storage, settings=fast_settings, navigate=navigate)
        await cart.buy_now(product_a)
        navigate.assert_awaited_once_with("/checkout")

    @pytest.mark.asyncio
    async def test_navigator_failure_is_swallowed(self, cart_storage, product_a):
        """Test a failing navigator does not raise."""
        navigate = Mock(side_effect=RuntimeError("router gone"))
        cart = CartController(cart_storage, navigate=navigate)
        result = await cart.buy_now(product_a)
        assert result.ok
        navigate.assert_called_once_with("/checkout")

    @pytest.mark.asyncio
    async def test_buy_now_without_navigator(self, cart_storage, product_a):
        """Test buy now works with no navigator configured."""
        cart = CartController(cart_storage)
        assert (await cart.buy_now(product_a)).ok


class TestSubscribers:
    """Tests for view notifications."""

    @pytest.mark.asyncio
    async def test_listener_receives_views(self, make_controller, product_a):
        """Test subscribers get a view on every change."""
        cart = make_controller()
        views = []
        unsubscribe = cart.subscribe(views.append)

        await cart.add_item(product_a)
        await cart.open_cart()
        assert [view.total_items for view in views] == [1, 1]
        assert views[-1].is_open

        unsubscribe()
        await cart.close_cart()
        assert len(views) == 2

    @pytest.mark.asyncio
    async def test_no_op_does_not_notify(self, make_controller):
        """Test rejected operations do not notify subscribers."""
        cart = make_controller()
        views = []
        cart.subscribe(views.append)
        await cart.close_cart()
        await cart.undo_delete()
        assert views == []

    @pytest.mark.asyncio
    async def test_timer_changes_notify(self, make_controller, product_a):
        """Test timer-driven changes notify subscribers."""
        cart = make_controller(undo_timeout=10)
        item_id = (await cart.add_item(product_a)).view.items[0].id
        views = []
        cart.subscribe(views.append)

        await cart.remove(item_id, deferred=True)
        await asyncio.sleep(0.1)
        assert views[-1].is_empty
        assert views[-1].can_undo

        await cart.aclose()

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_cart(self, make_controller, product_a):
        """Test a raising listener does not stop the cart."""
        cart = make_controller()
        cart.subscribe(Mock(side_effect=ValueError("boom")))
        assert (await cart.add_item(product_a)).ok


class TestSettings:
    """Tests for CartSettings and the singleton."""

    def test_from_env(self, monkeypatch):
        """Test settings are read from environment variables."""
        monkeypatch.setenv("CART_DELETION_DELAY", "0.5")
        monkeypatch.setenv("CART_UNDO_TIMEOUT", "not-a-number")
        monkeypatch.setenv("CART_UNDO_SETTLE_DELAY", "-1")
        monkeypatch.setenv("CART_CHECKOUT_PATH", "/pay")
        monkeypatch.setenv("CART_STORAGE_KEY", "custom-cart")

        settings = CartSettings.from_env()
        assert settings.deletion_delay == 0.5
        assert settings.undo_timeout == 5.0
        assert settings.undo_settle_delay == 0.05
        assert settings.checkout_path == "/pay"
        assert settings.storage_key == "custom-cart"

    def test_singleton_uses_file_storage(self, monkeypatch, tmp_path):
        """Test the shared controller is backed by file storage."""
        monkeypatch.setenv("CART_STORAGE_DIR", str(tmp_path))
        monkeypatch.setattr(cart_service, "_cart_controller", None)

        controller = cart_service.get_cart_controller()
        assert cart_service.get_cart_controller() is controller
        assert controller.storage.store.directory == tmp_path

    @pytest.mark.asyncio
    async def test_close_singleton(self, monkeypatch, tmp_path, product_a):
        """Test closing the shared controller resets it."""
        monkeypatch.setenv("CART_STORAGE_DIR", str(tmp_path))
        monkeypatch.setattr(cart_service, "_cart_controller", None)

        controller = cart_service.get_cart_controller()
        await controller.add_item(product_a)
        await cart_service.close_cart_controller()

        assert cart_service._cart_controller is None
        assert (tmp_path / "eggypro-cart.json").exists()
