"""Pytest configuration and fixtures"""
import os
import pytest
from dataclasses import replace

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from storefront.cart import CartController, CartSettings, CartStorage, CatalogProduct, MemoryKeyValueStore
from storefront.services.price_monitoring import get_price_monitor


@pytest.fixture(autouse=True)
def price_monitor():
    """Fresh process-wide price monitor for every test"""
    monitor = get_price_monitor()
    monitor.reset_metrics()
    yield monitor
    monitor.reset_metrics()


@pytest.fixture
def fast_settings():
    """Cart settings with tiny delays so timers fire quickly"""
    return CartSettings(
        deletion_delay=0.01,
        undo_timeout=0.05,
        undo_settle_delay=0.01,
        checkout_path="/checkout",
    )


@pytest.fixture
def memory_store():
    """In-memory key/value store"""
    return MemoryKeyValueStore()


@pytest.fixture
def cart_storage(memory_store):
    """Cart storage backed by the memory store"""
    return CartStorage(memory_store)


@pytest.fixture
def navigator():
    """Records checkout navigations"""
    class Recorder:
        def __init__(self):
            self.paths = []

        def __call__(self, path):
            self.paths.append(path)

    return Recorder()


@pytest.fixture
def make_controller(cart_storage, fast_settings, navigator):
    """Factory for controllers sharing one storage"""
    def _make(**overrides):
        settings = replace(fast_settings, **overrides)
        return CartController(cart_storage, settings=settings, navigate=navigator)

    return _make


@pytest.fixture
def product_a():
    """Product priced as a plain numeric string"""
    return CatalogProduct(id=1, name="Protein Bar", price="29.99", images=["/img/bar.jpg"], slug="protein-bar")


@pytest.fixture
def product_b():
    """Product priced as a float"""
    return CatalogProduct(id=2, name="Shaker", price=15.5, imageUrl="/img/shaker.jpg", slug="shaker")


@pytest.fixture
def product_broken():
    """Product whose price cannot be parsed"""
    return CatalogProduct(id=3, name="Mystery Box", price="not-a-price")
