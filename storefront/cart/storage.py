"""
Local cart persistence.

The cart lives on the shopper's side only. ``KeyValueStore`` is the small
string key/value surface the cart needs (the same get/set/delete shape as a
Redis client), and ``CartStorage`` owns the JSON document stored under one
key:

    {"version": 2, "items": [{"id": ..., "product_id": ..., ...}]}

Older payloads (a bare camelCase array written before the envelope existed)
are migrated on read.
"""
import asyncio
import json
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, Union

from storefront.errors import (
    ERROR_STORAGE_CORRUPTED,
    ERROR_STORAGE_UNAVAILABLE,
    ERROR_STORAGE_VERSION,
)
from storefront.logging import get_logger
from .models import CartItem

logger = get_logger(__name__)

CART_STORAGE_KEY = "eggypro-cart"
CART_STORAGE_VERSION = 2


class UnsupportedCartVersion(ValueError):
    """Saved cart was written by a newer (or unknown) schema."""


# ============================================================
# Key/value stores
# ============================================================

class KeyValueStore(ABC):
    """Async string key/value store."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...


class MemoryKeyValueStore(KeyValueStore):
    """In-process store; contents vanish with the process."""

    def __init__(self, data: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(data or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)


_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class FileKeyValueStore(KeyValueStore):
    """
    One JSON file per key inside a directory.

    Writes go to a temporary file that is then moved over the target, so a
    crash mid-write leaves the previous value intact.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def _read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _write(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_path, self._path(key))
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def _delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, key, value)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete, key)


# ============================================================
# Document codec
# ============================================================

def _migrate_v1(entries: Any) -> dict:
    """Bare camelCase array -> versioned envelope."""
    if not isinstance(entries, list):
        raise TypeError("Version 1 cart must be a list")
    items = []
    for entry in entries:
        items.append({
            "id": entry["id"],
            "product_id": entry["productId"],
            "name": entry["name"],
            "price": entry.get("price"),
            "quantity": entry["quantity"],
            "image_url": entry.get("imageUrl") or "",
            "slug": entry.get("slug") or "",
        })
    return {"version": 2, "items": items}


# version -> step that upgrades a document to version + 1
MIGRATIONS: Dict[int, Callable[[Any], dict]] = {
    1: _migrate_v1,
}


def encode_cart(items: Iterable[CartItem]) -> str:
    return json.dumps(
        {"version": CART_STORAGE_VERSION, "items": [item.to_dict() for item in items]},
        ensure_ascii=False,
    )


def decode_cart(raw: str) -> Tuple[CartItem, ...]:
    """
    Parse a saved cart document.

    All-or-nothing: one malformed entry rejects the whole document.

    Raises:
        UnsupportedCartVersion: if the version is unknown
        ValueError, KeyError, TypeError: if the document is malformed
    """
    document: Any = json.loads(raw)

    if isinstance(document, list):
        version, payload = 1, document
    elif isinstance(document, dict):
        version, payload = document.get("version"), document
    else:
        raise TypeError(f"Unexpected cart document type: {type(document).__name__}")

    if not isinstance(version, int) or isinstance(version, bool) or version > CART_STORAGE_VERSION:
        raise UnsupportedCartVersion(f"{ERROR_STORAGE_VERSION}: {version!r}")

    while version < CART_STORAGE_VERSION:
        migrate = MIGRATIONS.get(version)
        if migrate is None:
            raise UnsupportedCartVersion(f"{ERROR_STORAGE_VERSION}: {version!r}")
        payload = migrate(payload)
        version = payload["version"]

    entries = payload.get("items")
    if not isinstance(entries, list):
        raise TypeError("Cart items must be a list")
    return tuple(CartItem.from_dict(entry) for entry in entries)


# ============================================================
# Cart storage
# ============================================================

class CartStorage:
    """
    Loads and saves cart lines under one key.

    Neither method raises: storage trouble is logged and the cart carries on
    in memory.
    """

    def __init__(self, store: KeyValueStore, key: str = CART_STORAGE_KEY):
        self.store = store
        self.key = key
        self._write_lock = asyncio.Lock()

    async def load_items(self) -> Tuple[CartItem, ...]:
        """Saved lines, or an empty tuple if there is nothing usable."""
        try:
            raw = await self.store.get(self.key)
        except Exception as e:
            logger.error(f"{ERROR_STORAGE_UNAVAILABLE}: {e}")
            return ()

        if not raw:
            return ()

        try:
            return decode_cart(raw)
        except UnsupportedCartVersion as e:
            # Left in place for whichever build wrote it
            logger.warning(f"Ignoring saved cart: {e}")
            return ()
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"{ERROR_STORAGE_CORRUPTED}: {e}")
            await self.clear()
            return ()
        except Exception as e:
            # e.g. RecursionError from absurdly nested JSON
            logger.error(f"{ERROR_STORAGE_CORRUPTED}: {type(e).__name__}: {e}")
            await self.clear()
            return ()

    async def save_items(self, items: Iterable[CartItem]) -> bool:
        """Overwrite the saved cart. Returns False if the write failed."""
        payload = encode_cart(items)
        try:
            async with self._write_lock:
                await self.store.set(self.key, payload)
            return True
        except Exception as e:
            logger.error(f"Failed to save cart: {e}")
            return False

    async def clear(self) -> bool:
        try:
            await self.store.delete(self.key)
            return True
        except Exception as e:
            logger.error(f"Failed to clear saved cart: {e}")
            return False
