"""Keyed delayed tasks for the cart controller."""
import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from storefront.logging import get_logger

logger = get_logger(__name__)

Callback = Callable[[], Union[Any, Awaitable[Any]]]


class TaskScheduler:
    """
    Runs a callback after a delay, one task per key.

    Scheduling a key that is already pending cancels the old task first, so
    a key never fires twice. ``aclose()`` cancels everything still waiting,
    waits for callbacks already running, and turns later ``schedule()``
    calls into no-ops.

    Must be used from inside a running event loop.
    """

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}
        self._running: Set[asyncio.Task] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def schedule(self, key: str, delay: float, callback: Callback) -> Optional[asyncio.Task]:
        if self._closed:
            logger.debug(f"Scheduler closed, dropping '{key}'")
            return None
        self.cancel(key)
        task = asyncio.create_task(self._run(key, max(0.0, delay), callback), name=f"cart:{key}")
        self._tasks[key] = task
        return task

    async def _run(self, key: str, delay: float, callback: Callback) -> None:
        await asyncio.sleep(delay)

        # Unregister before running so the callback may schedule this key again
        current = asyncio.current_task()
        if self._tasks.get(key) is current:
            del self._tasks[key]
        self._running.add(current)

        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Scheduled task '{key}' failed: {e}", exc_info=True)
        finally:
            self._running.discard(current)

    def cancel(self, key: str) -> bool:
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def cancel_prefix(self, prefix: str) -> List[str]:
        cancelled = [key for key in self.pending_keys(prefix) if self.cancel(key)]
        return cancelled

    def cancel_all(self) -> None:
        for key in list(self._tasks):
            self.cancel(key)

    def is_pending(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    def pending_keys(self, prefix: str = "") -> List[str]:
        return [key for key in self._tasks if key.startswith(prefix) and self.is_pending(key)]

    async def aclose(self) -> None:
        """Cancel waiting tasks, let running callbacks finish, refuse new work."""
        self._closed = True
        tasks = list(self._tasks.values())
        self.cancel_all()
        # A callback may be the one closing us
        tasks.extend(task for task in self._running if task is not asyncio.current_task())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def __len__(self) -> int:
        return len(self.pending_keys())
