"""Deduplicating work queue with per-key exclusivity and backoff."""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)


class WorkQueue:
    """Queue of object keys.

    A key is held by at most one worker at a time. Adding a key that is being
    processed marks it dirty; it is queued again when the worker calls
    :meth:`done`. A key waiting in the queue is never queued twice.
    """

    def __init__(self, name: str, backoff_base_s: float = 0.5, backoff_max_s: float = 300.0):
        self.name = name
        self._backoff_base_s = backoff_base_s
        self._backoff_max_s = backoff_max_s
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._dirty: set[str] = set()
        self._processing: set[str] = set()
        self._failures: dict[str, int] = {}
        self._delayed: dict[str, asyncio.TimerHandle] = {}
        self._shutting_down = False

    def __len__(self) -> int:
        return len(self._dirty - self._processing)

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def add(self, key: str) -> None:
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key not in self._processing:
            self._queue.put_nowait(key)

    def add_after(self, key: str, delay: float) -> None:
        """Add ``key`` once ``delay`` seconds have passed. The earliest pending delay wins."""
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return
        loop = asyncio.get_running_loop()
        pending = self._delayed.get(key)
        if pending is not None:
            if pending.when() <= loop.time() + delay:
                return
            pending.cancel()
        self._delayed[key] = loop.call_later(delay, self._fire, key)

    def add_rate_limited(self, key: str) -> None:
        """Add ``key`` after an exponential backoff that grows with each failure."""
        failures = self._failures.get(key, 0)
        self._failures[key] = failures + 1
        delay = min(self._backoff_base_s * (2**failures), self._backoff_max_s)
        logger.debug("%s: backing off %s for %.2fs (failure %d)", self.name, key, delay, failures + 1)
        self.add_after(key, delay)

    def forget(self, key: str) -> None:
        """Reset the backoff of ``key``."""
        self._failures.pop(key, None)

    def num_requeues(self, key: str) -> int:
        return self._failures.get(key, 0)

    async def get(self) -> str | None:
        """Next key to process, or None once the queue is shut down."""
        key = await self._queue.get()
        if key is None:
            # wake the next waiting worker too
            self._queue.put_nowait(None)
            return None
        self._processing.add(key)
        self._dirty.discard(key)
        return key

    def done(self, key: str) -> None:
        self._processing.discard(key)
        if key in self._dirty and not self._shutting_down:
            self._queue.put_nowait(key)

    def shutdown(self) -> None:
        self._shutting_down = True
        for handle in self._delayed.values():
            handle.cancel()
        self._delayed.clear()
        self._queue.put_nowait(None)

    def _fire(self, key: str) -> None:
        self._delayed.pop(key, None)
        self.add(key)
