"""In-memory result cache with async-safe access and in-flight dedupe.

Design notes:
    - An asyncio.Lock guards the entry table and the in-flight table so
      concurrent callers never corrupt state.
    - Keys are input fingerprints (see foundation.fingerprint); identical
      inputs share one computation and one cached result.
    - Computations are synchronous callables run in a worker thread via
      asyncio.to_thread.  Each receives a CancellationToken, set once
      every caller awaiting it has been cancelled.
    - Results of cancelled computations are returned to any remaining
      awaiter but never cached.
    - The cache is bounded; the least recently used entry is evicted first.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Any, Callable, TypeVar

from cascade_forecast.foundation.cancellation import CancellationToken
from cascade_forecast.foundation.fingerprint import fingerprint

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _consume_exception(task: asyncio.Task) -> None:
    # Marks the exception retrieved even when no caller awaits the task
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Computation failed: %r", task.exception())


class _InFlight:
    __slots__ = ("token", "task", "waiters")

    def __init__(self) -> None:
        self.token = CancellationToken()
        self.task: asyncio.Task | None = None
        self.waiters = 0


class ResultCache:
    """Async-safe memo of computation results keyed by input fingerprint.

    Args:
        max_entries: Upper bound on cached results before LRU eviction.
    """

    def __init__(self, max_entries: int = 256) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._lock = asyncio.Lock()
        self._entries: OrderedDict[str, Any] = OrderedDict()
        self._in_flight: dict[str, _InFlight] = {}
        self._hits = 0
        self._misses = 0

    @staticmethod
    def key_for(*parts: Any) -> str:
        return fingerprint(*parts)

    # ── Public API ───────────────────────────────────────────────────────

    async def get_or_compute(self, key: str, compute: Callable[[CancellationToken], T]) -> T:
        """Return the cached result for *key*, computing it at most once.

        Concurrent callers with the same key await the same computation.
        """
        async with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
                self._hits += 1
                return self._entries[key]

            flight = self._in_flight.get(key)
            if flight is None:
                self._misses += 1
                flight = _InFlight()
                flight.task = asyncio.create_task(self._run(key, compute, flight))
                flight.task.add_done_callback(_consume_exception)
                self._in_flight[key] = flight
            else:
                self._hits += 1
            flight.waiters += 1

        cancelled = False
        try:
            return await asyncio.shield(flight.task)
        except asyncio.CancelledError:
            cancelled = True
            raise
        finally:
            flight.waiters -= 1
            if cancelled and flight.waiters == 0:
                logger.debug("All callers for %s cancelled; signalling computation", key[:12])
                flight.token.cancel()

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            if key not in self._entries:
                return None
            self._entries.move_to_end(key)
            return self._entries[key]

    async def invalidate(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def stats(self) -> dict:
        return {
            "entries": len(self._entries),
            "max_entries": self._max_entries,
            "in_flight": len(self._in_flight),
            "hits": self._hits,
            "misses": self._misses,
        }

    # ── Internal ─────────────────────────────────────────────────────────

    async def _run(self, key: str, compute: Callable[[CancellationToken], T], flight: _InFlight) -> T:
        try:
            result = await asyncio.to_thread(compute, flight.token)
        except BaseException:
            async with self._lock:
                self._in_flight.pop(key, None)
            raise

        async with self._lock:
            self._in_flight.pop(key, None)
            if flight.token.cancelled:
                logger.debug("Discarding result of cancelled computation %s", key[:12])
                return result
            self._entries[key] = result
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cache entry %s", evicted[:12])
        return result
