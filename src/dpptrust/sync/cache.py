# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""TTL cache and in-flight request sharing for bulk ledger queries.

QueryCache holds remote results keyed by query with a freshness window.
RequestCoalescer makes concurrent callers of the same query share one
fetch: the fetch runs as an asyncio.Task and every caller awaits it through
asyncio.shield, so a cancelled caller never cancels the shared fetch.

Invalidation bumps a per-key generation counter. A fetch that started
before an invalidation still answers its callers but does not write its
(possibly stale) result into the cache.

Not thread-safe; the registries are mutated only between suspension points
of a single event loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """One cached query result."""

    data: T
    fetched_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.fetched_at < self.ttl

    def age(self, now: float) -> float:
        return now - self.fetched_at


class QueryCache:
    """Cache of query results with per-entry TTL.

    A TTL of 0 disables freshness: entries are still kept (the stale-cache
    fallback can serve them) but are never returned as fresh.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry[Any]] = {}
        self._generations: dict[Hashable, int] = {}
        self.hits = 0
        self.misses = 0

    def now(self) -> float:
        return self._clock()

    def get_fresh(self, key: Hashable) -> Any | None:
        """Return cached data younger than its TTL, else None."""
        entry = self._entries.get(key)
        if entry is not None and entry.is_fresh(self._clock()):
            self.hits += 1
            return entry.data
        self.misses += 1
        return None

    def get_entry(self, key: Hashable) -> CacheEntry[Any] | None:
        """Return the entry regardless of age."""
        return self._entries.get(key)

    def put(self, key: Hashable, data: Any, ttl: float) -> CacheEntry[Any]:
        entry = CacheEntry(data=data, fetched_at=self._clock(), ttl=ttl)
        self._entries[key] = entry
        return entry

    def generation(self, key: Hashable) -> int:
        return self._generations.get(key, 0)

    def invalidate(self, key: Hashable) -> None:
        """Drop an entry and mark fetches started before now as outdated."""
        self._entries.pop(key, None)
        self._generations[key] = self.generation(key) + 1

    def clear(self) -> None:
        for key in list(self._entries):
            self.invalidate(key)

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        return {
            "entries": {
                str(key): {"age": entry.age(now), "ttl": entry.ttl, "fresh": entry.is_fresh(now)}
                for key, entry in self._entries.items()
            },
            "hits": self.hits,
            "misses": self.misses,
        }


class RequestCoalescer:
    """Shares one in-flight fetch among concurrent callers of the same key."""

    def __init__(self) -> None:
        self._in_flight: dict[Hashable, asyncio.Task[Any]] = {}
        self.started = 0
        self.joined = 0

    def in_flight(self, key: Hashable) -> bool:
        return key in self._in_flight

    async def run(self, key: Hashable, fetch: Callable[[], Awaitable[T]]) -> T:
        """Run fetch for key, or join the fetch already running for it.

        Exceptions raised by the fetch reach every caller sharing it.
        """
        task = self._in_flight.get(key)
        if task is None:
            self.started += 1
            task = asyncio.ensure_future(fetch())
            self._in_flight[key] = task
            task.add_done_callback(lambda t: self._release(key, t))
        else:
            self.joined += 1
            logger.debug(f"Joining in-flight fetch for {key}")

        return await asyncio.shield(task)

    def _release(self, key: Hashable, task: asyncio.Task[Any]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        # Retrieve the exception so an unawaited failure is not reported as lost
        if not task.cancelled():
            task.exception()

    def stats(self) -> dict[str, Any]:
        return {
            "in_flight": [str(key) for key in self._in_flight],
            "started": self.started,
            "joined": self.joined,
        }
