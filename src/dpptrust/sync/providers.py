# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Ordered data providers for bulk queries.

A query is answered by the first provider in the chain that reports
success. The default chain is

    RemoteProvider -> StaleCacheProvider -> LocalProvider

so a ledger outage degrades to the last remote result seen, then to the
local mirror. Reordering or adding a source is a change to the provider
list only.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from ..core.exceptions import DPPException, LedgerUnavailableException
from ..ledger.client import LedgerClient
from ..ledger.health import HealthMonitor
from ..ledger.normalize import normalize_events, normalize_identities
from ..store.local import LocalStore
from .cache import QueryCache, RequestCoalescer

logger = logging.getLogger(__name__)


class QueryKind(str, Enum):
    IDENTITIES = "identities"
    EVENTS = "events"


@dataclass(frozen=True)
class Query:
    """A bulk query; also the cache key."""

    kind: QueryKind
    did: str | None = None

    @property
    def cacheable(self) -> bool:
        """Only the unscoped bulk lists are cached."""
        return self.did is None

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.did}" if self.did else self.kind.value


@dataclass
class ProviderResult:
    """Outcome of one provider attempt."""

    data: list[Any]
    ok: bool
    source: str = ""


@runtime_checkable
class Provider(Protocol):
    """A source able to answer bulk queries."""

    name: str

    async def fetch(self, query: Query) -> ProviderResult:
        ...


# =============================================================================
# PROVIDERS
# =============================================================================


class RemoteProvider:
    """Answers from the remote ledger, gated by the health monitor.

    Concurrent identical queries share one fetch. Successful unscoped
    results are normalized and written to the cache, unless the cache key
    was invalidated while the fetch was running.
    """

    name = "remote"

    def __init__(
        self,
        client: LedgerClient,
        monitor: HealthMonitor,
        cache: QueryCache,
        coalescer: RequestCoalescer,
        ttls: dict[QueryKind, float],
        enabled: Callable[[], bool] = lambda: True,
    ):
        self.client = client
        self.monitor = monitor
        self.cache = cache
        self.coalescer = coalescer
        self.ttls = ttls
        self._enabled = enabled

    async def fetch(self, query: Query) -> ProviderResult:
        if not self._enabled():
            return ProviderResult(data=[], ok=False, source=self.name)

        try:
            data = await self.coalescer.run(query, lambda: self._load(query))
        except DPPException as e:
            logger.warning(f"Remote {query} fetch failed, falling back: {e.message}")
            return ProviderResult(data=[], ok=False, source=self.name)

        return ProviderResult(data=data, ok=True, source=self.name)

    async def _load(self, query: Query) -> list[Any]:
        generation = self.cache.generation(query)

        if not await self.monitor.is_available():
            raise LedgerUnavailableException("Ledger reported unavailable by health monitor")

        if query.kind == QueryKind.IDENTITIES:
            data: list[Any] = normalize_identities(await self.client.list_identities())
        else:
            data = normalize_events(await self.client.list_events(query.did))

        if query.cacheable:
            if self.cache.generation(query) == generation:
                self.cache.put(query, data, self.ttls.get(query.kind, 0.0))
            else:
                logger.debug(f"Not caching {query}: invalidated during fetch")

        logger.debug(f"Fetched {len(data)} {query.kind.value} from ledger")
        return data


class StaleCacheProvider:
    """Answers with the last cached remote result, however old."""

    name = "stale_cache"

    def __init__(self, cache: QueryCache):
        self.cache = cache

    async def fetch(self, query: Query) -> ProviderResult:
        entry = self.cache.get_entry(query) if query.cacheable else None
        if entry is None:
            return ProviderResult(data=[], ok=False, source=self.name)

        logger.info(f"Serving stale {query} ({entry.age(self.cache.now()):.1f}s old)")
        return ProviderResult(data=list(entry.data), ok=True, source=self.name)


class LocalProvider:
    """Answers from the local mirror store; always succeeds."""

    name = "local"

    def __init__(self, store: LocalStore):
        self.store = store

    async def fetch(self, query: Query) -> ProviderResult:
        if query.kind == QueryKind.IDENTITIES:
            data: list[Any] = self.store.list_identities()
        elif query.did:
            data = self.store.events_for(query.did)
        else:
            data = self.store.list_events()
        return ProviderResult(data=data, ok=True, source=self.name)


class ProviderChain:
    """Tries providers in order and returns the first successful result."""

    def __init__(self, providers: list[Provider]):
        self.providers = list(providers)
        self.answered_by: dict[str, int] = {}

    async def fetch(self, query: Query) -> ProviderResult:
        """Answer a query; never raises.

        Returns an empty, unsuccessful result when no provider succeeds.
        """
        for provider in self.providers:
            try:
                result = await provider.fetch(query)
            except Exception:
                logger.exception(f"Provider {provider.name} raised on {query}")
                continue
            if result.ok:
                self.answered_by[provider.name] = self.answered_by.get(provider.name, 0) + 1
                return result

        logger.warning(f"No provider could answer {query}")
        return ProviderResult(data=[], ok=False, source="none")
