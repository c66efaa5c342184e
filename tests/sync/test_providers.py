"""Tests for the provider chain and its providers."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from dpptrust.core.exceptions import LedgerException
from dpptrust.models import DIDEvent
from dpptrust.sync.cache import QueryCache, RequestCoalescer
from dpptrust.sync.providers import (
    LocalProvider,
    Provider,
    ProviderChain,
    ProviderResult,
    Query,
    QueryKind,
    RemoteProvider,
    StaleCacheProvider,
)

IDENTITIES = Query(QueryKind.IDENTITIES)
EVENTS = Query(QueryKind.EVENTS)


@pytest.fixture
def cache(clock):
    return QueryCache(clock=clock)


@pytest.fixture
def remote(mock_client, mock_monitor, cache):
    return RemoteProvider(
        mock_client,
        mock_monitor,
        cache,
        RequestCoalescer(),
        ttls={QueryKind.IDENTITIES: 30.0, QueryKind.EVENTS: 10.0},
    )


class StaticProvider:
    def __init__(self, name, result=None, error=None):
        self.name = name
        self.result = result
        self.error = error
        self.calls = 0

    async def fetch(self, query):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


# ============================================================================
# Query
# ============================================================================


class TestQuery:
    """Tests for query keys."""

    def test_cacheable(self):
        assert IDENTITIES.cacheable
        assert not Query(QueryKind.EVENTS, did="did:example:w1").cacheable

    def test_hashable_and_equal(self):
        assert Query(QueryKind.EVENTS) == EVENTS
        assert len({Query(QueryKind.EVENTS), EVENTS}) == 1

    def test_str(self):
        assert str(IDENTITIES) == "identities"
        assert str(Query(QueryKind.EVENTS, did="did:example:w1")) == "events:did:example:w1"


# ============================================================================
# RemoteProvider
# ============================================================================


class TestRemoteProvider:
    """Tests for the ledger-backed provider."""

    def test_satisfies_protocol(self, remote):
        assert isinstance(remote, Provider)

    @pytest.mark.asyncio
    async def test_fetch_normalizes_and_caches(self, remote, mock_client, cache, remote_identity_payload):
        """Successful bulk results are normalized and cached."""
        mock_client.list_identities.return_value = [remote_identity_payload("abc")]

        result = await remote.fetch(IDENTITIES)
        assert result.ok
        assert result.source == "remote"
        assert [i.did for i in result.data] == ["did:webvh:abc:ledger.example"]

        entry = cache.get_entry(IDENTITIES)
        assert entry.ttl == 30.0
        assert entry.data == result.data

    @pytest.mark.asyncio
    async def test_scoped_events_not_cached(self, remote, mock_client, cache):
        mock_client.list_events.return_value = [{"id": "e1", "did": "did:example:w1"}]

        result = await remote.fetch(Query(QueryKind.EVENTS, did="did:example:w1"))
        assert [e.id for e in result.data] == ["e1"]
        mock_client.list_events.assert_awaited_once_with("did:example:w1")
        assert cache.get_entry(Query(QueryKind.EVENTS, did="did:example:w1")) is None

    @pytest.mark.asyncio
    async def test_unhealthy_ledger_not_called(self, remote, mock_client, mock_monitor):
        """When the monitor reports unavailable, the ledger is not queried."""
        mock_monitor.is_available.return_value = False

        result = await remote.fetch(IDENTITIES)
        assert not result.ok
        mock_client.list_identities.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ledger_error_is_not_ok(self, remote, mock_client):
        mock_client.list_events.side_effect = LedgerException("boom", status=500)

        result = await remote.fetch(EVENTS)
        assert not result.ok
        assert result.data == []

    @pytest.mark.asyncio
    async def test_disabled(self, mock_client, mock_monitor, cache):
        provider = RemoteProvider(mock_client, mock_monitor, cache, RequestCoalescer(), ttls={}, enabled=lambda: False)
        assert not (await provider.fetch(IDENTITIES)).ok
        mock_monitor.is_available.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalidated_during_fetch_not_cached(self, remote, mock_client, cache, remote_identity_payload):
        """A result fetched across an invalidation answers but is not cached."""
        started = asyncio.Event()
        gate = asyncio.Event()

        async def slow_list():
            started.set()
            await gate.wait()
            return [remote_identity_payload("abc")]

        mock_client.list_identities.side_effect = slow_list

        task = asyncio.ensure_future(remote.fetch(IDENTITIES))
        await started.wait()
        cache.invalidate(IDENTITIES)
        gate.set()

        result = await task
        assert result.ok
        assert len(result.data) == 1
        assert cache.get_entry(IDENTITIES) is None


# ============================================================================
# StaleCacheProvider and LocalProvider
# ============================================================================


class TestFallbackProviders:
    """Tests for the stale-cache and local providers."""

    @pytest.mark.asyncio
    async def test_stale_cache_serves_expired(self, cache, clock):
        cache.put(IDENTITIES, ["old"], ttl=1.0)
        clock.advance(100.0)

        result = await StaleCacheProvider(cache).fetch(IDENTITIES)
        assert result.ok
        assert result.data == ["old"]
        assert result.source == "stale_cache"

    @pytest.mark.asyncio
    async def test_stale_cache_empty(self, cache):
        assert not (await StaleCacheProvider(cache).fetch(IDENTITIES)).ok

    @pytest.mark.asyncio
    async def test_local_provider(self, local_store, make_identity):
        local_store.insert_identity(make_identity("did:example:w1"))
        local_store.insert_event(DIDEvent(id="e1", did="did:example:w1", event_type="create"))
        local_store.insert_event(DIDEvent(id="e2", did="did:example:w2", event_type="create"))
        provider = LocalProvider(local_store)

        assert len((await provider.fetch(IDENTITIES)).data) == 1
        assert len((await provider.fetch(EVENTS)).data) == 2
        scoped = await provider.fetch(Query(QueryKind.EVENTS, did="did:example:w2"))
        assert [e.id for e in scoped.data] == ["e2"]


# ============================================================================
# ProviderChain
# ============================================================================


class TestProviderChain:
    """Tests for ordered fallback."""

    @pytest.mark.asyncio
    async def test_first_success_wins(self):
        first = StaticProvider("first", ProviderResult(data=[1], ok=True, source="first"))
        second = StaticProvider("second", ProviderResult(data=[2], ok=True, source="second"))
        chain = ProviderChain([first, second])

        result = await chain.fetch(IDENTITIES)
        assert result.data == [1]
        assert second.calls == 0
        assert chain.answered_by == {"first": 1}

    @pytest.mark.asyncio
    async def test_falls_through_failures_and_errors(self):
        """Unsuccessful and raising providers are skipped."""
        failing = StaticProvider("failing", ProviderResult(data=[], ok=False))
        raising = StaticProvider("raising", error=RuntimeError("bug"))
        last = StaticProvider("last", ProviderResult(data=[3], ok=True, source="last"))

        result = await ProviderChain([failing, raising, last]).fetch(IDENTITIES)
        assert result.data == [3]
        assert result.source == "last"

    @pytest.mark.asyncio
    async def test_nothing_answers(self):
        result = await ProviderChain([StaticProvider("x", ProviderResult(data=[], ok=False))]).fetch(EVENTS)
        assert result == ProviderResult(data=[], ok=False, source="none")

    @pytest.mark.asyncio
    async def test_reordering(self, cache, local_store, make_identity):
        """Putting local first makes it answer even with a warm cache."""
        cache.put(IDENTITIES, ["cached"], ttl=30.0)
        local_store.insert_identity(make_identity("did:example:w1"))

        chain = ProviderChain([LocalProvider(local_store), StaleCacheProvider(cache)])
        result = await chain.fetch(IDENTITIES)
        assert result.source == "local"
