# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Hybrid data store - the query facade of the reconciliation layer.

Reads combine the local mirror with the remote ledger:

    fetch -> fresh cache hit?        return it (no network call)
          -> provider chain          remote (coalesced, health-gated)
                                     -> stale cache -> local mirror
          -> merge with local        local records first, fingerprint dedup

Query failures never reach the caller; they degrade to cached or local
data. Writes go to the local mirror only and eagerly invalidate the cache
entry they affect, so the next read reflects them.

Not thread-safe; intended for use from a single event loop.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..core.config import CoreSettings, get_config
from ..core.exceptions import DPPException
from ..did import extract_scid
from ..ledger.client import LedgerClient
from ..ledger.health import HealthMonitor
from ..ledger.normalize import normalize_events, normalize_identity
from ..models import (
    AnchoringEvent,
    ApprovalStatus,
    Attestation,
    Credential,
    DIDEvent,
    Identity,
    IdentityCategory,
    Relationship,
)
from ..store import local as local_store
from ..store.local import LocalStore
from ..store.persistence import WriteBuffer
from .cache import QueryCache, RequestCoalescer
from .merge import (
    MergedView,
    merge_anchoring_events,
    merge_attestations,
    merge_events,
    merge_identities,
)
from .projector import anchoring_events_from, project_all, sort_by_version
from .providers import (
    LocalProvider,
    Provider,
    ProviderChain,
    Query,
    QueryKind,
    RemoteProvider,
    StaleCacheProvider,
)

logger = logging.getLogger(__name__)

IDENTITIES_QUERY = Query(QueryKind.IDENTITIES)
EVENTS_QUERY = Query(QueryKind.EVENTS)

# Local collections whose writes make a cached query stale
_INVALIDATES: dict[str, tuple[Query, ...]] = {
    local_store.IDENTITIES: (IDENTITIES_QUERY,),
    local_store.EVENTS: (EVENTS_QUERY,),
}


@dataclass
class HybridConfig:
    """Configuration for the hybrid data store."""

    use_backend: bool = True
    identities_ttl: float = 30.0
    events_ttl: float = 30.0

    @classmethod
    def from_settings(cls, settings: CoreSettings | None = None) -> HybridConfig:
        settings = settings or get_config()
        return cls(
            use_backend=settings.use_backend_api,
            identities_ttl=settings.identities_cache_ttl,
            events_ttl=settings.events_cache_ttl,
        )


class HybridDataStore:
    """Unified reads over the remote ledger and the local mirror."""

    def __init__(
        self,
        client: LedgerClient,
        store: LocalStore,
        monitor: HealthMonitor,
        config: HybridConfig | None = None,
        cache: QueryCache | None = None,
        providers: list[Provider] | None = None,
        write_buffer: WriteBuffer | None = None,
    ):
        """
        Initialize the data store.

        Args:
            client: Ledger HTTP client
            store: Local mirror; its change callback is taken over by this store
            monitor: Ledger reachability monitor
            config: Backend toggle and cache TTLs
            cache: Query cache (a fresh one by default)
            providers: Fallback order (remote, stale cache, local by default)
            write_buffer: Snapshot buffer marked dirty on every local write
        """
        self.client = client
        self.store = store
        self.monitor = monitor
        self.config = config or HybridConfig()
        self.cache = cache or QueryCache()
        self.coalescer = RequestCoalescer()
        self.write_buffer = write_buffer

        if providers is None:
            providers = [
                RemoteProvider(
                    client,
                    monitor,
                    self.cache,
                    self.coalescer,
                    ttls={
                        QueryKind.IDENTITIES: self.config.identities_ttl,
                        QueryKind.EVENTS: self.config.events_ttl,
                    },
                    enabled=lambda: self.config.use_backend,
                ),
                StaleCacheProvider(self.cache),
                LocalProvider(store),
            ]
        self.chain = ProviderChain(providers)

        store.on_change = self._on_local_change

    # =========================================================================
    # MODE
    # =========================================================================

    def set_use_backend(self, use: bool) -> None:
        """Switch between hybrid mode and local-only mode."""
        if use != self.config.use_backend:
            logger.info(f"Backend API {'enabled' if use else 'disabled'}")
        self.config.use_backend = use

    def mode(self) -> dict[str, bool]:
        return {
            "use_backend": self.config.use_backend,
            "backend_available": self.monitor.available,
        }

    def clear_cache(self) -> None:
        self.cache.clear()

    def _on_local_change(self, collection: str) -> None:
        for query in _INVALIDATES.get(collection, ()):
            self.cache.invalidate(query)
        if self.write_buffer is not None:
            self.write_buffer.mark_dirty()

    # =========================================================================
    # BULK QUERIES
    # =========================================================================

    async def _query(self, query: Query) -> list[Any]:
        """Answer a bulk query from the cache or the provider chain."""
        if not self.config.use_backend:
            return (await LocalProvider(self.store).fetch(query)).data

        if query.cacheable:
            cached = self.cache.get_fresh(query)
            if cached is not None:
                logger.debug(f"Cache hit for {query}")
                return list(cached)

        result = await self.chain.fetch(query)
        return list(result.data)

    async def fetch_identities(self) -> list[Identity]:
        """All identities: local mirror first, then unseen remote ones."""
        remote = await self._query(IDENTITIES_QUERY)
        return merge_identities(self.store.list_identities(), remote)

    async def fetch_events(self) -> list[DIDEvent]:
        """All events, local and remote, deduplicated."""
        remote = await self._query(EVENTS_QUERY)
        return merge_events(self.store.list_events(), remote)

    async def events_for(self, did: str) -> list[DIDEvent]:
        """Events of one identity in version order."""
        return sort_by_version(e for e in await self.fetch_events() if e.did == did)

    # =========================================================================
    # IDENTITIES
    # =========================================================================

    async def get_identity(self, did: str) -> Identity | None:
        """Look an identity up by DID.

        Falls back to a direct ledger lookup when the bulk list does not
        contain it; returns None when it is found nowhere.
        """
        for identity in await self.fetch_identities():
            if identity.did == did:
                return identity

        if self.config.use_backend and self.monitor.available:
            return await self._fetch_remote_identity(did)
        return None

    async def _fetch_remote_identity(self, did: str) -> Identity | None:
        scid = extract_scid(did)
        if scid is None:
            return None

        try:
            raw = await self.client.get_identity(scid)
            events = normalize_events(await self.client.list_events(did))
        except DPPException as e:
            logger.warning(f"Direct ledger lookup of {did} failed: {e.message}")
            return None

        # The create event's payload carries type, model and parent
        create_payload = next((e.payload for e in events if e.event_type == "create"), None)
        if create_payload:
            raw = {**raw, "metadata": {**create_payload, **(raw.get("metadata") or {})}}

        try:
            return normalize_identity(raw)
        except DPPException as e:
            logger.warning(f"Ledger returned malformed identity for {did}: {e.message}")
            return None

    async def get_identity_by_id(self, identity_id: str) -> Identity | None:
        """Look an identity up by DID or by source-assigned id."""
        for identity in await self.fetch_identities():
            if identity.did == identity_id or identity.id == identity_id:
                return identity
        return None

    async def search(
        self,
        text: str | None = None,
        category: IdentityCategory | None = None,
        lifecycle_status: str | None = None,
    ) -> list[Identity]:
        """Filter identities by free text (model, DID, status), category and status."""
        identities = await self.fetch_identities()
        if category is not None:
            identities = [i for i in identities if i.category == category]
        if lifecycle_status:
            identities = [i for i in identities if i.lifecycle_status == lifecycle_status]
        if text:
            needle = text.lower()
            identities = [
                i
                for i in identities
                if needle in i.model.lower() or needle in i.did.lower() or needle in i.lifecycle_status.lower()
            ]
        return identities

    async def get_stats(self) -> dict[str, Any]:
        """Identity counts by category, inferred product type and status."""
        identities = await self.fetch_identities()
        by_product_type: dict[str, int] = {}
        by_status: dict[str, int] = {}

        for identity in identities:
            product_type = _infer_product_type(identity.model)
            by_product_type[product_type] = by_product_type.get(product_type, 0) + 1
            by_status[identity.lifecycle_status] = by_status.get(identity.lifecycle_status, 0) + 1

        return {
            "total": len(identities),
            "main_products": sum(1 for i in identities if i.category == IdentityCategory.MAIN),
            "components": sum(1 for i in identities if i.category == IdentityCategory.COMPONENT),
            "by_product_type": by_product_type,
            "by_status": by_status,
        }

    def get_cache_stats(self) -> dict[str, Any]:
        return {
            "mode": self.mode(),
            "cache": self.cache.stats(),
            "coalescer": self.coalescer.stats(),
            "providers": dict(self.chain.answered_by),
            "health": self.monitor.get_stats(),
            "local": self.store.counts(),
        }

    # =========================================================================
    # DERIVED VIEWS
    # =========================================================================

    async def attestations_for(self, did: str) -> list[Attestation]:
        """Local attestations of an identity, then those projected from its events."""
        owners = await self._owner_map()
        projected = project_all(await self.events_for(did), owners.get)
        return merge_attestations(self.store.attestations_for(did), projected)

    async def anchoring_events_for(self, did: str) -> list[AnchoringEvent]:
        derived = anchoring_events_from(await self.events_for(did))
        return merge_anchoring_events(self.store.anchoring_events_for(did), derived)

    async def merged_view(self, did: str | None = None) -> MergedView:
        """The combined view of everything known, optionally for one DID."""
        identities = await self.fetch_identities()
        events = await self.fetch_events()
        owners = {i.did: i.owner for i in identities if i.owner}

        if did is not None:
            identities = [i for i in identities if i.did == did]
            events = [e for e in events if e.did == did]
            local_attestations = self.store.attestations_for(did)
            local_anchors = self.store.anchoring_events_for(did)
        else:
            local_attestations = self.store.list_attestations()
            local_anchors = self.store.list_anchoring_events()

        events = sort_by_version(events)
        return MergedView(
            did=did,
            identities=identities,
            events=events,
            attestations=merge_attestations(local_attestations, project_all(events, owners.get)),
            anchoring_events=merge_anchoring_events(local_anchors, anchoring_events_from(events)),
            remote_available=self.config.use_backend and self.monitor.available,
        )

    async def _owner_map(self) -> dict[str, str]:
        return {i.did: i.owner for i in await self.fetch_identities() if i.owner}

    def relationships_by_parent(self, parent_did: str) -> list[Relationship]:
        return self.store.relationships_by_parent(parent_did)

    def relationships_by_child(self, child_did: str) -> list[Relationship]:
        return self.store.relationships_by_child(child_did)

    def credentials_for(self, did: str) -> list[Credential]:
        return self.store.credentials_for(did)

    # =========================================================================
    # LOCAL WRITES
    # =========================================================================

    def insert_identity(self, identity: Identity) -> Identity:
        return self.store.insert_identity(identity)

    def update_identity(self, did: str, /, **updates: Any) -> Identity | None:
        return self.store.update_identity(did, **updates)

    def insert_relationship(self, relationship: Relationship) -> Relationship:
        return self.store.insert_relationship(relationship)

    def insert_event(self, event: DIDEvent) -> DIDEvent:
        return self.store.insert_event(event)

    def insert_attestation(self, attestation: Attestation) -> Attestation:
        return self.store.insert_attestation(attestation)

    def update_attestation(self, attestation_id: str, approval_status: ApprovalStatus) -> Attestation | None:
        return self.store.update_attestation(attestation_id, approval_status)

    def insert_anchoring_event(self, event: AnchoringEvent) -> AnchoringEvent:
        return self.store.insert_anchoring_event(event)

    def insert_credential(self, credential: Credential) -> Credential:
        return self.store.insert_credential(credential)


def _infer_product_type(model: str) -> str:
    lowered = model.lower()
    for product_type in ("window", "glass", "frame"):
        if product_type in lowered:
            return product_type
    return "other"
