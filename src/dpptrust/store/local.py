# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""In-memory local mirror store.

Holds the records authored locally (offline demo mode, UI overrides):
identities, relationship edges, events, attestations, anchoring events and
credentials. Every mutation notifies an optional change callback with the
collection name, which the hybrid data store uses to invalidate its cache
and schedule a snapshot write.

Not thread-safe; intended for use from a single event loop.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from typing import Any
from uuid import uuid4

from ..core.exceptions import ConflictError, MalformedDataException, ValidationException
from ..did import is_valid_did
from ..ledger.normalize import normalize_event
from ..models import (
    AnchoringEvent,
    ApprovalStatus,
    Attestation,
    Credential,
    DIDEvent,
    Identity,
    Relationship,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

IDENTITIES = "identities"
RELATIONSHIPS = "relationships"
EVENTS = "events"
ATTESTATIONS = "attestations"
ANCHORING_EVENTS = "anchoring_events"
CREDENTIALS = "credentials"

COLLECTIONS = (IDENTITIES, RELATIONSHIPS, EVENTS, ATTESTATIONS, ANCHORING_EVENTS, CREDENTIALS)

# Fields update_identity() may change
_MUTABLE_IDENTITY_FIELDS = frozenset(
    {
        "category",
        "model",
        "parent_did",
        "lifecycle_status",
        "owner",
        "custodian",
        "metadata",
        "version",
        "previous_version_id",
    }
)


def generate_id() -> str:
    return str(uuid4())


class LocalStore:
    """The local mirror of the ledger data model."""

    def __init__(self, on_change: Callable[[str], None] | None = None):
        self.on_change = on_change
        self._identities: dict[str, Identity] = {}
        self._relationships: list[Relationship] = []
        self._events: list[DIDEvent] = []
        self._attestations: list[Attestation] = []
        self._anchoring_events: list[AnchoringEvent] = []
        self._credentials: list[Credential] = []

    def _changed(self, collection: str) -> None:
        if self.on_change is not None:
            self.on_change(collection)

    # =========================================================================
    # IDENTITIES
    # =========================================================================

    def insert_identity(self, identity: Identity) -> Identity:
        """Add a new identity.

        Raises:
            ValidationException: if the DID is syntactically invalid
            ConflictError: if the DID is already taken (DIDs are never reused)
        """
        if not is_valid_did(identity.did):
            raise ValidationException("Invalid DID", field="did", value=identity.did)
        existing = self._identities.get(identity.did)
        if existing is not None:
            raise ConflictError(f"DID already exists: {identity.did}", existing_id=existing.id)

        now = utc_now_iso()
        stored = replace(
            identity,
            id=identity.id or generate_id(),
            metadata=dict(identity.metadata),
            created_at=identity.created_at or now,
            updated_at=identity.updated_at or now,
        )
        self._identities[stored.did] = stored
        self._changed(IDENTITIES)
        return stored

    def update_identity(self, did: str, /, **updates: Any) -> Identity | None:
        """Apply field updates to an identity.

        The version counter is bumped unless an explicit version is given.

        Returns:
            The updated identity, or None if the DID is unknown

        Raises:
            ValidationException: on an unknown field or a version rollback
        """
        current = self._identities.get(did)
        if current is None:
            return None

        unknown = set(updates) - _MUTABLE_IDENTITY_FIELDS
        if unknown:
            field_name = sorted(unknown)[0]
            raise ValidationException(f"Field cannot be updated: {field_name}", field=field_name)

        version = updates.pop("version", current.version + 1)
        if version < current.version:
            raise ValidationException("Version counter cannot decrease", field="version", value=version)

        updated = replace(current, version=version, updated_at=utc_now_iso(), **updates)
        self._identities[did] = updated
        self._changed(IDENTITIES)
        return updated

    def get_identity(self, did: str) -> Identity | None:
        return self._identities.get(did)

    def get_identity_by_id(self, identity_id: str) -> Identity | None:
        for identity in self._identities.values():
            if identity.id == identity_id:
                return identity
        return None

    def list_identities(self, limit: int | None = None) -> list[Identity]:
        identities = list(self._identities.values())
        return identities[:limit] if limit is not None else identities

    # =========================================================================
    # RELATIONSHIPS
    # =========================================================================

    def insert_relationship(self, relationship: Relationship) -> Relationship:
        """Add a parent/child edge, keeping the edges a forest.

        Raises:
            ValidationException: on a self-edge or an edge that would close a cycle
            ConflictError: if the child already has a parent edge
        """
        parent, child = relationship.parent_did, relationship.child_did
        if parent == child:
            raise ValidationException("Identity cannot be its own parent", field="child_did", value=child)

        for edge in self._relationships:
            if edge.child_did == child:
                raise ConflictError(f"{child} already has parent {edge.parent_did}", existing_id=edge.id)

        if child in self._ancestors(parent):
            raise ValidationException("Relationship would create a cycle", field="parent_did", value=parent)

        stored = replace(
            relationship,
            id=relationship.id or generate_id(),
            metadata=dict(relationship.metadata),
            created_at=relationship.created_at or utc_now_iso(),
        )
        self._relationships.append(stored)
        self._changed(RELATIONSHIPS)
        return stored

    def _ancestors(self, did: str) -> set[str]:
        parents = {edge.child_did: edge.parent_did for edge in self._relationships}
        seen: set[str] = set()
        current = parents.get(did)
        while current is not None and current not in seen:
            seen.add(current)
            current = parents.get(current)
        return seen

    def relationships_by_parent(self, parent_did: str) -> list[Relationship]:
        edges = [e for e in self._relationships if e.parent_did == parent_did]
        return sorted(edges, key=lambda e: e.position)

    def relationships_by_child(self, child_did: str) -> list[Relationship]:
        return [e for e in self._relationships if e.child_did == child_did]

    def list_relationships(self) -> list[Relationship]:
        return list(self._relationships)

    # =========================================================================
    # EVENTS
    # =========================================================================

    def insert_event(self, event: DIDEvent) -> DIDEvent:
        stored = replace(event, id=event.id or generate_id(), created_at=event.created_at or utc_now_iso())
        self._events.append(stored)
        self._changed(EVENTS)
        return stored

    def events_for(self, did: str) -> list[DIDEvent]:
        return [e for e in self._events if e.did == did]

    def list_events(self) -> list[DIDEvent]:
        return list(self._events)

    # =========================================================================
    # ATTESTATIONS
    # =========================================================================

    def insert_attestation(self, attestation: Attestation) -> Attestation:
        now = utc_now_iso()
        stored = replace(
            attestation,
            id=attestation.id or generate_id(),
            timestamp=attestation.timestamp or now,
            created_at=attestation.created_at or now,
        )
        self._attestations.append(stored)
        self._changed(ATTESTATIONS)
        return stored

    def update_attestation(self, attestation_id: str, approval_status: ApprovalStatus) -> Attestation | None:
        """Set the approval status of a local attestation."""
        for i, attestation in enumerate(self._attestations):
            if attestation.id == attestation_id:
                updated = replace(attestation, approval_status=approval_status)
                self._attestations[i] = updated
                self._changed(ATTESTATIONS)
                return updated
        return None

    def attestations_for(self, did: str) -> list[Attestation]:
        return [a for a in self._attestations if a.did == did]

    def list_attestations(self) -> list[Attestation]:
        return list(self._attestations)

    # =========================================================================
    # ANCHORING EVENTS AND CREDENTIALS
    # =========================================================================

    def insert_anchoring_event(self, event: AnchoringEvent) -> AnchoringEvent:
        stored = replace(event, id=event.id or generate_id(), timestamp=event.timestamp or utc_now_iso())
        self._anchoring_events.append(stored)
        self._changed(ANCHORING_EVENTS)
        return stored

    def anchoring_events_for(self, did: str) -> list[AnchoringEvent]:
        return [e for e in self._anchoring_events if e.did == did]

    def list_anchoring_events(self) -> list[AnchoringEvent]:
        return list(self._anchoring_events)

    def insert_credential(self, credential: Credential) -> Credential:
        stored = replace(
            credential,
            id=credential.id or generate_id(),
            credential_id=credential.credential_id or f"urn:uuid:{uuid4()}",
            issued_date=credential.issued_date or utc_now_iso(),
        )
        self._credentials.append(stored)
        self._changed(CREDENTIALS)
        return stored

    def credentials_for(self, did: str) -> list[Credential]:
        return [c for c in self._credentials if c.did == did]

    # =========================================================================
    # BULK OPERATIONS
    # =========================================================================

    def counts(self) -> dict[str, int]:
        return {
            IDENTITIES: len(self._identities),
            RELATIONSHIPS: len(self._relationships),
            EVENTS: len(self._events),
            ATTESTATIONS: len(self._attestations),
            ANCHORING_EVENTS: len(self._anchoring_events),
            CREDENTIALS: len(self._credentials),
        }

    def clear(self) -> None:
        self._identities.clear()
        self._relationships.clear()
        self._events.clear()
        self._attestations.clear()
        self._anchoring_events.clear()
        self._credentials.clear()
        for collection in COLLECTIONS:
            self._changed(collection)

    def to_snapshot(self) -> dict[str, Any]:
        """Serialize every collection into one JSON-ready document."""
        return {
            "version": SNAPSHOT_VERSION,
            IDENTITIES: [i.to_dict() for i in self._identities.values()],
            RELATIONSHIPS: [r.to_dict() for r in self._relationships],
            EVENTS: [e.to_dict() for e in self._events],
            ATTESTATIONS: [a.to_dict() for a in self._attestations],
            ANCHORING_EVENTS: [e.to_dict() for e in self._anchoring_events],
            CREDENTIALS: [c.to_dict() for c in self._credentials],
        }

    def load_snapshot(self, data: dict[str, Any]) -> dict[str, int]:
        """Replace the store contents from a snapshot.

        Each collection restores independently: a missing or malformed
        collection becomes empty and malformed records are skipped, without
        affecting the others. Does not notify the change callback.

        Returns:
            Number of records restored per collection
        """
        identities = _restore(data, IDENTITIES, Identity.from_dict)
        self._identities = {i.did: i for i in identities}
        self._relationships = _restore(data, RELATIONSHIPS, Relationship.from_dict)
        self._events = _restore(data, EVENTS, normalize_event)
        self._attestations = _restore(data, ATTESTATIONS, Attestation.from_dict)
        self._anchoring_events = _restore(data, ANCHORING_EVENTS, AnchoringEvent.from_dict)
        self._credentials = _restore(data, CREDENTIALS, Credential.from_dict)

        restored = self.counts()
        logger.info(f"Restored local snapshot: {restored}")
        return restored


def _restore(data: dict[str, Any], collection: str, factory: Callable[[dict[str, Any]], Any]) -> list[Any]:
    items = data.get(collection)
    if items is None:
        return []
    if not isinstance(items, list):
        logger.warning(f"Snapshot collection {collection} is {type(items).__name__}, expected list")
        return []

    records = []
    for item in items:
        if not isinstance(item, dict):
            logger.warning(f"Skipping malformed {collection} record in snapshot")
            continue
        try:
            records.append(factory(item))
        except (KeyError, TypeError, ValueError, MalformedDataException) as e:
            logger.warning(f"Skipping malformed {collection} record in snapshot: {e}")
    return records
