# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Reconciliation of local and remote records.

The same logical record can arrive from the ledger and from the local mirror
under different synthetic ids, so records are matched by a content
fingerprint: SHA-256 over the canonical JSON of the fields that identify the
record. Local records go into the seen-set first and win; remote records are
appended only when their fingerprint is new. Merging is idempotent.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from ..models import AnchoringEvent, Attestation, DIDEvent, Identity

T = TypeVar("T")


# =============================================================================
# FINGERPRINTS
# =============================================================================


def fingerprint(fields: dict[str, Any]) -> str:
    """SHA-256 hex digest of the canonical JSON of fields."""
    canonical = json.dumps(fields, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def identity_fingerprint(identity: Identity) -> str:
    return fingerprint({"did": identity.did})


def attestation_fingerprint(attestation: Attestation) -> str:
    return fingerprint(
        {
            "did": attestation.did,
            "witness_did": attestation.witness_did,
            "attestation_type": attestation.attestation_type,
            "signature": attestation.signature,
        }
    )


def anchor_fingerprint(event: AnchoringEvent) -> str:
    return fingerprint({"did": event.did, "transaction_hash": event.transaction_hash})


def event_fingerprint(event: DIDEvent) -> str:
    # Unversioned local events fall back to their own id
    if event.version_id is None:
        return fingerprint({"did": event.did, "id": event.id, "event_type": event.event_type})
    return fingerprint({"did": event.did, "version_id": event.version_id, "event_type": event.event_type})


# =============================================================================
# MERGING
# =============================================================================


def merge_records(local: Iterable[T], remote: Iterable[T], key: Callable[[T], str]) -> list[T]:
    """Combine two record sets, local first, dropping fingerprint duplicates."""
    seen: set[str] = set()
    merged: list[T] = []
    for record in (*local, *remote):
        fp = key(record)
        if fp in seen:
            continue
        seen.add(fp)
        merged.append(record)
    return merged


def merge_identities(local: Iterable[Identity], remote: Iterable[Identity]) -> list[Identity]:
    return merge_records(local, remote, identity_fingerprint)


def merge_attestations(local: Iterable[Attestation], remote: Iterable[Attestation]) -> list[Attestation]:
    return merge_records(local, remote, attestation_fingerprint)


def merge_anchoring_events(
    local: Iterable[AnchoringEvent], remote: Iterable[AnchoringEvent]
) -> list[AnchoringEvent]:
    return merge_records(local, remote, anchor_fingerprint)


def merge_events(local: Iterable[DIDEvent], remote: Iterable[DIDEvent]) -> list[DIDEvent]:
    return merge_records(local, remote, event_fingerprint)


@dataclass
class MergedView:
    """The combined local + remote view, optionally scoped to one DID."""

    did: str | None = None
    identities: list[Identity] = field(default_factory=list)
    events: list[DIDEvent] = field(default_factory=list)
    attestations: list[Attestation] = field(default_factory=list)
    anchoring_events: list[AnchoringEvent] = field(default_factory=list)
    remote_available: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "did": self.did,
            "identities": [i.to_dict() for i in self.identities],
            "events": [e.to_dict() for e in self.events],
            "attestations": [a.to_dict() for a in self.attestations],
            "anchoring_events": [e.to_dict() for e in self.anchoring_events],
            "remote_available": self.remote_available,
        }
