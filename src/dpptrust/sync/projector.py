# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Projection of ledger events into attestation and anchoring views.

Events come in three shapes (see models.classify_event):

- WitnessedEvent: one attestation per witness, each with that witness's own
  signature and timestamp; anchored when the bundle carries a tx hash.
- SignedEvent: one attestation attributed to the identity's controller.
- UnwitnessedEvent: no attestation; the event only shows in the raw log.

The ledger stores finalized events only, so every projected attestation is
approved.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable, Iterable
from typing import Any

from ..models import (
    AnchoringEvent,
    AnchorStatus,
    ApprovalStatus,
    Attestation,
    DIDEvent,
    RecordSource,
    SignedEvent,
    UnwitnessedEvent,
    WitnessedEvent,
    classify_event,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

# Demo anchors are drawn from this block range
PLACEHOLDER_BLOCK_BASE = 18_500_000
PLACEHOLDER_BLOCK_SPREAD = 100_000


def version_sort_key(version_id: str | None) -> tuple[int, int, str]:
    """Order version ids by their numeric prefix ("3-Qm..." -> 3).

    Ids without a numeric prefix sort after numbered ones, by text.
    """
    if version_id is None:
        return (2, 0, "")
    prefix = version_id.split("-", 1)[0]
    if prefix.isdigit():
        return (0, int(prefix), version_id)
    return (1, 0, version_id)


def sort_by_version(events: Iterable[DIDEvent]) -> list[DIDEvent]:
    """Stable sort of events by version id."""
    return sorted(events, key=lambda e: version_sort_key(e.version_id))


def project_attestations(event: DIDEvent, controller_did: str | None = None) -> list[Attestation]:
    """Project one event into zero or more attestations.

    Args:
        event: The ledger event
        controller_did: DID credited for directly signed events
            (defaults to the event's own DID)
    """
    shape = classify_event(event)

    if isinstance(shape, WitnessedEvent):
        bundle = shape.bundle
        status = AnchorStatus.ANCHORED if bundle.is_anchored else AnchorStatus.PENDING
        return [
            Attestation(
                id=f"{event.id}-{witness.witness_did}",
                did=event.did,
                witness_did=witness.witness_did,
                attestation_type=event.event_type,
                attestation_data=dict(event.payload),
                signature=witness.signature,
                timestamp=witness.timestamp or event.timestamp,
                created_at=event.created_at,
                approval_status=ApprovalStatus.APPROVED,
                witness_status=status,
                tx_hash=bundle.tx_hash,
                source=RecordSource.REMOTE,
            )
            for witness in bundle.witnesses
        ]

    if isinstance(shape, SignedEvent):
        bundle = event.witness_proofs
        tx_hash = bundle.tx_hash if bundle else None
        return [
            Attestation(
                id=f"event-{event.id}",
                did=event.did,
                witness_did=controller_did or event.did,
                attestation_type=event.event_type,
                attestation_data=dict(event.payload),
                signature=shape.signature,
                timestamp=event.timestamp or event.created_at,
                created_at=event.created_at,
                approval_status=ApprovalStatus.APPROVED,
                witness_status=AnchorStatus.ANCHORED if tx_hash else AnchorStatus.PENDING,
                tx_hash=tx_hash,
                source=RecordSource.REMOTE,
            )
        ]

    if isinstance(shape, UnwitnessedEvent):
        return []

    raise TypeError(f"Unhandled event shape: {type(shape).__name__}")


def project_all(
    events: Iterable[DIDEvent],
    controller_for: Callable[[str], str | None] | None = None,
) -> list[Attestation]:
    """Project many events, preserving version order within each identity.

    Args:
        events: Ledger events, in any order
        controller_for: Maps an identity DID to its controller DID
    """
    attestations: list[Attestation] = []
    for event in sort_by_version(events):
        controller = controller_for(event.did) if controller_for else None
        attestations.extend(project_attestations(event, controller))
    return attestations


# =============================================================================
# ANCHORING EVENTS
# =============================================================================


def event_to_anchoring_event(event: DIDEvent) -> AnchoringEvent | None:
    """Derive an anchoring event from an event's witness bundle.

    Returns None when the event was never batched.
    """
    bundle = event.witness_proofs
    if bundle is None or (bundle.batch_id is None and not bundle.tx_hash):
        return None

    return AnchoringEvent(
        id=str(event.id),
        did=event.did,
        transaction_hash=bundle.tx_hash or "",
        block_number=bundle.block_number or 0,
        merkle_root=bundle.merkle_root,
        anchor_type=event.event_type,
        timestamp=event.timestamp or event.created_at,
        metadata={
            "batchId": bundle.batch_id,
            "versionId": event.version_id,
            "verified": bundle.is_anchored,
        },
    )


def anchoring_events_from(events: Iterable[DIDEvent]) -> list[AnchoringEvent]:
    anchors = []
    for event in sort_by_version(events):
        anchor = event_to_anchoring_event(event)
        if anchor is not None:
            anchors.append(anchor)
    return anchors


def placeholder_anchoring_event(
    did: str,
    anchor_type: str = "creation",
    metadata: dict[str, Any] | None = None,
) -> AnchoringEvent:
    """Build the placeholder anchor recorded by offline demo flows.

    Transaction hash and Merkle root are random; nothing is submitted.
    """
    return AnchoringEvent(
        did=did,
        transaction_hash=f"0x{secrets.token_hex(32)}",
        block_number=PLACEHOLDER_BLOCK_BASE + secrets.randbelow(PLACEHOLDER_BLOCK_SPREAD),
        merkle_root=f"0x{secrets.token_hex(32)}",
        anchor_type=anchor_type,
        timestamp=utc_now_iso(),
        metadata={"network": "ethereum", "chainId": 1, "placeholder": True, **(metadata or {})},
    )
