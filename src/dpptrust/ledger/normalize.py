# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Harmonization of remote ledger payloads into the local data model.

The ledger service has shipped both camelCase and snake_case field names
and has rolled out fields gradually, so every accessor here tolerates
either spelling and fills defaults for anything missing. Entries that cannot
be turned into a record at all (no DID) are skipped with a warning by the
list helpers instead of failing the whole batch.
"""

from __future__ import annotations

import logging
from typing import Any

from ..core.exceptions import MalformedDataException
from ..did import extract_scid
from ..models import (
    DIDEvent,
    Identity,
    IdentityCategory,
    WitnessProofBundle,
    WitnessSignature,
    to_iso,
)

logger = logging.getLogger(__name__)

DEFAULT_OWNER = "did:webvh:unknown:owner"

# Ledger product types that denote a complete product
MAIN_TYPES = frozenset({"main", "window"})


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present, non-None value among several spellings."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


def _as_str(value: Any) -> str | None:
    """Scalar as a string; None for missing values and nested structures."""
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def normalize_category(raw_type: Any, parent_did: str | None) -> IdentityCategory:
    """Map a ledger product type onto the structural category."""
    value = str(raw_type).lower() if raw_type else ""
    if value in MAIN_TYPES:
        return IdentityCategory.MAIN
    if value == "component":
        return IdentityCategory.COMPONENT
    return IdentityCategory.COMPONENT if parent_did else IdentityCategory.MAIN


# =============================================================================
# IDENTITIES
# =============================================================================


def normalize_identity(raw: dict[str, Any]) -> Identity:
    """Convert one remote identity payload into an Identity.

    Raises:
        MalformedDataException: if the payload is not an object or has no DID
    """
    if not isinstance(raw, dict):
        raise MalformedDataException(f"Identity payload is {type(raw).__name__}, expected object")

    did = raw.get("did")
    if not isinstance(did, str) or not did:
        raise MalformedDataException("Identity payload has no DID")

    scid = _pick(raw, "scid", "id") or extract_scid(did) or did
    metadata = raw.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}

    parent_did = _as_str(_pick(raw, "parentDid", "parent_did") or _pick(metadata, "parent_did", "parentDid")) or None
    raw_type = _pick(raw, "productType", "product_type", "type") or metadata.get("type")
    created_at = to_iso(_pick(raw, "createdAt", "created_at"))

    return Identity(
        did=did,
        category=normalize_category(raw_type, parent_did),
        model=_as_str(_pick(raw, "model", "name") or metadata.get("model")) or f"Product-{str(scid)[:8]}",
        parent_did=parent_did,
        lifecycle_status=_as_str(_pick(raw, "lifecycleStatus", "lifecycle_status", "status")) or "active",
        owner=_as_str(_pick(raw, "owner", "ownerDid", "owner_did")) or DEFAULT_OWNER,
        metadata=metadata,
        version=_as_int(_pick(raw, "version", "versionNumber")) or 1,
        id=str(scid),
        custodian=_as_str(_pick(raw, "custodian", "custodianDid")),
        previous_version_id=_as_str(_pick(raw, "previousVersionId", "previous_version_id")),
        created_at=created_at,
        updated_at=to_iso(_pick(raw, "updatedAt", "updated_at")) or created_at,
    )


def normalize_identities(raw_items: list[Any]) -> list[Identity]:
    """Normalize a bulk identity list, skipping malformed entries."""
    identities = []
    for raw in raw_items:
        try:
            identities.append(normalize_identity(raw))
        except MalformedDataException as e:
            logger.warning(f"Skipping malformed identity from ledger: {e.message}")
    return identities


# =============================================================================
# EVENTS
# =============================================================================


def normalize_bundle(raw: Any) -> WitnessProofBundle | None:
    """Convert a remote witness-proof bundle; None when absent or unusable."""
    if not isinstance(raw, dict):
        return None

    raw_witnesses = raw.get("witnesses")
    witnesses = []
    for item in raw_witnesses if isinstance(raw_witnesses, list) else []:
        if not isinstance(item, dict):
            continue
        witness_did = _as_str(_pick(item, "witnessDid", "witness_did", "did"))
        if not witness_did:
            continue
        witnesses.append(
            WitnessSignature(
                witness_did=witness_did,
                signature=_as_str(_pick(item, "signature", "sig")) or "",
                timestamp=to_iso(item.get("timestamp")),
            )
        )

    proof = _pick(raw, "merkleProof", "merkle_proof", default=[])
    return WitnessProofBundle(
        batch_id=_as_int(_pick(raw, "batchId", "batch_id")),
        merkle_root=_as_str(_pick(raw, "merkleRoot", "merkle_root")),
        witnesses=witnesses,
        tx_hash=_as_str(_pick(raw, "txHash", "tx_hash", "transactionHash")),
        block_number=_as_int(_pick(raw, "blockNumber", "block_number")),
        version_id=_as_str(_pick(raw, "versionId", "version_id")),
        leaf_hash=_as_str(_pick(raw, "leafHash", "leaf_hash")),
        merkle_proof=[str(p) for p in proof] if isinstance(proof, list) else [],
        leaf_index=_as_int(_pick(raw, "leafIndex", "leaf_index")),
    )


def normalize_event(raw: dict[str, Any]) -> DIDEvent:
    """Convert one remote event payload into a DIDEvent.

    Raises:
        MalformedDataException: if the payload is not an object or has no DID
    """
    if not isinstance(raw, dict):
        raise MalformedDataException(f"Event payload is {type(raw).__name__}, expected object")

    did = raw.get("did")
    if not isinstance(did, str) or not did:
        raise MalformedDataException("Event payload has no DID")

    payload = raw.get("payload")
    if not isinstance(payload, dict):
        payload = {}

    bundle = normalize_bundle(_pick(raw, "witnessProofs", "witness_proofs"))
    version_id = _pick(raw, "versionId", "version_id")
    timestamp = to_iso(raw.get("timestamp"))

    return DIDEvent(
        id=str(_pick(raw, "id", default="") or f"{did}#{version_id or ''}"),
        did=did,
        event_type=_as_str(_pick(raw, "eventType", "event_type", "type")) or "update",
        payload=payload,
        version_id=_as_str(version_id),
        timestamp=timestamp,
        signature=_as_str(_pick(raw, "signature")) or None,
        witness_proofs=bundle,
        leaf_hash=_as_str(_pick(raw, "leafHash", "leaf_hash")) or (bundle.leaf_hash if bundle else None),
        created_at=to_iso(_pick(raw, "createdAt", "created_at")) or timestamp,
    )


def normalize_events(raw_items: list[Any]) -> list[DIDEvent]:
    """Normalize a bulk event list, skipping malformed entries."""
    events = []
    for raw in raw_items:
        try:
            events.append(normalize_event(raw))
        except MalformedDataException as e:
            logger.warning(f"Skipping malformed event from ledger: {e.message}")
    return events
