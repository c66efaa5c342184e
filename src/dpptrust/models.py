# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Data models for the DPP reconciliation layer.

These models represent product identities (DPPs), the relationship edges
between composite products and their components, ledger events with their
witness-proof bundles, and the attestation and anchoring views projected
from those events.

Timestamps are kept as ISO-8601 strings: they travel unchanged between the
ledger, the local snapshot and the UI.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


# =============================================================================
# ENUMS
# =============================================================================


class IdentityCategory(str, Enum):
    """Structural role of an identity in a product hierarchy."""
    MAIN = "main"            # A complete product (e.g. a window)
    COMPONENT = "component"  # A part of a main product (e.g. glass, frame)


class ApprovalStatus(str, Enum):
    """Approval state of an attestation."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AnchorStatus(str, Enum):
    """Whether the witnessed event made it into an on-chain batch."""
    PENDING = "pending"
    ANCHORED = "anchored"


class RecordSource(str, Enum):
    """Where a record in a merged view came from."""
    LOCAL = "local"
    REMOTE = "remote"


# =============================================================================
# HELPERS
# =============================================================================


def utc_now_iso() -> str:
    """Current time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat()


def to_iso(value: Any) -> str | None:
    """Harmonize a timestamp to an ISO-8601 string.

    Accepts ISO strings, datetimes, and epoch numbers (milliseconds when the
    value is too large to be seconds, as emitted by the ledger). Unknown
    shapes and epochs outside the platform's datetime range yield None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.isoformat()
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            seconds = value / 1000 if value > 1e11 else value
            return datetime.fromtimestamp(seconds, UTC).isoformat()
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return to_iso(int(text))
        return text
    return None


# =============================================================================
# IDENTITY
# =============================================================================


@dataclass
class Identity:
    """A Digital Product Passport identity."""

    did: str
    category: IdentityCategory = IdentityCategory.MAIN
    model: str = ""
    parent_did: str | None = None
    lifecycle_status: str = "active"
    owner: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    version: int = 1

    # Source-assigned id: SCID for ledger records, random for local ones
    id: str = ""
    custodian: str | None = None
    previous_version_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "did": self.did,
            "type": self.category.value,
            "model": self.model,
            "parent_did": self.parent_did,
            "lifecycle_status": self.lifecycle_status,
            "owner": self.owner,
            "custodian": self.custodian,
            "metadata": dict(self.metadata),
            "version": self.version,
            "previous_version_id": self.previous_version_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Identity:
        return cls(
            did=data["did"],
            category=IdentityCategory(data.get("type") or data.get("category") or "main"),
            model=data.get("model") or "",
            parent_did=data.get("parent_did"),
            lifecycle_status=data.get("lifecycle_status") or "active",
            owner=data.get("owner") or "",
            metadata=dict(data.get("metadata") or {}),
            version=int(data.get("version") or 1),
            id=data.get("id") or "",
            custodian=data.get("custodian"),
            previous_version_id=data.get("previous_version_id"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


@dataclass
class Relationship:
    """A parent/child edge between a main product and a component."""

    parent_did: str
    child_did: str
    relationship_type: str = "component"
    position: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = ""
    created_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "parent_did": self.parent_did,
            "child_did": self.child_did,
            "relationship_type": self.relationship_type,
            "position": self.position,
            "metadata": dict(self.metadata),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Relationship:
        return cls(
            parent_did=data["parent_did"],
            child_did=data["child_did"],
            relationship_type=data.get("relationship_type") or "component",
            position=int(data.get("position") or 0),
            metadata=dict(data.get("metadata") or {}),
            id=data.get("id") or "",
            created_at=data.get("created_at"),
        )


# =============================================================================
# EVENTS AND WITNESS PROOFS
# =============================================================================


@dataclass
class WitnessSignature:
    """One witness countersignature inside a proof bundle."""

    witness_did: str
    signature: str
    timestamp: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "witnessDid": self.witness_did,
            "signature": self.signature,
            "timestamp": self.timestamp,
        }


@dataclass
class WitnessProofBundle:
    """Witness evidence attached to a ledger event."""

    batch_id: int | None = None
    merkle_root: str | None = None
    witnesses: list[WitnessSignature] = field(default_factory=list)
    tx_hash: str | None = None
    block_number: int | None = None

    # Inclusion proof of the event leaf in the anchored batch
    version_id: str | None = None
    leaf_hash: str | None = None
    merkle_proof: list[str] = field(default_factory=list)
    leaf_index: int | None = None

    @property
    def is_anchored(self) -> bool:
        return bool(self.tx_hash)

    def to_dict(self) -> dict[str, Any]:
        return {
            "batchId": self.batch_id,
            "merkleRoot": self.merkle_root,
            "witnesses": [w.to_dict() for w in self.witnesses],
            "txHash": self.tx_hash,
            "blockNumber": self.block_number,
            "versionId": self.version_id,
            "leafHash": self.leaf_hash,
            "merkleProof": list(self.merkle_proof),
            "leafIndex": self.leaf_index,
        }


@dataclass
class DIDEvent:
    """An append-only ledger event belonging to one identity."""

    id: str
    did: str
    event_type: str
    payload: dict[str, Any] = field(default_factory=dict)
    version_id: str | None = None
    timestamp: str | None = None
    signature: str | None = None
    witness_proofs: WitnessProofBundle | None = None
    leaf_hash: str | None = None
    created_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "did": self.did,
            "event_type": self.event_type,
            "payload": dict(self.payload),
            "version_id": self.version_id,
            "timestamp": self.timestamp,
            "signature": self.signature,
            "witness_proofs": self.witness_proofs.to_dict() if self.witness_proofs else None,
            "leaf_hash": self.leaf_hash,
            "created_at": self.created_at,
        }


# Tagged variants of an event's witnessing state. Each carries only the
# fields valid for its case; see classify_event().


@dataclass(frozen=True)
class WitnessedEvent:
    """Event countersigned by one or more witnesses."""

    event: DIDEvent
    bundle: WitnessProofBundle


@dataclass(frozen=True)
class SignedEvent:
    """Event carrying only the controller's own signature."""

    event: DIDEvent
    signature: str


@dataclass(frozen=True)
class UnwitnessedEvent:
    """Event with neither witnesses nor a signature."""

    event: DIDEvent


EventShape = WitnessedEvent | SignedEvent | UnwitnessedEvent


def classify_event(event: DIDEvent) -> EventShape:
    """Determine which witnessing variant an event belongs to."""
    bundle = event.witness_proofs
    if bundle is not None and bundle.witnesses:
        return WitnessedEvent(event=event, bundle=bundle)
    if event.signature:
        return SignedEvent(event=event, signature=event.signature)
    return UnwitnessedEvent(event=event)


# =============================================================================
# PROJECTED VIEWS
# =============================================================================


@dataclass
class Attestation:
    """A witness statement about an identity, local or projected from events."""

    did: str
    witness_did: str
    attestation_type: str
    signature: str
    attestation_data: dict[str, Any] = field(default_factory=dict)
    timestamp: str | None = None
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    witness_status: AnchorStatus = AnchorStatus.PENDING
    tx_hash: str | None = None
    source: RecordSource = RecordSource.LOCAL
    id: str = ""
    dpp_id: str = ""
    created_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "dpp_id": self.dpp_id,
            "did": self.did,
            "witness_did": self.witness_did,
            "attestation_type": self.attestation_type,
            "attestation_data": dict(self.attestation_data),
            "signature": self.signature,
            "timestamp": self.timestamp,
            "created_at": self.created_at,
            "approval_status": self.approval_status.value,
            "witness_status": self.witness_status.value,
            "tx_hash": self.tx_hash,
            "source": self.source.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Attestation:
        return cls(
            did=data["did"],
            witness_did=data.get("witness_did") or "",
            attestation_type=data.get("attestation_type") or "",
            signature=data.get("signature") or "",
            attestation_data=dict(data.get("attestation_data") or {}),
            timestamp=data.get("timestamp"),
            approval_status=ApprovalStatus(data.get("approval_status") or "pending"),
            witness_status=AnchorStatus(data.get("witness_status") or "pending"),
            tx_hash=data.get("tx_hash"),
            source=RecordSource(data.get("source") or "local"),
            id=data.get("id") or "",
            dpp_id=data.get("dpp_id") or "",
            created_at=data.get("created_at"),
        )


@dataclass
class AnchoringEvent:
    """Evidence that an identity's state was anchored on a ledger."""

    did: str
    transaction_hash: str
    block_number: int = 0
    merkle_root: str | None = None
    anchor_type: str = "creation"
    timestamp: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = ""
    dpp_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "dpp_id": self.dpp_id,
            "did": self.did,
            "transaction_hash": self.transaction_hash,
            "block_number": self.block_number,
            "merkle_root": self.merkle_root,
            "anchor_type": self.anchor_type,
            "timestamp": self.timestamp,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnchoringEvent:
        return cls(
            did=data["did"],
            transaction_hash=data.get("transaction_hash") or "",
            block_number=int(data.get("block_number") or 0),
            merkle_root=data.get("merkle_root"),
            anchor_type=data.get("anchor_type") or "creation",
            timestamp=data.get("timestamp"),
            metadata=dict(data.get("metadata") or {}),
            id=data.get("id") or "",
            dpp_id=data.get("dpp_id") or "",
        )


@dataclass
class Credential:
    """A verifiable credential issued about an identity."""

    did: str
    credential_type: str
    issuer: str
    verification_status: str = "pending"  # valid, invalid, expired, pending
    credential_id: str = ""
    credential_data: dict[str, Any] = field(default_factory=dict)
    issued_date: str | None = None
    expiry_date: str | None = None
    id: str = ""

    @property
    def is_valid(self) -> bool:
        return self.verification_status == "valid"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "did": self.did,
            "credential_id": self.credential_id,
            "issuer": self.issuer,
            "credential_type": self.credential_type,
            "credential_data": dict(self.credential_data),
            "issued_date": self.issued_date,
            "expiry_date": self.expiry_date,
            "verification_status": self.verification_status,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Credential:
        return cls(
            did=data["did"],
            credential_type=data.get("credential_type") or "",
            issuer=data.get("issuer") or "",
            verification_status=data.get("verification_status") or "pending",
            credential_id=data.get("credential_id") or "",
            credential_data=dict(data.get("credential_data") or {}),
            issued_date=data.get("issued_date"),
            expiry_date=data.get("expiry_date"),
            id=data.get("id") or "",
        )
