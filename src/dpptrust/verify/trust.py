# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Trust scoring for product identities.

Five independently capped sub-scores are summed and clamped to [0, 100]:

    identity resolution  25  valid hash chain 25, entries only 15, valid DID 10
    anchoring            25  witness proofs, else any recorded anchoring event
    attestations         25  min(25, 15 + 2n) for n approved/anchored; 5 if only pending
    credentials          15  min(15, 5 * valid credentials)
    hierarchy            10  main: 10 - 2 per issue; component: 10 with parent, else 5

Any identity with a syntactically valid DID gets at least TRUST_FLOOR.
A signal that fails to load contributes 0; it never fails the score.
Scores are recomputed on every call and never stored.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from ..core.logging import log_fields, verification_scope
from ..did import is_valid_did
from ..models import (
    AnchoringEvent,
    AnchorStatus,
    ApprovalStatus,
    Attestation,
    Credential,
    Identity,
    IdentityCategory,
    utc_now_iso,
)
from ..sync.datastore import HybridDataStore
from .hierarchy import HierarchyReport, HierarchyValidator
from .protocol import ProtocolVerificationResult, ProtocolVerifier

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_IDENTITY_RESOLUTION = 25
MAX_ANCHORING = 25
MAX_ATTESTATIONS = 25
MAX_CREDENTIALS = 15
MAX_HIERARCHY = 10

TRUST_FLOOR = 20
MAX_SCORE = 100

# Identity resolution tiers
RESOLUTION_VERIFIED_CHAIN = 25
RESOLUTION_UNVERIFIED_ENTRIES = 15
RESOLUTION_VALID_DID = 10

# Attestation scaling
ATTESTATION_BASE = 15
ATTESTATION_INCREMENT = 2
ATTESTATION_PENDING_ONLY = 5

CREDENTIAL_INCREMENT = 5

HIERARCHY_ISSUE_PENALTY = 2
HIERARCHY_ORPHAN_COMPONENT = 5


@dataclass
class TrustBreakdown:
    """The five sub-scores of a trust score."""

    identity_resolution: int = 0
    anchoring: int = 0
    attestations: int = 0
    credentials: int = 0
    hierarchy: int = 0

    @property
    def total(self) -> int:
        return self.identity_resolution + self.anchoring + self.attestations + self.credentials + self.hierarchy

    def to_dict(self) -> dict[str, int]:
        return {
            "identity_resolution": self.identity_resolution,
            "anchoring": self.anchoring,
            "attestations": self.attestations,
            "credentials": self.credentials,
            "hierarchy": self.hierarchy,
        }


@dataclass
class TrustScore:
    """Trust score of one identity."""

    did: str
    score: int
    breakdown: TrustBreakdown = field(default_factory=TrustBreakdown)
    protocol: ProtocolVerificationResult | None = None
    hierarchy_issues: list[str] = field(default_factory=list)
    computed_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "did": self.did,
            "score": self.score,
            "breakdown": self.breakdown.to_dict(),
            "protocol": self.protocol.to_dict() if self.protocol else None,
            "hierarchy_issues": list(self.hierarchy_issues),
            "computed_at": self.computed_at,
        }


# =============================================================================
# SUB-SCORES
# =============================================================================


def score_identity_resolution(did: str, protocol: ProtocolVerificationResult | None) -> int:
    if protocol is not None and protocol.entry_count > 0:
        return RESOLUTION_VERIFIED_CHAIN if protocol.log_verified else RESOLUTION_UNVERIFIED_ENTRIES
    return RESOLUTION_VALID_DID if is_valid_did(did) else 0


def score_anchoring(protocol: ProtocolVerificationResult | None, anchors: list[AnchoringEvent]) -> int:
    if protocol is not None and protocol.witness_valid:
        return MAX_ANCHORING
    return MAX_ANCHORING if anchors else 0


def score_attestations(attestations: list[Attestation]) -> int:
    confirmed = sum(
        1
        for a in attestations
        if a.approval_status != ApprovalStatus.REJECTED
        and (a.approval_status == ApprovalStatus.APPROVED or a.witness_status == AnchorStatus.ANCHORED)
    )
    if confirmed:
        return min(MAX_ATTESTATIONS, ATTESTATION_BASE + ATTESTATION_INCREMENT * confirmed)
    if any(a.approval_status == ApprovalStatus.PENDING for a in attestations):
        return ATTESTATION_PENDING_ONLY
    return 0


def score_credentials(credentials: list[Credential]) -> int:
    return min(MAX_CREDENTIALS, CREDENTIAL_INCREMENT * sum(1 for c in credentials if c.is_valid))


def score_hierarchy(identity: Identity, report: HierarchyReport | None, has_parent: bool) -> int:
    if identity.category == IdentityCategory.COMPONENT:
        return MAX_HIERARCHY if has_parent else HIERARCHY_ORPHAN_COMPONENT
    if report is None:
        return 0
    if report.valid:
        return MAX_HIERARCHY
    return max(0, MAX_HIERARCHY - HIERARCHY_ISSUE_PENALTY * len(report.issues))


def clamp_score(total: int, did: str) -> int:
    """Apply the floor for valid DIDs and clamp into [0, MAX_SCORE]."""
    if is_valid_did(did):
        total = max(TRUST_FLOOR, total)
    return max(0, min(MAX_SCORE, int(total)))


# =============================================================================
# ENGINE
# =============================================================================


class TrustScoreEngine:
    """Computes trust scores from protocol files, the data store and the hierarchy."""

    def __init__(
        self,
        datastore: HybridDataStore,
        verifier: ProtocolVerifier,
        hierarchy: HierarchyValidator | None = None,
    ):
        self.datastore = datastore
        self.verifier = verifier
        self.hierarchy = hierarchy or HierarchyValidator(datastore)

    async def _signal(self, name: str, did: str, awaitable: Awaitable[T], default: T) -> T:
        try:
            return await awaitable
        except Exception as e:
            logger.warning(f"Trust signal {name} unavailable for {did}: {e}")
            return default

    async def _resolve(self, identity_id: str) -> Identity | None:
        identity = await self.datastore.get_identity_by_id(identity_id)
        if identity is None and is_valid_did(identity_id):
            identity = await self.datastore.get_identity(identity_id)
        return identity

    async def score(self, identity_id: str) -> TrustScore:
        """Score an identity given its DID or source id.

        Unknown identities score 0.
        """
        identity = await self._signal("identity", identity_id, self._resolve(identity_id), None)
        if identity is None:
            logger.info("Trust score for unknown identity: 0", extra=log_fields(identity_id=identity_id, score=0))
            return TrustScore(did=identity_id, score=0)

        did = identity.did
        is_main = identity.category == IdentityCategory.MAIN

        with verification_scope(did):
            protocol, anchors, attestations, report = await asyncio.gather(
                self._signal("protocol_files", did, self.verifier.verify_protocol_files(did), None),
                self._signal("anchoring", did, self.datastore.anchoring_events_for(did), []),
                self._signal("attestations", did, self.datastore.attestations_for(did), []),
                self._signal("hierarchy", did, self._hierarchy_report(did, is_main), None),
            )

            try:
                credentials = self.datastore.credentials_for(did)
            except Exception as e:
                logger.warning(f"Trust signal credentials unavailable for {did}: {e}")
                credentials = []

            breakdown = TrustBreakdown(
                identity_resolution=score_identity_resolution(did, protocol),
                anchoring=score_anchoring(protocol, anchors),
                attestations=score_attestations(attestations),
                credentials=score_credentials(credentials),
                hierarchy=score_hierarchy(identity, report, self.hierarchy.has_parent(identity)),
            )
            score = clamp_score(breakdown.total, did)

            logger.info(
                f"Trust score for {did}: {score}",
                extra=log_fields(score=score, category=identity.category.value, **breakdown.to_dict()),
            )
            return TrustScore(
                did=did,
                score=score,
                breakdown=breakdown,
                protocol=protocol,
                hierarchy_issues=list(report.issues) if report else [],
            )

    async def _hierarchy_report(self, did: str, is_main: bool) -> HierarchyReport | None:
        if not is_main:
            return None
        return await self.hierarchy.check_hierarchy(did)
