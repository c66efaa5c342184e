"""Tests for trust scoring."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from dpptrust.core.exceptions import NotFoundError
from dpptrust.models import (
    AnchoringEvent,
    AnchorStatus,
    ApprovalStatus,
    Attestation,
    Credential,
    Identity,
    IdentityCategory,
)
from dpptrust.verify.hierarchy import HierarchyReport
from dpptrust.verify.protocol import ProtocolVerificationResult, ProtocolVerifier
from dpptrust.verify.trust import (
    TRUST_FLOOR,
    TrustBreakdown,
    TrustScoreEngine,
    clamp_score,
    score_anchoring,
    score_attestations,
    score_credentials,
    score_hierarchy,
    score_identity_resolution,
)

DID = "did:example:w1"


def _attestation(status=ApprovalStatus.APPROVED, witness_status=AnchorStatus.PENDING, n=0) -> Attestation:
    return Attestation(
        DID, f"did:example:witness{n}", "audit", f"sig{n}", approval_status=status, witness_status=witness_status
    )


# ============================================================================
# Sub-scores
# ============================================================================


class TestIdentityResolution:
    """Tests for the identity resolution sub-score."""

    def test_verified_chain(self):
        protocol = ProtocolVerificationResult(did=DID, hash_chain_valid=True, entry_count=3)
        assert score_identity_resolution(DID, protocol) == 25

    def test_entries_without_valid_chain(self):
        protocol = ProtocolVerificationResult(did=DID, hash_chain_valid=False, entry_count=3)
        assert score_identity_resolution(DID, protocol) == 15

    def test_rejected_entry_proof(self):
        """An intact chain with a bad signature is not a verified log."""
        protocol = ProtocolVerificationResult(did=DID, hash_chain_valid=True, entry_count=3, signatures_valid=False)
        assert score_identity_resolution(DID, protocol) == 15

    def test_unsigned_chain_still_verified(self):
        protocol = ProtocolVerificationResult(did=DID, hash_chain_valid=True, entry_count=3, signatures_valid=None)
        assert score_identity_resolution(DID, protocol) == 25

    def test_valid_did_only(self):
        assert score_identity_resolution(DID, ProtocolVerificationResult(did=DID)) == 10
        assert score_identity_resolution(DID, None) == 10

    def test_invalid_did(self):
        assert score_identity_resolution("nope", None) == 0


class TestAnchoring:
    """Tests for the anchoring sub-score."""

    def test_witness_proofs(self):
        assert score_anchoring(ProtocolVerificationResult(did=DID, witness_valid=True), []) == 25

    def test_recorded_anchor(self):
        assert score_anchoring(None, [AnchoringEvent(DID, "0xabc")]) == 25

    def test_nothing(self):
        assert score_anchoring(ProtocolVerificationResult(did=DID), []) == 0


class TestAttestations:
    """Tests for the attestation sub-score."""

    @pytest.mark.parametrize(("count", "expected"), [(1, 17), (3, 21), (5, 25), (9, 25)])
    def test_scaling(self, count, expected):
        assert score_attestations([_attestation(n=i) for i in range(count)]) == expected

    def test_pending_only(self):
        assert score_attestations([_attestation(ApprovalStatus.PENDING)]) == 5

    def test_anchored_pending_counts(self):
        """A pending attestation that is anchored counts as confirmed."""
        assert score_attestations([_attestation(ApprovalStatus.PENDING, AnchorStatus.ANCHORED)]) == 17

    def test_rejected_never_counts(self):
        assert score_attestations([_attestation(ApprovalStatus.REJECTED, AnchorStatus.ANCHORED)]) == 0

    def test_none(self):
        assert score_attestations([]) == 0


class TestCredentialsAndHierarchy:
    """Tests for the credential and hierarchy sub-scores."""

    def test_credentials(self):
        valid = [Credential(DID, "ce", "did:example:issuer", verification_status="valid") for _ in range(4)]
        expired = Credential(DID, "ce", "did:example:issuer", verification_status="expired")
        assert score_credentials(valid[:2] + [expired]) == 10
        assert score_credentials(valid) == 15

    def test_main_hierarchy(self):
        main = Identity(did=DID)
        assert score_hierarchy(main, HierarchyReport(valid=True), False) == 10
        assert score_hierarchy(main, HierarchyReport(valid=False, issues=["a"]), False) == 8
        assert score_hierarchy(main, HierarchyReport(valid=False, issues=["a"] * 7), False) == 0
        assert score_hierarchy(main, None, False) == 0

    def test_component_hierarchy(self):
        component = Identity(did="did:example:g1", category=IdentityCategory.COMPONENT)
        assert score_hierarchy(component, None, True) == 10
        assert score_hierarchy(component, None, False) == 5

    def test_clamp(self):
        assert clamp_score(3, DID) == TRUST_FLOOR
        assert clamp_score(3, "nope") == 3
        assert clamp_score(150, DID) == 100
        assert clamp_score(-5, "nope") == 0

    def test_breakdown_total(self):
        breakdown = TrustBreakdown(25, 25, 21, 10, 8)
        assert breakdown.total == 89
        assert breakdown.to_dict()["hierarchy"] == 8


# ============================================================================
# Engine
# ============================================================================


@pytest.fixture
def engine(make_datastore, mock_client):
    mock_client.fetch_did_log.side_effect = NotFoundError("did_log", DID)
    mock_client.fetch_witness_file.side_effect = NotFoundError("witness_file", DID)
    mock_client.get_identity.side_effect = NotFoundError("identity", "ghost")
    datastore = make_datastore()
    return TrustScoreEngine(datastore, ProtocolVerifier(mock_client))


class TestTrustScoreEngine:
    """Tests for end-to-end scoring."""

    @pytest.mark.asyncio
    async def test_unknown_identity_scores_zero(self, engine):
        score = await engine.score("did:example:ghost")
        assert score.score == 0
        assert score.breakdown.total == 0

    @pytest.mark.asyncio
    async def test_partial_hierarchy_with_floor(self, engine, local_store, window_hierarchy):
        """A local window with a missing child gets hierarchy 8 and the floor."""
        window_hierarchy(local_store)

        score = await engine.score(DID)

        assert score.breakdown.to_dict() == {
            "identity_resolution": 10,
            "anchoring": 0,
            "attestations": 0,
            "credentials": 0,
            "hierarchy": 8,
        }
        assert score.score == TRUST_FLOOR
        assert score.hierarchy_issues == ["Child did:example:f1 not found"]
        assert "DID log not published" in score.protocol.warnings

    @pytest.mark.asyncio
    async def test_fully_verified_identity(self, engine, mock_client, local_store, make_identity, did_log):
        """Every signal present reaches the maximum score."""
        local_store.insert_identity(make_identity(DID))
        mock_client.fetch_did_log.side_effect = None
        mock_client.fetch_did_log.return_value = did_log("w1", 3)
        mock_client.fetch_witness_file.side_effect = None
        mock_client.fetch_witness_file.return_value = {"anchoringProofs": [{"batchId": 1, "versionId": "1"}]}
        for i in range(5):
            local_store.insert_attestation(_attestation(n=i))
        for _ in range(3):
            local_store.insert_credential(Credential(DID, "ce", "did:example:issuer", verification_status="valid"))

        score = await engine.score(DID)

        assert score.breakdown == TrustBreakdown(25, 25, 25, 15, 10)
        assert score.score == 100

    @pytest.mark.asyncio
    async def test_forged_signature_lowers_resolution(
        self, engine, mock_client, local_store, make_identity, signed_log
    ):
        local_store.insert_identity(make_identity(DID))
        lines = signed_log(2).lines
        entry = json.loads(lines[1])
        entry["proof"][0]["proofValue"] = json.loads(lines[0])["proof"][0]["proofValue"]
        mock_client.fetch_did_log.side_effect = None
        mock_client.fetch_did_log.return_value = lines[0] + "\n" + json.dumps(entry) + "\n"

        score = await engine.score(DID)

        assert score.protocol.hash_chain_valid
        assert score.protocol.signatures_valid is False
        assert score.breakdown.identity_resolution == 15

    @pytest.mark.asyncio
    async def test_scored_by_local_id(self, engine, local_store, make_identity):
        stored = local_store.insert_identity(make_identity(DID))
        score = await engine.score(stored.id)
        assert score.did == DID
        assert score.score >= TRUST_FLOOR

    @pytest.mark.asyncio
    async def test_component_with_parent(self, engine, local_store, window_hierarchy):
        window_hierarchy(local_store)
        local_store.insert_anchoring_event(AnchoringEvent("did:example:g1", "0xabc"))

        score = await engine.score("did:example:g1")

        assert score.breakdown.hierarchy == 10
        assert score.breakdown.anchoring == 25
        assert score.score == 45
        assert score.hierarchy_issues == []

    @pytest.mark.asyncio
    async def test_failing_signal_contributes_zero(self, engine, local_store, make_identity, caplog):
        """A signal that raises is logged and scored as absent."""
        local_store.insert_identity(make_identity(DID))
        engine.verifier = AsyncMock(spec=ProtocolVerifier)
        engine.verifier.verify_protocol_files.side_effect = RuntimeError("storage exploded")

        score = await engine.score(DID)

        assert score.protocol is None
        assert score.breakdown.identity_resolution == 10
        assert 0 <= score.score <= 100
        assert "Trust signal protocol_files unavailable" in caplog.text

    @pytest.mark.asyncio
    async def test_recomputed_each_call(self, engine, local_store, make_identity):
        """Scores reflect new evidence immediately."""
        local_store.insert_identity(make_identity(DID))
        before = await engine.score(DID)
        local_store.insert_credential(Credential(DID, "ce", "did:example:issuer", verification_status="valid"))
        after = await engine.score(DID)
        assert after.breakdown.credentials == before.breakdown.credentials + 5

    def test_to_dict(self):
        from dpptrust.verify.trust import TrustScore

        data = TrustScore(did=DID, score=42).to_dict()
        assert data["score"] == 42
        assert data["protocol"] is None
        assert data["breakdown"]["anchoring"] == 0
