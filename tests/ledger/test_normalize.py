"""Tests for normalization of ledger payloads."""

from __future__ import annotations

import pytest

from dpptrust.core.exceptions import MalformedDataException
from dpptrust.ledger.normalize import (
    DEFAULT_OWNER,
    normalize_bundle,
    normalize_category,
    normalize_event,
    normalize_events,
    normalize_identities,
    normalize_identity,
)
from dpptrust.models import IdentityCategory

# ============================================================================
# Categories
# ============================================================================


class TestNormalizeCategory:
    """Tests for product type mapping."""

    @pytest.mark.parametrize("raw_type", ["window", "Window", "main"])
    def test_main_types(self, raw_type):
        assert normalize_category(raw_type, None) == IdentityCategory.MAIN

    def test_component(self):
        assert normalize_category("component", None) == IdentityCategory.COMPONENT

    def test_unknown_type_with_parent_is_component(self):
        """Glass, frame and similar parts are components when they have a parent."""
        assert normalize_category("glass", "did:example:w1") == IdentityCategory.COMPONENT

    def test_unknown_type_without_parent_is_main(self):
        assert normalize_category("glass", None) == IdentityCategory.MAIN
        assert normalize_category(None, None) == IdentityCategory.MAIN


# ============================================================================
# Identities
# ============================================================================


class TestNormalizeIdentity:
    """Tests for identity normalization."""

    def test_camel_case_payload(self, remote_identity_payload):
        """camelCase fields map onto the model."""
        identity = normalize_identity(remote_identity_payload("abc123456789"))
        assert identity.did == "did:webvh:abc123456789:ledger.example"
        assert identity.id == "abc123456789"
        assert identity.category == IdentityCategory.MAIN
        assert identity.model == "Window abc123456789"
        assert identity.owner == "did:webvh:owner:ledger.example"
        assert identity.created_at == "2026-01-05T10:00:00Z"
        assert identity.updated_at == identity.created_at

    def test_snake_case_payload(self):
        """snake_case spellings are accepted too."""
        identity = normalize_identity(
            {
                "did": "did:webvh:g1:ledger.example",
                "parent_did": "did:webvh:w1:ledger.example",
                "product_type": "glass",
                "lifecycle_status": "in_use",
                "created_at": 1_767_607_200_000,
            }
        )
        assert identity.category == IdentityCategory.COMPONENT
        assert identity.parent_did == "did:webvh:w1:ledger.example"
        assert identity.lifecycle_status == "in_use"
        assert identity.created_at == "2026-01-05T10:00:00+00:00"

    def test_parent_from_metadata(self):
        """A parent DID inside metadata is honoured."""
        identity = normalize_identity(
            {"did": "did:webvh:g1:ledger.example", "metadata": {"type": "frame", "parentDid": "did:webvh:w1:x"}}
        )
        assert identity.parent_did == "did:webvh:w1:x"
        assert identity.category == IdentityCategory.COMPONENT

    def test_defaults(self):
        """Missing fields get defaults."""
        identity = normalize_identity({"did": "did:webvh:abcdefghijkl:ledger.example"})
        assert identity.id == "abcdefghijkl"
        assert identity.model == "Product-abcdefgh"
        assert identity.owner == DEFAULT_OWNER
        assert identity.lifecycle_status == "active"
        assert identity.version == 1
        assert identity.metadata == {}

    @pytest.mark.parametrize("raw", [None, [], {"scid": "abc"}, {"did": ""}])
    def test_malformed(self, raw):
        with pytest.raises(MalformedDataException):
            normalize_identity(raw)

    def test_list_skips_malformed(self, remote_identity_payload):
        """Bad entries are dropped, good ones kept."""
        identities = normalize_identities([remote_identity_payload("a"), "garbage", {"no": "did"}])
        assert [i.id for i in identities] == ["a"]

    def test_non_string_fields_coerced(self):
        """Numbers in text fields become strings; objects are dropped."""
        identity = normalize_identity(
            {
                "did": "did:webvh:abc:ledger.example",
                "model": 42,
                "status": 3,
                "owner": {"did": "nested"},
                "custodian": 7,
            }
        )
        assert identity.model == "42"
        assert identity.lifecycle_status == "3"
        assert identity.owner == DEFAULT_OWNER
        assert identity.custodian == "7"

    def test_out_of_range_timestamp(self):
        identity = normalize_identity({"did": "did:webvh:abc:ledger.example", "createdAt": 10**30})
        assert identity.created_at is None
        assert identity.updated_at is None


# ============================================================================
# Events
# ============================================================================


class TestNormalizeEvent:
    """Tests for event normalization."""

    def test_witnessed_event(self):
        """Witness bundles are parsed with their signatures."""
        event = normalize_event(
            {
                "id": "evt-1",
                "did": "did:webvh:abc:ledger.example",
                "eventType": "create",
                "versionId": 1,
                "timestamp": "2026-01-05T10:00:00Z",
                "payload": {"model": "Window"},
                "witnessProofs": {
                    "batchId": "7",
                    "merkleRoot": "root",
                    "txHash": "0xabc",
                    "blockNumber": 42,
                    "witnesses": [
                        {"witnessDid": "did:webvh:w:ledger.example", "signature": "sig"},
                        {"signature": "no-did"},
                    ],
                },
            }
        )
        assert event.id == "evt-1"
        assert event.version_id == "1"
        assert event.event_type == "create"
        assert event.created_at == "2026-01-05T10:00:00Z"
        bundle = event.witness_proofs
        assert bundle.batch_id == 7
        assert bundle.block_number == 42
        assert bundle.is_anchored
        assert [w.witness_did for w in bundle.witnesses] == ["did:webvh:w:ledger.example"]

    def test_generated_id(self):
        """Events without an id are keyed by DID and version."""
        event = normalize_event({"did": "did:example:w1", "version_id": "3"})
        assert event.id == "did:example:w1#3"
        assert event.event_type == "update"
        assert event.witness_proofs is None

    def test_bundle_not_object(self):
        assert normalize_bundle("nope") is None
        assert normalize_bundle(None) is None

    def test_bundle_numeric_fields_coerced(self):
        """Numeric hashes arrive as strings so they can be compared as hex."""
        bundle = normalize_bundle({"leafHash": 12, "merkleRoot": 34, "txHash": 5, "versionId": 2, "merkleProof": [56]})
        assert bundle.leaf_hash == "12"
        assert bundle.merkle_root == "34"
        assert bundle.tx_hash == "5"
        assert bundle.version_id == "2"
        assert bundle.merkle_proof == ["56"]

    def test_bundle_witnesses_not_a_list(self):
        bundle = normalize_bundle({"batchId": 1, "witnesses": {"witnessDid": "did:example:wit"}})
        assert bundle.witnesses == []

    def test_witness_timestamp_out_of_range(self):
        bundle = normalize_bundle({"witnesses": [{"witnessDid": "did:example:wit", "timestamp": 10**30}]})
        assert bundle.witnesses[0].timestamp is None

    def test_list_skips_malformed(self):
        events = normalize_events([{"did": "did:example:w1", "id": "e1"}, 5, {}])
        assert [e.id for e in events] == ["e1"]
