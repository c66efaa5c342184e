# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Verification of raw DID protocol files.

Fetches an identity's hash-chained log (did.jsonl) and witness-proof file
(did-witness.json) straight from storage, bypassing the ledger database,
and checks them:

- Hash chain: every entry after the first declares
  parameters.prevVersionHash, which must equal the SHA-256 of the previous
  entry's raw line. Any mismatch, missing back-link or unparseable line
  breaks the chain. Version-id gaps are only warnings.
- Entry proofs: Ed25519 signatures are checked against the key the first
  entry publishes (see proofs.py); a bad signature is an error, a missing
  key only a warning. The SCID check is advisory.
- Witness proofs: at least one anchoring proof must exist. Proofs carrying
  a leaf hash, Merkle path and root are additionally checked against the
  root with sorted-pair SHA-256 hashing.

A missing witness file is the normal "not yet anchored" state. Nothing here
raises: every failure is recorded in the returned result.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from ..core.exceptions import DPPException, NotFoundError
from ..core.logging import log_fields, verification_scope
from ..did import is_valid_did, parse_did
from ..ledger.client import LedgerClient
from ..ledger.normalize import normalize_bundle
from ..models import WitnessProofBundle
from .proofs import check_scid, verify_log_proofs

logger = logging.getLogger(__name__)


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass
class LogEntry:
    """One line of a DID log."""

    line_number: int
    raw: str
    data: dict[str, Any] | None = None  # None if the line is not a JSON object

    @property
    def version_id(self) -> str | None:
        if self.data is None:
            return None
        value = self.data.get("versionId")
        return str(value) if value is not None else None

    @property
    def parameters(self) -> dict[str, Any]:
        params = self.data.get("parameters") if self.data else None
        return params if isinstance(params, dict) else {}


@dataclass
class ChainCheck:
    """Outcome of a hash-chain verification."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class ProtocolVerificationResult:
    """Evidence gathered from the protocol files of one identity."""

    did: str
    hash_chain_valid: bool = False
    witness_valid: bool = False
    witness_count: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    entry_count: int = 0
    proofs: list[WitnessProofBundle] = field(default_factory=list)
    merkle_verified: int = 0
    signatures_valid: bool | None = None  # None when no key was published
    signatures_verified: int = 0
    scid_matches: bool | None = None

    @property
    def log_verified(self) -> bool:
        """Hash chain intact and no entry proof rejected."""
        return self.hash_chain_valid and self.signatures_valid is not False

    def to_dict(self) -> dict[str, Any]:
        return {
            "did": self.did,
            "hash_chain_valid": self.hash_chain_valid,
            "witness_valid": self.witness_valid,
            "witness_count": self.witness_count,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "entry_count": self.entry_count,
            "proofs": [p.to_dict() for p in self.proofs],
            "merkle_verified": self.merkle_verified,
            "signatures_valid": self.signatures_valid,
            "signatures_verified": self.signatures_verified,
            "scid_matches": self.scid_matches,
        }


# =============================================================================
# HASH CHAIN
# =============================================================================


def hash_log_entry(raw_line: str) -> str:
    """SHA-256 hex digest of a raw log line."""
    return hashlib.sha256(raw_line.encode("utf-8")).hexdigest()


def _normalize_hex(value: str) -> str:
    value = value.strip().lower()
    return value[2:] if value.startswith("0x") else value


def _version_number(version_id: str | None) -> int | None:
    if version_id is None:
        return None
    prefix = version_id.split("-", 1)[0]
    return int(prefix) if prefix.isdigit() else None


def parse_log(text: str) -> list[LogEntry]:
    """Split a did.jsonl document into entries, one per non-blank line."""
    entries = []
    for line_number, line in enumerate(text.split("\n"), start=1):
        raw = line.rstrip("\r")
        if not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            data = None
        entries.append(LogEntry(line_number=line_number, raw=raw, data=data if isinstance(data, dict) else None))
    return entries


def verify_hash_chain(entries: list[LogEntry]) -> ChainCheck:
    """Check the back-links of a parsed log."""
    if not entries:
        return ChainCheck(valid=False, errors=["Log is empty"])

    errors: list[str] = []
    warnings: list[str] = []

    for index, entry in enumerate(entries):
        if entry.data is None:
            errors.append(f"Entry {index} (line {entry.line_number}) is not a valid JSON object")

    if entries[0].data is not None and not entries[0].parameters.get("scid"):
        warnings.append("First entry missing SCID in parameters")

    for index in range(1, len(entries)):
        previous, current = entries[index - 1], entries[index]
        if current.data is None:
            continue

        declared = current.parameters.get("prevVersionHash")
        if not isinstance(declared, str) or not declared:
            errors.append(f"Entry {index} missing prevVersionHash")
            continue

        expected = hash_log_entry(previous.raw)
        if _normalize_hex(declared) != expected:
            errors.append(
                f"Entry {index} hash chain broken: expected {expected[:16]}..., "
                f"got {_normalize_hex(declared)[:16]}..."
            )

        prev_version = _version_number(previous.version_id)
        curr_version = _version_number(current.version_id)
        if prev_version is not None and curr_version is not None and curr_version != prev_version + 1:
            warnings.append(f"Version ID gap: {prev_version} -> {curr_version}")

    if entries[-1].parameters.get("deactivated"):
        warnings.append("DID is deactivated")

    return ChainCheck(valid=not errors, errors=errors, warnings=warnings)


# =============================================================================
# WITNESS PROOFS
# =============================================================================


def verify_merkle_proof(leaf_hash: str, proof: list[str], merkle_root: str) -> bool:
    """Check a Merkle inclusion proof built with sorted-pair SHA-256.

    Non-string or non-hex inputs never verify.
    """
    if not isinstance(leaf_hash, str) or not isinstance(merkle_root, str) or not isinstance(proof, list):
        return False
    if not all(isinstance(p, str) for p in proof):
        return False
    try:
        node = bytes.fromhex(_normalize_hex(leaf_hash))
        siblings = [bytes.fromhex(_normalize_hex(p)) for p in proof]
        root = bytes.fromhex(_normalize_hex(merkle_root))
    except ValueError:
        return False

    for sibling in siblings:
        left, right = sorted((node, sibling))
        node = hashlib.sha256(left + right).digest()
    return node == root


def parse_witness_file(document: Any) -> list[WitnessProofBundle]:
    """Extract anchoring proofs from a did-witness.json document.

    Accepts an object with an anchoringProofs array or a bare array.
    """
    if isinstance(document, dict):
        items = document.get("anchoringProofs")
    else:
        items = document
    if not isinstance(items, list):
        return []

    proofs = []
    for item in items:
        bundle = normalize_bundle(item)
        if bundle is not None:
            proofs.append(bundle)
    return proofs


# =============================================================================
# VERIFIER
# =============================================================================


class ProtocolVerifier:
    """Fetches and checks the protocol files of identities."""

    def __init__(self, client: LedgerClient):
        self.client = client

    async def verify_protocol_files(self, did: str) -> ProtocolVerificationResult:
        """Verify the log and witness file of one identity.

        Always returns a result, with whatever partial evidence was gathered.
        """
        result = ProtocolVerificationResult(did=did)
        if not is_valid_did(did):
            result.errors.append(f"Invalid DID: {did}")
            return result

        with verification_scope(did):
            outcomes = await asyncio.gather(
                self._check_log(result),
                self._check_witnesses(result),
                return_exceptions=True,
            )
            for label, outcome in zip(("DID log", "Witness file"), outcomes):
                if isinstance(outcome, Exception):
                    logger.error(f"{label} check of {did} failed unexpectedly", exc_info=outcome)
                    result.errors.append(f"{label} check failed: {type(outcome).__name__}: {outcome}")
                elif isinstance(outcome, BaseException):
                    raise outcome

            logger.debug(
                "Protocol files checked",
                extra=log_fields(
                    hash_chain_valid=result.hash_chain_valid,
                    signatures_valid=result.signatures_valid,
                    entries=result.entry_count,
                    witnesses=result.witness_count,
                    merkle_verified=result.merkle_verified,
                ),
            )
        return result

    async def _check_log(self, result: ProtocolVerificationResult) -> None:
        try:
            text = await self.client.fetch_did_log(result.did)
        except NotFoundError:
            result.warnings.append("DID log not published")
            return
        except DPPException as e:
            logger.warning(f"Could not fetch DID log for {result.did}: {e.message}")
            result.errors.append(f"DID log fetch failed: {e.message}")
            return

        entries = parse_log(text)
        check = verify_hash_chain(entries)
        result.entry_count = len(entries)
        result.hash_chain_valid = check.valid
        result.errors.extend(check.errors)
        result.warnings.extend(check.warnings)
        if not entries:
            return

        documents = [entry.data for entry in entries]
        proofs = verify_log_proofs(documents)
        result.signatures_valid = proofs.valid
        result.signatures_verified = proofs.verified
        result.errors.extend(proofs.errors)
        result.warnings.extend(proofs.warnings)

        parsed = parse_did(result.did)
        if parsed.is_webvh:
            result.scid_matches, scid_warnings = check_scid(parsed.scid, documents[0])
            result.warnings.extend(scid_warnings)

        if not check.valid or proofs.errors:
            logger.warning(
                f"DID log of {result.did} failed verification",
                extra=log_fields(chain_errors=len(check.errors), signature_errors=len(proofs.errors)),
            )

    async def _check_witnesses(self, result: ProtocolVerificationResult) -> None:
        try:
            document = await self.client.fetch_witness_file(result.did)
        except NotFoundError:
            result.warnings.append("No witness file yet (not anchored)")
            return
        except DPPException as e:
            logger.warning(f"Could not fetch witness file for {result.did}: {e.message}")
            result.errors.append(f"Witness file fetch failed: {e.message}")
            return

        proofs = parse_witness_file(document)
        result.proofs = proofs
        result.witness_count = len(proofs)
        result.witness_valid = len(proofs) > 0

        for proof in proofs:
            if not (proof.leaf_hash and proof.merkle_root):
                continue
            if verify_merkle_proof(proof.leaf_hash, proof.merkle_proof, proof.merkle_root):
                result.merkle_verified += 1
            else:
                result.warnings.append(f"Merkle proof for version {proof.version_id} does not match its root")
