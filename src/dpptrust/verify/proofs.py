# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Checks of the proofs already embedded in a DID log.

Every log entry may carry a Data Integrity proof over its DID document
state, signed with the Ed25519 key that the first entry publishes as
verificationMethod[0].publicKeyMultibase. Signatures are only verified,
never produced.

The SCID check is advisory. The SCID is derived from the first entry with
every occurrence of the SCID replaced by the "{SCID}" placeholder; the
ledger has used other derivations, so a mismatch is only a warning.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
from dataclasses import dataclass, field
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

# =============================================================================
# CONSTANTS
# =============================================================================

# Multibase prefixes
MULTIBASE_BASE58BTC = "z"
MULTIBASE_BASE64URL = "u"

# Multicodec prefix for Ed25519 public key (0xed01)
MULTICODEC_ED25519_PUB = bytes([0xED, 0x01])

ED25519_KEY_LENGTH = 32
ED25519_SIGNATURE_LENGTH = 64

SCID_PLACEHOLDER = "{SCID}"


# =============================================================================
# MULTIBASE
# =============================================================================

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def base58_encode(data: bytes) -> str:
    """Encode bytes to base58 string."""
    num = int.from_bytes(data, "big")
    result = ""
    while num > 0:
        num, remainder = divmod(num, 58)
        result = BASE58_ALPHABET[remainder] + result

    leading_zeros = len(data) - len(data.lstrip(b"\x00"))
    return BASE58_ALPHABET[0] * leading_zeros + result


def base58_decode(text: str) -> bytes:
    """Decode a base58 string.

    Raises ValueError on characters outside the alphabet.
    """
    num = 0
    for char in text:
        num = num * 58 + BASE58_ALPHABET.index(char)

    body = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    leading_zeros = len(text) - len(text.lstrip(BASE58_ALPHABET[0]))
    return b"\x00" * leading_zeros + body


def _base64url_decode(text: str) -> bytes:
    try:
        return base64.b64decode(text + "=" * (-len(text) % 4), altchars=b"-_", validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64url: {e}") from e


def multibase_encode(data: bytes) -> str:
    """Encode bytes to multibase (base58btc)."""
    return MULTIBASE_BASE58BTC + base58_encode(data)


def _readings(value: str) -> list[bytes]:
    """Candidate byte readings of a multibase value, standard reading first.

    Ledger tooling has written "z" followed by base64url, so a "z" value is
    also read that way when it is not valid base58.
    """
    if not value:
        return []
    prefix, body = value[0], value[1:]
    if prefix == MULTIBASE_BASE58BTC:
        decoders = (base58_decode, _base64url_decode)
    elif prefix == MULTIBASE_BASE64URL:
        decoders = (_base64url_decode,)
    else:
        return []

    readings = []
    for decode in decoders:
        try:
            readings.append(decode(body))
        except ValueError:
            continue
    return readings


def multibase_decode(value: str, expected_length: int | None = None) -> bytes:
    """Decode a multibase string.

    With expected_length, the first reading of that length is returned.

    Raises ValueError if no reading fits.
    """
    for reading in _readings(value):
        if expected_length is None or len(reading) == expected_length:
            return reading
    raise ValueError(f"Cannot decode multibase value {value[:16]!r}")


def public_key_from_multibase(value: str) -> Ed25519PublicKey:
    """Load an Ed25519 public key, with or without its multicodec prefix.

    Raises ValueError if the value is not an Ed25519 key.
    """
    for reading in _readings(value):
        if len(reading) == ED25519_KEY_LENGTH + 2 and reading[:2] == MULTICODEC_ED25519_PUB:
            return Ed25519PublicKey.from_public_bytes(reading[2:])
        if len(reading) == ED25519_KEY_LENGTH:
            return Ed25519PublicKey.from_public_bytes(reading)
    raise ValueError(f"Not an Ed25519 public key: {value[:16]!r}")


# =============================================================================
# ENTRY ACCESSORS
# =============================================================================


def signed_document(entry: dict[str, Any]) -> Any:
    """The DID document state a log entry's proof signs."""
    return entry.get("state") or entry.get("didDocument")


def signing_input(document: Any) -> bytes:
    """Compact JSON of a document, keys in their published order."""
    return json.dumps(document, separators=(",", ":"), ensure_ascii=False).encode("utf-8", "surrogatepass")


def first_proof(entry: dict[str, Any]) -> dict[str, Any] | None:
    proof = entry.get("proof")
    if isinstance(proof, list):
        proof = proof[0] if proof else None
    return proof if isinstance(proof, dict) else None


def find_public_key(entry: dict[str, Any] | None) -> str | None:
    """The publicKeyMultibase of the first verification method, if any."""
    document = signed_document(entry) if entry else None
    if not isinstance(document, dict):
        return None
    methods = document.get("verificationMethod")
    if not isinstance(methods, list) or not methods or not isinstance(methods[0], dict):
        return None
    key = methods[0].get("publicKeyMultibase")
    return key if isinstance(key, str) and key else None


# =============================================================================
# SIGNATURES
# =============================================================================


@dataclass
class ProofCheck:
    """Outcome of verifying the proofs of a log."""

    checked: bool = False  # False when no usable public key was published
    verified: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool | None:
        return (not self.errors) if self.checked else None


def verify_entry_proof(entry: dict[str, Any], public_key: Ed25519PublicKey) -> str | None:
    """Verify the first proof of one entry; returns why it failed, or None."""
    proof = first_proof(entry)
    if proof is None:
        return "No proof found"

    proof_value = proof.get("proofValue")
    if not isinstance(proof_value, str) or not proof_value:
        return "Proof missing signature"

    document = signed_document(entry)
    if document is None:
        return "No signed data found"

    try:
        signature = multibase_decode(proof_value, ED25519_SIGNATURE_LENGTH)
    except ValueError:
        return "Invalid signature format"

    try:
        public_key.verify(signature, signing_input(document))
    except InvalidSignature:
        return "Invalid signature"
    return None


def verify_log_proofs(entries: list[dict[str, Any] | None]) -> ProofCheck:
    """Verify every entry's proof against the key published by the first entry.

    Entries that are not JSON objects are skipped; the hash-chain check
    already reports them.
    """
    check = ProofCheck()
    key_value = find_public_key(entries[0] if entries else None)
    if key_value is None:
        check.warnings.append("No public key available for signature verification")
        return check

    try:
        public_key = public_key_from_multibase(key_value)
    except ValueError:
        check.checked = True
        check.errors.append("Could not decode public key multibase")
        return check

    check.checked = True
    for index, entry in enumerate(entries):
        if entry is None:
            continue
        if first_proof(entry) is None:
            check.warnings.append(f"Entry {index} has no proof")
            continue
        failure = verify_entry_proof(entry, public_key)
        if failure:
            check.errors.append(f"Entry {index}: {failure}")
        else:
            check.verified += 1
    return check


# =============================================================================
# SCID
# =============================================================================


def compute_scid(entry: dict[str, Any], scid: str) -> str | None:
    """Derive the SCID of a genesis entry that embeds the given SCID.

    SHA-256 over the compact JSON of the entry's state plus its versionTime,
    with the SCID replaced by the placeholder; the first 16 bytes, as "z"
    followed by unpadded base64url. None when the entry has no state.
    """
    document = signed_document(entry)
    if not scid or not isinstance(document, dict):
        return None

    content = dict(document)
    version_time = entry.get("versionTime") or entry.get("timestamp")
    if version_time is not None:
        content["versionTime"] = version_time
    else:
        content.pop("versionTime", None)

    serialized = signing_input(content).decode("utf-8", "surrogatepass").replace(scid, SCID_PLACEHOLDER)
    digest = hashlib.sha256(serialized.encode("utf-8", "surrogatepass")).digest()
    return "z" + base64.urlsafe_b64encode(digest[:16]).rstrip(b"=").decode("ascii")


def check_scid(scid: str, entry: dict[str, Any] | None) -> tuple[bool | None, list[str]]:
    """Advisory SCID checks of a genesis entry.

    Returns whether the derived SCID matches (None when nothing could be
    derived) and the warnings to report.
    """
    if entry is None:
        return None, []

    warnings = []
    parameters = entry.get("parameters")
    declared = parameters.get("scid") if isinstance(parameters, dict) else None
    if isinstance(declared, str) and declared and declared != scid:
        warnings.append(f"Log declares SCID {declared}, DID uses {scid}")

    expected = compute_scid(entry, scid)
    matches = None if expected is None else expected == scid
    if matches is False:
        warnings.append("SCID does not match the first entry hash (derivation may differ)")
    return matches, warnings
