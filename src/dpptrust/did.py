# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""DID parsing and protocol-file location.

Product identities use did:webvh identifiers of the form

    did:webvh:<scid>:<domain>[:<path>...]

where the SCID (self-certifying identifier) names the directory holding the
identity's protocol files. Other DID methods are accepted for syntax checks;
for those the last identifier segment acts as the SCID.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from urllib.parse import quote, unquote

DID_PREFIX = "did:"
WEBVH_METHOD = "webvh"

WELL_KNOWN_DID_PATH = "/.well-known/did"
DID_LOG_FILENAME = "did.jsonl"
DID_WITNESS_FILENAME = "did-witness.json"

# did:<method>:<method-specific-id>, per DID Core section 3.1
DID_PATTERN = re.compile(r"^did:[a-z0-9]+:(?:[A-Za-z0-9_.%-]*:)*[A-Za-z0-9_.%-]+$")


@dataclass(frozen=True)
class ParsedDID:
    """A DID split into its parts."""

    method: str
    scid: str
    domain: str = ""
    path: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_webvh(self) -> bool:
        return self.method == WEBVH_METHOD


@dataclass(frozen=True)
class ProtocolLocation:
    """Where the raw protocol files of one identity are served."""

    did: str
    scid: str
    log_url: str
    witness_url: str


def is_valid_did(value: object) -> bool:
    """Check whether a value is a syntactically valid DID."""
    return isinstance(value, str) and DID_PATTERN.match(value) is not None


def parse_did(did_string: str) -> ParsedDID:
    """Parse a DID string.

    Raises ValueError if the DID is invalid.
    """
    if not is_valid_did(did_string):
        raise ValueError(f"Invalid DID: {did_string!r}")

    parts = did_string[len(DID_PREFIX):].split(":")
    method = parts[0]
    identifier = parts[1:]

    if method == WEBVH_METHOD and len(identifier) >= 2:
        return ParsedDID(
            method=method,
            scid=identifier[0],
            domain=unquote(identifier[1]),
            path=tuple(identifier[2:]),
        )

    return ParsedDID(method=method, scid=identifier[-1], path=tuple(identifier[:-1]))


def extract_scid(did_string: str) -> str | None:
    """Return the SCID segment of a DID, or None if the DID is invalid."""
    try:
        return parse_did(did_string).scid
    except ValueError:
        return None


def resolve_protocol_location(did_string: str, base_url: str) -> ProtocolLocation:
    """Resolve the log and witness-file URLs of an identity.

    The location is derived only from the DID, so the files can be fetched
    without consulting the ledger database.

    Raises ValueError if the DID is invalid.
    """
    parsed = parse_did(did_string)
    directory = f"{base_url.rstrip('/')}{WELL_KNOWN_DID_PATH}/{quote(parsed.scid, safe='')}"
    return ProtocolLocation(
        did=did_string,
        scid=parsed.scid,
        log_url=f"{directory}/{DID_LOG_FILENAME}",
        witness_url=f"{directory}/{DID_WITNESS_FILENAME}",
    )
