"""Global test fixtures for the dpptrust test suite."""

from __future__ import annotations

import asyncio
import hashlib
import json
import os
from collections import Counter
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from dpptrust.core.config import clear_config_cache
from dpptrust.ledger.client import LedgerClient
from dpptrust.ledger.health import HealthMonitor
from dpptrust.models import Identity, IdentityCategory, Relationship
from dpptrust.store.local import LocalStore
from dpptrust.sync.cache import QueryCache
from dpptrust.sync.datastore import HybridConfig, HybridDataStore
from dpptrust.verify.proofs import (
    MULTICODEC_ED25519_PUB,
    SCID_PLACEHOLDER,
    compute_scid,
    multibase_encode,
    signing_input,
)

# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all DPP_ environment variables and reset the config singleton."""
    for key in list(os.environ.keys()):
        if key.startswith("DPP_"):
            monkeypatch.delenv(key, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


# ============================================================================
# Clock
# ============================================================================


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# Sample Data
# ============================================================================


@pytest.fixture
def make_identity() -> Callable[..., Identity]:
    """Factory for identities with sensible defaults."""

    def _make(did: str, category: IdentityCategory = IdentityCategory.MAIN, **kwargs: Any) -> Identity:
        kwargs.setdefault("model", f"Model {did.rsplit(':', 1)[-1]}")
        kwargs.setdefault("owner", "did:example:manufacturer")
        return Identity(did=did, category=category, **kwargs)

    return _make


@pytest.fixture
def window_hierarchy(make_identity) -> Callable[[LocalStore], None]:
    """Populate a store with window w1, glass g1 and an edge to the never-created f1."""

    def _populate(store: LocalStore) -> None:
        store.insert_identity(make_identity("did:example:w1", model="Triple Glazed Window"))
        store.insert_identity(
            make_identity("did:example:g1", IdentityCategory.COMPONENT, parent_did="did:example:w1", model="Glass")
        )
        store.insert_relationship(Relationship(parent_did="did:example:w1", child_did="did:example:g1", position=0))
        store.insert_relationship(Relationship(parent_did="did:example:w1", child_did="did:example:f1", position=1))

    return _populate


def remote_identity(scid: str, **fields: Any) -> dict[str, Any]:
    """A ledger identity payload in the service's camelCase shape."""
    payload = {
        "scid": scid,
        "did": f"did:webvh:{scid}:ledger.example",
        "status": "active",
        "owner": "did:webvh:owner:ledger.example",
        "createdAt": "2026-01-05T10:00:00Z",
        "metadata": {"type": "window", "model": f"Window {scid}"},
    }
    payload.update(fields)
    return payload


@pytest.fixture
def remote_identity_payload() -> Callable[..., dict[str, Any]]:
    return remote_identity


# ============================================================================
# DID Logs
# ============================================================================


def build_did_log(scid: str, count: int) -> str:
    """A correctly hash-chained did.jsonl document with count entries."""
    lines: list[str] = []
    for version in range(1, count + 1):
        parameters: dict[str, Any] = {"method": "did:webvh:1.0", "scid": scid}
        if lines:
            parameters["prevVersionHash"] = hashlib.sha256(lines[-1].encode()).hexdigest()
        entry = {
            "versionId": str(version),
            "versionTime": f"2026-01-0{version}T00:00:00Z",
            "parameters": parameters,
            "state": {"id": f"did:webvh:{scid}:ledger.example"},
        }
        lines.append(json.dumps(entry, separators=(",", ":")))
    return "\n".join(lines) + "\n"


@pytest.fixture
def did_log() -> Callable[[str, int], str]:
    return build_did_log


@dataclass
class SignedLog:
    """A did.jsonl document whose entries carry Ed25519 proofs."""

    did: str
    scid: str
    text: str
    public_key_multibase: str

    @property
    def lines(self) -> list[str]:
        return self.text.splitlines()


SIGNING_KEY = Ed25519PrivateKey.from_private_bytes(bytes(range(32)))


def _did_state(did: str, key_multibase: str, version: int) -> dict[str, Any]:
    return {
        "@context": ["https://www.w3.org/ns/did/v1"],
        "id": did,
        "verificationMethod": [
            {
                "id": f"{did}#key-1",
                "type": "Multikey",
                "controller": did,
                "publicKeyMultibase": key_multibase,
            }
        ],
        "revision": version,
    }


def build_signed_did_log(count: int, signing_key: Ed25519PrivateKey = SIGNING_KEY) -> SignedLog:
    """A hash-chained, signed log with a SCID derived from its genesis entry."""
    public_bytes = signing_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
    key_multibase = multibase_encode(MULTICODEC_ED25519_PUB + public_bytes)

    first_time = "2026-01-01T00:00:00Z"
    template = {
        "versionTime": first_time,
        "state": _did_state(f"did:webvh:{SCID_PLACEHOLDER}:ledger.example", key_multibase, 1),
    }
    scid = compute_scid(template, SCID_PLACEHOLDER)
    did = f"did:webvh:{scid}:ledger.example"

    lines: list[str] = []
    for version in range(1, count + 1):
        parameters: dict[str, Any] = {"method": "did:webvh:1.0", "scid": scid}
        if lines:
            parameters["prevVersionHash"] = hashlib.sha256(lines[-1].encode()).hexdigest()
        state = _did_state(did, key_multibase, version)
        entry = {
            "versionId": str(version),
            "versionTime": first_time if version == 1 else f"2026-01-0{version}T00:00:00Z",
            "parameters": parameters,
            "state": state,
            "proof": [
                {
                    "type": "DataIntegrityProof",
                    "cryptosuite": "eddsa-jcs-2022",
                    "verificationMethod": f"{did}#key-1",
                    "proofPurpose": "assertionMethod",
                    "proofValue": multibase_encode(signing_key.sign(signing_input(state))),
                }
            ],
        }
        lines.append(json.dumps(entry, separators=(",", ":")))
    return SignedLog(did=did, scid=scid, text="\n".join(lines) + "\n", public_key_multibase=key_multibase)


@pytest.fixture
def signed_log() -> Callable[[int], SignedLog]:
    return build_signed_did_log


# ============================================================================
# In-process Ledger Service
# ============================================================================


class FakeLedger:
    """Configurable ledger service served by aiohttp.web."""

    def __init__(self) -> None:
        self.identities: list[Any] = []
        self.events: list[Any] = []
        self.logs: dict[str, str | bytes] = {}
        self.witness_files: dict[str, Any] = {}
        self.health_status = 200
        self.health_delay = 0.0
        self.identities_status = 200
        self.calls: Counter[str] = Counter()

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._health)
        app.router.add_get("/api/identities", self._identities)
        app.router.add_get("/api/identity/{scid}", self._identity)
        app.router.add_get("/api/events", self._events)
        app.router.add_get("/.well-known/did/{scid}/did.jsonl", self._log)
        app.router.add_get("/.well-known/did/{scid}/did-witness.json", self._witness)
        return app

    async def _health(self, request: web.Request) -> web.Response:
        self.calls["health"] += 1
        if self.health_delay:
            await asyncio.sleep(self.health_delay)
        return web.json_response({"status": "ok"}, status=self.health_status)

    async def _identities(self, request: web.Request) -> web.Response:
        self.calls["identities"] += 1
        if self.identities_status != 200:
            return web.json_response({"error": "boom"}, status=self.identities_status)
        return web.json_response(self.identities)

    async def _identity(self, request: web.Request) -> web.Response:
        self.calls["identity"] += 1
        scid = request.match_info["scid"]
        for item in self.identities:
            if isinstance(item, dict) and item.get("scid") == scid:
                return web.json_response(item)
        return web.json_response({"error": "not found"}, status=404)

    async def _events(self, request: web.Request) -> web.Response:
        self.calls["events"] += 1
        did = request.query.get("did", "")
        events = [e for e in self.events if not did or e.get("did") == did]
        return web.json_response(events)

    async def _log(self, request: web.Request) -> web.Response:
        self.calls["log"] += 1
        document = self.logs.get(request.match_info["scid"])
        if document is None:
            return web.Response(status=404, text="not found")
        if isinstance(document, bytes):
            return web.Response(body=document, content_type="application/jsonl", charset="utf-8")
        return web.Response(text=document, content_type="application/jsonl")

    async def _witness(self, request: web.Request) -> web.Response:
        self.calls["witness"] += 1
        scid = request.match_info["scid"]
        if scid not in self.witness_files:
            return web.Response(status=404, text="not found")
        document = self.witness_files[scid]
        if isinstance(document, str):
            return web.Response(text=document, content_type="application/json")
        return web.json_response(document)


@asynccontextmanager
async def serve_ledger(ledger: FakeLedger) -> AsyncIterator[str]:
    """Serve a FakeLedger on a local port; yields its base URL."""
    server = TestServer(ledger.app())
    await server.start_server()
    try:
        yield str(server.make_url("")).rstrip("/")
    finally:
        await server.close()


@pytest.fixture
def fake_ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def ledger_server() -> Callable[[FakeLedger], Any]:
    return serve_ledger


# ============================================================================
# Mocked Components
# ============================================================================


@pytest.fixture
def mock_client() -> AsyncMock:
    """LedgerClient double whose remote calls are AsyncMocks."""
    client = AsyncMock(spec=LedgerClient)
    client.list_identities.return_value = []
    client.list_events.return_value = []
    return client


@pytest.fixture
def mock_monitor() -> MagicMock:
    """HealthMonitor double reporting the ledger as available."""
    monitor = MagicMock(spec=HealthMonitor)
    monitor.is_available = AsyncMock(return_value=True)
    monitor.available = True
    monitor.get_stats.return_value = {}
    return monitor


@pytest.fixture
def local_store() -> LocalStore:
    return LocalStore()


@pytest.fixture
def make_datastore(mock_client, mock_monitor, local_store, clock) -> Callable[..., HybridDataStore]:
    """Factory for a HybridDataStore over the mocked client and monitor."""

    def _make(**config: Any) -> HybridDataStore:
        return HybridDataStore(
            mock_client,
            local_store,
            mock_monitor,
            config=HybridConfig(**config),
            cache=QueryCache(clock=clock),
        )

    return _make
