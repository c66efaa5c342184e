# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""HTTP client for the remote identity ledger service.

Endpoints:
    GET /health                                    reachability check
    GET {api}/identities                           bulk identity list
    GET {api}/events?did=                          events (all when did is empty)
    GET /.well-known/did/{scid}/did.jsonl          raw hash-chained log
    GET /.well-known/did/{scid}/did-witness.json   witness-proof bundle

The client raises the dpptrust exception types; deciding what a failure
means (fallback, "not yet anchored", ...) is left to the callers.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from urllib.parse import urlencode

import aiohttp

from ..core.config import CoreSettings, get_config
from ..core.exceptions import (
    LedgerException,
    LedgerUnavailableException,
    MalformedDataException,
    NotFoundError,
)
from ..did import resolve_protocol_location

logger = logging.getLogger(__name__)

HEALTH_PATH = "/health"
IDENTITIES_PATH = "/identities"
IDENTITY_PATH = "/identity"
EVENTS_PATH = "/events"


class LedgerClient:
    """Async client for the ledger REST API and protocol files."""

    def __init__(
        self,
        base_url: str,
        api_prefix: str = "/api",
        protocol_base_url: str | None = None,
        request_timeout: float = 10.0,
    ):
        """
        Initialize the client.

        Args:
            base_url: Ledger service root (serves /health)
            api_prefix: Path prefix of the REST API
            protocol_base_url: Root serving /.well-known/did files (defaults to base_url)
            request_timeout: Total timeout per request in seconds
        """
        self.base_url = base_url.rstrip("/")
        prefix = api_prefix.strip("/")
        self.api_url = f"{self.base_url}/{prefix}" if prefix else self.base_url
        self.protocol_base_url = (protocol_base_url or self.base_url).rstrip("/")
        self.request_timeout = request_timeout

    @classmethod
    def from_config(cls, config: CoreSettings | None = None) -> LedgerClient:
        config = config or get_config()
        return cls(
            base_url=config.ledger_base_url,
            api_prefix=config.ledger_api_prefix,
            protocol_base_url=config.protocol_files_url,
            request_timeout=config.request_timeout,
        )

    # -------------------------------------------------------------------------
    # REST API
    # -------------------------------------------------------------------------

    async def check_health(self) -> bool:
        """Hit the health endpoint; True if it answers with a 2xx status.

        Connection errors propagate; the caller bounds the call with its own
        timeout.
        """
        url = f"{self.base_url}{HEALTH_PATH}"
        async with aiohttp.ClientSession() as session:
            async with session.get(url) as response:
                return 200 <= response.status < 300

    async def list_identities(self) -> list[dict[str, Any]]:
        """Fetch the raw bulk identity list."""
        data = await self._get_json(f"{self.api_url}{IDENTITIES_PATH}", "identities")
        if not isinstance(data, list):
            raise MalformedDataException("Identity list is not an array", source=IDENTITIES_PATH)
        return data

    async def get_identity(self, scid: str) -> dict[str, Any]:
        """Fetch one raw identity by SCID."""
        data = await self._get_json(f"{self.api_url}{IDENTITY_PATH}/{scid}", "identity", scid)
        if not isinstance(data, dict):
            raise MalformedDataException("Identity is not an object", source=IDENTITY_PATH)
        return data

    async def list_events(self, did: str | None = None) -> list[dict[str, Any]]:
        """Fetch raw events, for one DID or all of them."""
        query = urlencode({"did": did or ""})
        data = await self._get_json(f"{self.api_url}{EVENTS_PATH}?{query}", "events")
        if not isinstance(data, list):
            raise MalformedDataException("Event list is not an array", source=EVENTS_PATH)
        return data

    # -------------------------------------------------------------------------
    # PROTOCOL FILES
    # -------------------------------------------------------------------------

    async def fetch_did_log(self, did: str) -> str:
        """Fetch the raw did.jsonl text of an identity.

        Raises:
            NotFoundError: if the log has not been published
        """
        location = resolve_protocol_location(did, self.protocol_base_url)
        return await self._get_text(location.log_url, "did_log", did)

    async def fetch_witness_file(self, did: str) -> Any:
        """Fetch and decode the did-witness.json document of an identity.

        Raises:
            NotFoundError: if no witness file exists yet
            MalformedDataException: if the file is not JSON
        """
        location = resolve_protocol_location(did, self.protocol_base_url)
        text = await self._get_text(location.witness_url, "witness_file", did)
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedDataException(f"Witness file is not valid JSON: {e}", source=location.witness_url) from e

    # -------------------------------------------------------------------------
    # TRANSPORT
    # -------------------------------------------------------------------------

    async def _get_text(self, url: str, resource_type: str, resource_id: str | None = None) -> str:
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    if response.status == 404:
                        raise NotFoundError(resource_type, resource_id or url)
                    if response.status >= 400:
                        raise LedgerException(
                            f"Ledger returned HTTP {response.status} for {resource_type}",
                            status=response.status,
                            url=url,
                        )
                    try:
                        return await response.text()
                    except (UnicodeDecodeError, LookupError) as e:
                        raise MalformedDataException(
                            f"Undecodable {resource_type} response: {e}",
                            source=url,
                        ) from e
        except asyncio.TimeoutError as e:
            raise LedgerUnavailableException(f"Timeout fetching {resource_type}", url=url) from e
        except aiohttp.ClientError as e:
            raise LedgerUnavailableException(f"Connection error fetching {resource_type}: {e}", url=url) from e

    async def _get_json(self, url: str, resource_type: str, resource_id: str | None = None) -> Any:
        text = await self._get_text(url, resource_type, resource_id)
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedDataException(f"Invalid JSON in {resource_type} response: {e}", source=url) from e
