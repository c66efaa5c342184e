# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Custom exception hierarchy for dpptrust.

Provides specific exception types for the failure categories of the
reconciliation layer. Ledger and storage code raises these; the query
boundaries (data store, health monitor, verifiers) catch them and turn them
into fallback values, so callers in the presentation layer never see them
except for invalid local writes.
"""

from __future__ import annotations

from typing import Any


class DPPException(Exception):  # noqa: N818
    """Base exception for all dpptrust errors.

    All dpptrust-specific exceptions should inherit from this class.
    """

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationException(DPPException):
    """Exception for validation errors.

    Raised when:
    - A local write is missing required fields
    - A DID is syntactically invalid
    - Field values are out of range
    """

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class ConfigException(DPPException):
    """Exception for configuration errors.

    Raised when:
    - Configuration values are invalid
    - A snapshot path cannot be used
    """

    def __init__(self, message: str, missing_vars: list[str] | None = None):
        details = {}
        if missing_vars:
            details["missing_vars"] = missing_vars
        super().__init__(message, details)
        self.missing_vars = missing_vars or []


class NotFoundError(DPPException):
    """Exception for resource not found errors.

    Raised when:
    - A protocol file (did.jsonl, did-witness.json) has not been published
    - A requested identity doesn't exist on the ledger
    """

    def __init__(self, resource_type: str, resource_id: str):
        message = f"{resource_type} not found: {resource_id}"
        details = {
            "resource_type": resource_type,
            "resource_id": resource_id,
        }
        super().__init__(message, details)
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(DPPException):
    """Exception for conflict errors.

    Raised when:
    - Attempting to register a DID that already exists (DIDs are never reused)
    """

    def __init__(self, message: str, existing_id: str | None = None):
        details = {}
        if existing_id:
            details["existing_id"] = existing_id
        super().__init__(message, details)
        self.existing_id = existing_id


class LedgerException(DPPException):
    """Exception for failed calls to the remote ledger service.

    Raised when:
    - The ledger answers with an unexpected HTTP status
    """

    def __init__(self, message: str, status: int | None = None, url: str | None = None):
        details: dict[str, Any] = {}
        if status is not None:
            details["status"] = status
        if url:
            details["url"] = url
        super().__init__(message, details)
        self.status = status
        self.url = url


class LedgerUnavailableException(LedgerException):
    """Exception for transient ledger failures.

    Raised when:
    - The request times out
    - The connection is refused or dropped
    - The health monitor reports the ledger as unreachable
    """

    pass


class MalformedDataException(DPPException):
    """Exception for unexpected payload shapes.

    Raised when:
    - A response body is not valid JSON
    - A response has the wrong top-level type
    """

    def __init__(self, message: str, source: str | None = None):
        details = {}
        if source:
            details["source"] = source
        super().__init__(message, details)
        self.source = source
