# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Structured logging configuration for dpptrust.

Provides:
- JSON formatter for production (machine-parseable)
- Standard formatter for development (human-readable)
- Verification scopes: a correlation ID plus the DID under verification,
  attached to every log line emitted while one identity is checked
- log_fields() for structured fields (scores, chain results, counts)

    with verification_scope(did):
        logger.info("Trust score computed", extra=log_fields(score=87))
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Context variables (async-safe; each asyncio task sees its own copy)
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_subject_did: ContextVar[str | None] = ContextVar("subject_did", default=None)

# LogRecord attribute carrying structured fields
EXTRA_ATTR = "extra_data"


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id.set(correlation_id)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_subject_did() -> str | None:
    """The DID currently under verification, if any."""
    return _subject_did.get()


@contextmanager
def correlation_context(
    correlation_id: str | None = None,
) -> Generator[str, None, None]:
    """Scope a correlation ID; generates one if none is given."""
    cid = correlation_id or generate_correlation_id()
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)


@contextmanager
def verification_scope(
    did: str,
    correlation_id: str | None = None,
) -> Generator[str, None, None]:
    """Scope the verification of one identity.

    Nested scopes for the same DID reuse the outer correlation ID, so the
    protocol check run inside a trust score shares the score's ID.

    Yields:
        The correlation ID of the scope.
    """
    if correlation_id is None and _subject_did.get() == did:
        correlation_id = _correlation_id.get()

    did_token = _subject_did.set(did)
    try:
        with correlation_context(correlation_id) as cid:
            yield cid
    finally:
        _subject_did.reset(did_token)


def log_fields(**fields: Any) -> dict[str, Any]:
    """Build the ``extra`` argument for structured fields.

    None values are dropped.
    """
    return {EXTRA_ATTR: {key: value for key, value in fields.items() if value is not None}}


# =============================================================================
# FORMATTERS
# =============================================================================


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production environments.

    Adds the correlation ID and subject DID of the active verification
    scope, and structured fields under "extra".
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        subject_did = get_subject_did()
        if subject_did:
            log_data["did"] = subject_did

        # Add source location for warnings and errors
        if record.levelno >= logging.WARNING:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = getattr(record, EXTRA_ATTR, None)
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str)


class StandardFormatter(logging.Formatter):
    """Human-readable formatter with colors for terminal output.

    Prefixes messages with the short correlation ID and the subject DID,
    and appends structured fields as key=value pairs.
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"
    SCOPE_COLOR = "\033[90m"  # Gray

    def __init__(self, use_colors: bool = True):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def _scope_prefix(self) -> str:
        parts = []
        correlation_id = get_correlation_id()
        if correlation_id:
            parts.append(correlation_id[:8])
        subject_did = get_subject_did()
        if subject_did:
            parts.append(subject_did)
        if not parts:
            return ""
        prefix = f"[{' '.join(parts)}]"
        if self.use_colors:
            prefix = f"{self.SCOPE_COLOR}{prefix}{self.RESET}"
        return prefix + " "

    def format(self, record: logging.LogRecord) -> str:
        # Copy so other handlers see the original record
        record = logging.makeLogRecord(record.__dict__)

        message = self._scope_prefix() + record.getMessage()
        extra = getattr(record, EXTRA_ATTR, None)
        if extra:
            message += " " + " ".join(f"{key}={value}" for key, value in extra.items())
        record.msg, record.args = message, None

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            record.levelname = f"{color}{record.levelname}{self.RESET}"

        return super().format(record)


# =============================================================================
# CONFIGURATION
# =============================================================================


def configure_logging(
    level: str | int | None = None,
    json_format: bool | None = None,
    log_file: str | None = None,
) -> None:
    """Configure logging for applications embedding dpptrust.

    Args:
        level: Log level name or number; DPP_LOG_LEVEL if None
        json_format: Use JSON output; DPP_LOG_FORMAT, then TTY detection, if None
        log_file: Extra file to write JSON lines to; DPP_LOG_FILE if None
    """
    from .config import get_config

    config = get_config()

    if level is None:
        level = config.log_level
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if json_format is None:
        format_env = config.log_format.lower()
        if format_env in ("json", "text"):
            json_format = format_env == "json"
        else:
            json_format = not sys.stderr.isatty()

    log_file = config.log_file if log_file is None else log_file

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(JSONFormatter() if json_format else StandardFormatter())
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    # Ledger polling is chatty at DEBUG
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
