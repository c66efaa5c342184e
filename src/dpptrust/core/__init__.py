# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""dpptrust core - configuration, logging and the exception hierarchy."""

from .config import CoreSettings, clear_config_cache, get_config
from .exceptions import (
    ConfigException,
    ConflictError,
    DPPException,
    LedgerException,
    LedgerUnavailableException,
    MalformedDataException,
    NotFoundError,
    ValidationException,
)
from .logging import (
    configure_logging,
    correlation_context,
    get_correlation_id,
    log_fields,
    verification_scope,
)

__all__ = [
    "CoreSettings",
    "get_config",
    "clear_config_cache",
    "DPPException",
    "ValidationException",
    "ConfigException",
    "NotFoundError",
    "ConflictError",
    "LedgerException",
    "LedgerUnavailableException",
    "MalformedDataException",
    "configure_logging",
    "correlation_context",
    "get_correlation_id",
    "log_fields",
    "verification_scope",
]
