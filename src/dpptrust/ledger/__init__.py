# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Remote ledger access: HTTP client, reachability monitor, payload normalization."""

from .client import LedgerClient
from .health import HealthMonitor, HealthMonitorConfig
from .normalize import (
    normalize_bundle,
    normalize_event,
    normalize_events,
    normalize_identities,
    normalize_identity,
)

__all__ = [
    "LedgerClient",
    "HealthMonitor",
    "HealthMonitorConfig",
    "normalize_bundle",
    "normalize_event",
    "normalize_events",
    "normalize_identities",
    "normalize_identity",
]
