# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Caching, fallback and reconciliation of ledger and local data."""

from .cache import CacheEntry, QueryCache, RequestCoalescer
from .datastore import HybridConfig, HybridDataStore
from .merge import MergedView, fingerprint, merge_records
from .projector import (
    event_to_anchoring_event,
    placeholder_anchoring_event,
    project_attestations,
)
from .providers import (
    LocalProvider,
    ProviderChain,
    ProviderResult,
    Query,
    QueryKind,
    RemoteProvider,
    StaleCacheProvider,
)

__all__ = [
    "CacheEntry",
    "QueryCache",
    "RequestCoalescer",
    "HybridConfig",
    "HybridDataStore",
    "MergedView",
    "fingerprint",
    "merge_records",
    "event_to_anchoring_event",
    "placeholder_anchoring_event",
    "project_attestations",
    "LocalProvider",
    "ProviderChain",
    "ProviderResult",
    "Query",
    "QueryKind",
    "RemoteProvider",
    "StaleCacheProvider",
]
