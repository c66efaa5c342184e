# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""dpptrust - reconciliation and trust verification for Digital Product Passports.

Sits between a remote identity ledger that may be unavailable, a local
mirror store used for offline demos and UI-authored overrides, and the raw
append-only protocol files of each identity.

Architecture:
  Ledger (HTTP, health-gated)  +  Local mirror (snapshot-persisted)
    -> HybridDataStore (TTL cache, request coalescing, provider fallback)
    -> Merge (fingerprint dedup, local first) + projection of events
    -> ProtocolVerifier / HierarchyValidator
    -> TrustScoreEngine (five capped sub-scores, floor for valid DIDs)

Entry point: ``dpptrust.services.DPPServices.from_config()``
"""

__version__ = "0.1.0"

from . import (
    core as core,
)
