# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Per-identity verification: protocol files, hierarchy, trust score."""

from .hierarchy import HierarchyReport, HierarchyValidator
from .protocol import (
    ProtocolVerificationResult,
    ProtocolVerifier,
    hash_log_entry,
    parse_log,
    verify_hash_chain,
    verify_merkle_proof,
)
from .trust import TrustBreakdown, TrustScore, TrustScoreEngine

__all__ = [
    "HierarchyReport",
    "HierarchyValidator",
    "ProtocolVerificationResult",
    "ProtocolVerifier",
    "hash_log_entry",
    "parse_log",
    "verify_hash_chain",
    "verify_merkle_proof",
    "TrustBreakdown",
    "TrustScore",
    "TrustScoreEngine",
]
