# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Local mirror store and its snapshot persistence."""

from .local import COLLECTIONS, LocalStore
from .persistence import LoopScheduler, Scheduler, SnapshotFile, WriteBuffer

__all__ = [
    "COLLECTIONS",
    "LocalStore",
    "LoopScheduler",
    "Scheduler",
    "SnapshotFile",
    "WriteBuffer",
]
