# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Debounced snapshot persistence for the local mirror store.

WriteBuffer collapses bursts of mutations into one write, issued a fixed
delay after the last mutation. Scheduling goes through a small Scheduler
protocol so tests can drive time by hand instead of sleeping.

SnapshotFile writes one JSON document atomically (temp file + rename).
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from ..core.exceptions import ConfigException

logger = logging.getLogger(__name__)


# =============================================================================
# SCHEDULING
# =============================================================================


class ScheduledCall(Protocol):
    """Handle of a scheduled callback."""

    def cancel(self) -> Any:
        ...


@runtime_checkable
class Scheduler(Protocol):
    """Protocol for delayed callback execution."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        """Run callback after delay seconds; return a cancellable handle."""
        ...


class LoopScheduler:
    """Scheduler backed by the running asyncio event loop.

    Raises RuntimeError from call_later when no loop is running.
    """

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        return asyncio.get_running_loop().call_later(delay, callback)


# =============================================================================
# WRITE BUFFER
# =============================================================================


class WriteBuffer:
    """Debounces flushes of dirty state.

    Example:
        buffer = WriteBuffer(lambda: snapshot.save(store.to_snapshot()), delay=1.0)
        buffer.mark_dirty()  # flushes ~1s later unless marked again
    """

    def __init__(
        self,
        flush_fn: Callable[[], None],
        delay: float = 1.0,
        scheduler: Scheduler | None = None,
    ):
        """
        Initialize the buffer.

        Args:
            flush_fn: Writes the current state out
            delay: Seconds after the last mark_dirty() before flushing
            scheduler: Timer source (defaults to the running event loop)
        """
        self._flush_fn = flush_fn
        self.delay = delay
        self._scheduler: Scheduler = scheduler or LoopScheduler()
        self._pending: ScheduledCall | None = None
        self._dirty = False
        self.flush_count = 0

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def pending(self) -> bool:
        """Whether a flush is scheduled."""
        return self._pending is not None

    def mark_dirty(self) -> None:
        """Record a mutation and (re)start the debounce timer.

        With a zero delay, or outside an event loop, the flush happens
        immediately.
        """
        self._dirty = True
        self._cancel_pending()

        if self.delay <= 0:
            self._flush_safely()
            return

        try:
            self._pending = self._scheduler.call_later(self.delay, self._on_timer)
        except RuntimeError:
            logger.debug("No running event loop, flushing snapshot synchronously")
            self._flush_safely()

    def flush(self) -> bool:
        """Write out now if dirty.

        Returns:
            True if a write happened

        Raises:
            OSError: if the flush function fails; the buffer stays dirty
        """
        self._cancel_pending()
        if not self._dirty:
            return False

        self._dirty = False
        try:
            self._flush_fn()
        except Exception:
            self._dirty = True
            raise
        self.flush_count += 1
        return True

    def _on_timer(self) -> None:
        self._pending = None
        self._flush_safely()

    def _flush_safely(self) -> None:
        try:
            self.flush()
        except OSError as e:
            logger.error(f"Failed to persist local snapshot: {e}")

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None


# =============================================================================
# SNAPSHOT FILE
# =============================================================================


class SnapshotFile:
    """A single JSON snapshot on disk."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def prepare(self) -> None:
        """Make sure snapshots can be written at the path.

        Creates the parent directory if needed.

        Raises:
            ConfigException: if the path is a directory or its parent cannot be created
        """
        if self.path.is_dir():
            raise ConfigException(f"Snapshot path {self.path} is a directory")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigException(f"Cannot create snapshot directory {self.path.parent}: {e}") from e

    def save(self, data: dict[str, Any]) -> None:
        """Write the snapshot atomically."""
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(json.dumps(data, indent=2, default=str))
            temp_path.replace(self.path)
        except Exception:
            # Clean up temp file on failure
            if temp_path.exists():
                temp_path.unlink()
            raise

    def load(self) -> dict[str, Any]:
        """Read the snapshot; an absent or unreadable file yields {}."""
        if not self.path.exists():
            return {}

        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable snapshot {self.path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Ignoring snapshot {self.path}: top level is {type(data).__name__}")
            return {}
        return data
