# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Reachability tracking for the remote ledger service.

The monitor checks the ledger at most once per re-check interval and answers
from the last known result in between. Checks are bounded by a short timeout
and never raise: a timeout, connection error or unexpected failure all mean
"unavailable".

Not thread-safe; intended for use from a single event loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ..core.config import CoreSettings, get_config
from .client import LedgerClient

logger = logging.getLogger(__name__)


@dataclass
class HealthMonitorConfig:
    """Configuration for the health monitor."""

    check_interval: float = 30.0  # Seconds between checks
    check_timeout: float = 1.5  # Hard bound for one check

    @classmethod
    def from_settings(cls, settings: CoreSettings | None = None) -> HealthMonitorConfig:
        settings = settings or get_config()
        return cls(
            check_interval=settings.health_check_interval,
            check_timeout=settings.health_check_timeout,
        )


class HealthMonitor:
    """Cached reachability flag for the ledger."""

    def __init__(
        self,
        client: LedgerClient,
        config: HealthMonitorConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.config = config or HealthMonitorConfig()
        self._clock = clock

        self._available = False
        self._last_check: float | None = None
        self._check_task: asyncio.Task[bool] | None = None

        self._checks = 0
        self._failures = 0

    @property
    def last_check(self) -> float | None:
        """Clock reading of the last completed check."""
        return self._last_check

    @property
    def available(self) -> bool:
        """Last known result, without checking."""
        return self._available

    def _is_fresh(self) -> bool:
        if self._last_check is None:
            return False
        return self._clock() - self._last_check < self.config.check_interval

    async def is_available(self) -> bool:
        """Return whether the ledger is reachable.

        Checks again when the last result is older than the check interval.
        Concurrent callers during a check share it.
        """
        if self._is_fresh():
            return self._available

        if self._check_task is None:
            self._check_task = asyncio.ensure_future(self._run_check())
            self._check_task.add_done_callback(self._clear_check)

        return await asyncio.shield(self._check_task)

    def _clear_check(self, task: asyncio.Task[bool]) -> None:
        if self._check_task is task:
            self._check_task = None

    async def _run_check(self) -> bool:
        self._checks += 1
        try:
            result = await asyncio.wait_for(self.client.check_health(), timeout=self.config.check_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Ledger health check timed out after {self.config.check_timeout}s")
            result = False
        except Exception as e:
            logger.warning(f"Ledger health check failed: {e}")
            result = False

        if not result:
            self._failures += 1
        if result != self._available:
            logger.info(f"Ledger {'available' if result else 'unavailable'}")

        self._available = result
        self._last_check = self._clock()
        return result

    def invalidate(self) -> None:
        """Force a check on the next call."""
        self._last_check = None

    def get_stats(self) -> dict[str, Any]:
        """Get monitor statistics."""
        return {
            "available": self._available,
            "last_check": self._last_check,
            "checks": self._checks,
            "failures": self._failures,
            "check_in_flight": self._check_task is not None,
            "check_interval": self.config.check_interval,
            "check_timeout": self.config.check_timeout,
        }
