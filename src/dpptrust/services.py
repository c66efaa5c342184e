# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Process-wide wiring of the reconciliation layer.

Builds every component once from CoreSettings and hands them out by
reference:

    services = DPPServices.from_config()
    identities = await services.datastore.fetch_identities()
    score = await services.trust.score(identities[0].did)
    await services.aclose()
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from .core.config import CoreSettings, get_config
from .ledger.client import LedgerClient
from .ledger.health import HealthMonitor, HealthMonitorConfig
from .store.local import LocalStore
from .store.persistence import Scheduler, SnapshotFile, WriteBuffer
from .sync.cache import QueryCache
from .sync.datastore import HybridConfig, HybridDataStore
from .verify.hierarchy import HierarchyValidator
from .verify.protocol import ProtocolVerifier
from .verify.trust import TrustScoreEngine

logger = logging.getLogger(__name__)


@dataclass
class DPPServices:
    """All components of the layer, wired together."""

    settings: CoreSettings
    client: LedgerClient
    monitor: HealthMonitor
    store: LocalStore
    datastore: HybridDataStore
    verifier: ProtocolVerifier
    hierarchy: HierarchyValidator
    trust: TrustScoreEngine
    snapshot: SnapshotFile | None = None
    write_buffer: WriteBuffer | None = None

    @classmethod
    def from_config(
        cls,
        settings: CoreSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
        scheduler: Scheduler | None = None,
    ) -> DPPServices:
        """Build the services.

        When a snapshot path is configured the local store is restored from
        it and every local write schedules a debounced save.

        Args:
            settings: Configuration (the global config by default)
            clock: Monotonic clock shared by the health monitor and cache
            scheduler: Timer source for snapshot writes

        Raises:
            ConfigException: if the configured snapshot path cannot be used
        """
        settings = settings or get_config()

        client = LedgerClient.from_config(settings)
        monitor = HealthMonitor(client, HealthMonitorConfig.from_settings(settings), clock=clock)
        store = LocalStore()

        snapshot = None
        write_buffer = None
        if settings.snapshot_path:
            snapshot = SnapshotFile(settings.snapshot_path)
            snapshot.prepare()
            store.load_snapshot(snapshot.load())
            write_buffer = WriteBuffer(
                lambda: snapshot.save(store.to_snapshot()),
                delay=settings.snapshot_debounce,
                scheduler=scheduler,
            )

        datastore = HybridDataStore(
            client,
            store,
            monitor,
            config=HybridConfig.from_settings(settings),
            cache=QueryCache(clock=clock),
            write_buffer=write_buffer,
        )
        verifier = ProtocolVerifier(client)
        hierarchy = HierarchyValidator(datastore)

        logger.info(
            f"dpptrust services ready (ledger={settings.ledger_base_url}, "
            f"backend={'on' if settings.use_backend_api else 'off'}, "
            f"snapshot={settings.snapshot_path or 'none'})"
        )
        return cls(
            settings=settings,
            client=client,
            monitor=monitor,
            store=store,
            datastore=datastore,
            verifier=verifier,
            hierarchy=hierarchy,
            trust=TrustScoreEngine(datastore, verifier, hierarchy),
            snapshot=snapshot,
            write_buffer=write_buffer,
        )

    async def aclose(self) -> None:
        """Flush pending local writes to the snapshot."""
        if self.write_buffer is None:
            return
        try:
            self.write_buffer.flush()
        except OSError as e:
            logger.error(f"Failed to write final snapshot: {e}")


# ==========================================================================
# GLOBAL INSTANCE (lazy loaded)
# ==========================================================================

_services: DPPServices | None = None


def get_services() -> DPPServices:
    """Get the process-wide services, building them on first use."""
    global _services
    if _services is None:
        _services = DPPServices.from_config()
    return _services


def reset_services() -> None:
    """Drop the process-wide services. Useful for testing."""
    global _services
    _services = None
