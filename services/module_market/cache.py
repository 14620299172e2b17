"""
Registry Cache

Process-wide holder of the last successfully scanned snapshot.

Readers call current() and get whatever snapshot reference is published at
that moment; they never lock. refresh() scans in a worker thread, builds the
complete new Snapshot and only then publishes it with a single assignment,
so a reader sees either the old or the new snapshot and never a mix.
"""
import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

import structlog

from core.exceptions import DiscoveryError, RegistryRootMissing
from core.tasks import PeriodicTask
from services.module_market.models import Snapshot
from services.module_market.scanner import ModuleScanner

logger = structlog.get_logger("registry-cache")


class RegistryCache:
    """
    Snapshot cache with an explicit init / refresh / teardown lifecycle.

    Usage:
        cache = RegistryCache("modules", ModuleScanner())
        await cache.init()
        snapshot = cache.current()
        await cache.refresh()
        await cache.teardown()
    """

    def __init__(
        self,
        root: Union[str, Path],
        scanner: Optional[ModuleScanner] = None,
        rescan_interval: float = 0.0,
    ):
        self.root = Path(root)
        self.scanner = scanner or ModuleScanner()
        self._snapshot = Snapshot()
        self._generation = 0
        self._refresh_lock = asyncio.Lock()
        self._rescan = PeriodicTask("registry-rescan", rescan_interval, self._scheduled_refresh)

    def current(self) -> Snapshot:
        """Active snapshot (non-blocking)"""
        return self._snapshot

    async def init(self) -> Snapshot:
        """
        Initial population at process start.

        A missing root directory is a configuration error and is raised.
        Any other scan failure leaves the cache empty so the service still
        starts.
        """
        if not self.root.is_dir():
            raise RegistryRootMissing(str(self.root.resolve()))

        try:
            await self.refresh()
        except DiscoveryError as e:
            logger.error("Initial scan failed, starting with empty registry", error=e.message)

        self._rescan.start()
        return self._snapshot

    async def refresh(self) -> Snapshot:
        """
        Rescan the descriptor store and publish the result.

        Raises:
            DiscoveryError: the scan failed; the active snapshot is unchanged
        """
        async with self._refresh_lock:
            try:
                result = await asyncio.to_thread(self.scanner.scan, self.root)
            except (OSError, RegistryRootMissing) as e:
                logger.error("Registry refresh failed", root=str(self.root), error=str(e))
                raise DiscoveryError(f"Failed to scan {self.root}: {e}") from e

            snapshot = Snapshot(
                modules=result.modules,
                diagnostics=result.diagnostics,
                generation=self._generation + 1,
                scanned_at=datetime.now(timezone.utc),
            )
            self._generation = snapshot.generation
            self._snapshot = snapshot

        logger.info(
            "Registry refreshed",
            generation=snapshot.generation,
            modules=len(snapshot),
            diagnostics=len(snapshot.diagnostics),
        )
        return snapshot

    async def teardown(self):
        """Stop background rescans; the last snapshot stays readable"""
        await self._rescan.stop()

    async def _scheduled_refresh(self):
        try:
            await self.refresh()
        except DiscoveryError:
            # Already logged; keep serving the previous snapshot
            pass

