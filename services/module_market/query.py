"""
Registry Query Service

Read-only filtered views over the active snapshot, aggregate statistics and
the manual refresh trigger. Every call reads current() once and works on
that snapshot, so results are consistent even while a refresh publishes.
"""
from collections import Counter
from typing import Any, Dict, List, Optional

import structlog

from core.exceptions import ModuleNotFound
from services.module_market.cache import RegistryCache
from services.module_market.models import Diagnostic, ModuleRecord, RegistryStats

logger = structlog.get_logger("registry-query")

UNKNOWN_TYPE = "unknown"


class RegistryQueryService:
    """HTTP-facing API over the registry cache"""

    def __init__(self, cache: RegistryCache):
        self.cache = cache

    def list_modules(
        self,
        type: Optional[str] = None,
        enabled: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> List[ModuleRecord]:
        """
        Filter modules of the current snapshot.

        Args:
            type: exact match on the module type
            enabled: exact match on the enabled flag
            search: case-insensitive substring of name, displayName or description

        Returns:
            Matching records in snapshot order
        """
        modules = list(self.cache.current().modules)

        if type:
            modules = [m for m in modules if m.type == type]

        if enabled is not None:
            modules = [m for m in modules if m.enabled is enabled]

        if search:
            modules = [m for m in modules if m.matches(search)]

        return modules

    def get_module(self, name: str) -> ModuleRecord:
        module = self.cache.current().get(name)
        if module is None:
            raise ModuleNotFound(name)
        return module

    def stats(self) -> RegistryStats:
        modules = self.cache.current().modules
        enabled = sum(1 for m in modules if m.enabled)
        return RegistryStats(
            total=len(modules),
            enabled=enabled,
            disabled=len(modules) - enabled,
            with_backend=sum(1 for m in modules if m.has_backend),
            with_frontend=sum(1 for m in modules if m.has_frontend),
            by_type=dict(Counter(m.type or UNKNOWN_TYPE for m in modules)),
        )

    def diagnostics(self) -> List[Diagnostic]:
        return list(self.cache.current().diagnostics)

    async def trigger_refresh(self) -> Dict[str, Any]:
        """
        Rescan the descriptor store.

        Raises:
            DiscoveryError: scan failed, previous snapshot still active
        """
        logger.info("Manual registry refresh requested")
        snapshot = await self.cache.refresh()
        return {
            "success": True,
            "message": "Module list refreshed",
            "count": len(snapshot),
            "diagnostics": len(snapshot.diagnostics),
            "generation": snapshot.generation,
        }
