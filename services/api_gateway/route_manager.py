"""
Route Table Manager

Owns the gateway's active route table and its lifecycle:

    UNBUILT -> DEFAULT (discovery down at startup)
            -> LIVE    (built from a discovery snapshot)
    DEFAULT -> LIVE    (first successful refresh)
    LIVE    -> LIVE    (successful refresh swaps the table,
                        failed refresh keeps it untouched)

There is no way back to DEFAULT once a live table has been published.
The table reference is replaced in one assignment, so request handlers
reading active() never see a half-built table and never wait.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import structlog

from core.exceptions import DiscoveryUnavailable, DuplicatePrefix, RouteTableBuildError
from core.tasks import PeriodicTask
from services.api_gateway.discovery import DiscoveryClient
from services.api_gateway.routes import (
    BuildResult,
    RouteTable,
    build_route_table,
    default_route_table,
)

logger = structlog.get_logger("route-manager")


class TableState(str, Enum):
    UNBUILT = "unbuilt"
    DEFAULT = "default"
    LIVE = "live"


class RouteTableManager:
    """Builds, publishes and periodically refreshes the active route table"""

    def __init__(
        self,
        discovery: DiscoveryClient,
        default_routes: Iterable[Mapping[str, str]],
        refresh_interval: float = 60.0,
    ):
        self.discovery = discovery
        self.default_routes = list(default_routes)
        self.state = TableState.UNBUILT
        self.last_refresh_at: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.refresh_count = 0
        self.failed_refreshes = 0
        self.diagnostics: Tuple[DuplicatePrefix, ...] = ()
        self._table = RouteTable(source="none")
        self._refresher = PeriodicTask("route-refresh", refresh_interval, self.refresh)

    def active(self) -> RouteTable:
        return self._table

    @property
    def degraded(self) -> bool:
        return self.state is not TableState.LIVE

    async def initialize(self) -> RouteTable:
        """Build the startup table, falling back to the default routes"""
        try:
            result = await self._fetch_and_build()
        except (DiscoveryUnavailable, RouteTableBuildError) as e:
            self.last_error = e.message
            self._publish(default_route_table(self.default_routes), TableState.DEFAULT)
            logger.warning(
                "Discovery unavailable, using default routes",
                error=e.message,
                routes=len(self._table),
            )
        else:
            self._publish(result.table, TableState.LIVE, result.diagnostics)
            logger.info("Dynamic routes configured", routes=len(self._table))

        for rule in self._table.rules:
            logger.info("Registered route", prefix=rule.prefix, target=rule.target_base_url, module=rule.module_name)
        return self._table

    async def refresh(self) -> bool:
        """
        Try to replace the active table with a freshly discovered one.

        Returns True when a new table was published. A failure is logged and
        leaves the active table untouched.
        """
        logger.info("Refreshing route configuration")
        try:
            result = await self._fetch_and_build()
        except (DiscoveryUnavailable, RouteTableBuildError) as e:
            self.failed_refreshes += 1
            self.last_error = e.message
            logger.warning(
                "Route refresh failed, keeping current table",
                error=e.message,
                state=self.state.value,
                routes=len(self._table),
            )
            return False

        changed = result.table != self._table
        self._publish(result.table, TableState.LIVE, result.diagnostics)
        self.refresh_count += 1
        self.last_error = None
        logger.info(
            "Route table refreshed",
            routes=len(result.table),
            changed=changed,
            duplicate_prefixes=len(result.diagnostics),
        )
        return True

    def start(self):
        self._refresher.start()

    async def stop(self):
        await self._refresher.stop()

    def status(self) -> Dict[str, Any]:
        table = self._table
        return {
            "state": self.state.value,
            "source": table.source,
            "builtAt": table.built_at.isoformat(),
            "lastRefreshAt": self.last_refresh_at.isoformat() if self.last_refresh_at else None,
            "lastError": self.last_error,
            "refreshCount": self.refresh_count,
            "failedRefreshes": self.failed_refreshes,
            "routes": table.to_dict(),
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }

    async def _fetch_and_build(self) -> BuildResult:
        modules = await self.discovery.fetch_modules()
        return build_route_table(modules)

    def _publish(
        self,
        table: RouteTable,
        state: TableState,
        diagnostics: Tuple[DuplicatePrefix, ...] = (),
    ):
        self._table = table
        self.state = state
        self.diagnostics = diagnostics
        self.last_refresh_at = datetime.now(timezone.utc)
