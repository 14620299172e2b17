"""
Modules Router

Registry endpoints consumed by the API gateway and the micro-frontend shell.
"""

from fastapi import APIRouter, Depends, Query, Request
from typing import Optional

from services.module_market.query import RegistryQueryService

router = APIRouter()


def get_query_service(request: Request) -> RegistryQueryService:
    return request.app.state.query_service


@router.get("/modules")
async def list_modules(
    type: Optional[str] = Query(None, description="Exact module type, e.g. core, business, tool"),
    enabled: Optional[bool] = Query(None, description="Filter on the enabled flag"),
    search: Optional[str] = Query(None, description="Case-insensitive text in name, displayName or description"),
    service: RegistryQueryService = Depends(get_query_service)
):
    """
    List modules of the current registry snapshot.

    Each record includes the derived hasBackend, hasFrontend and path fields.
    """
    modules = service.list_modules(type=type, enabled=enabled, search=search)
    return [m.to_api() for m in modules]


@router.get("/modules/{name}")
async def get_module(
    name: str,
    service: RegistryQueryService = Depends(get_query_service)
):
    """Single module record, 404 when unknown"""
    return service.get_module(name).to_api()


@router.get("/stats")
async def get_stats(service: RegistryQueryService = Depends(get_query_service)):
    """Aggregate counts: total, enabled/disabled, with backend/frontend, by type"""
    return service.stats().model_dump(by_alias=True)


@router.get("/diagnostics")
async def get_diagnostics(service: RegistryQueryService = Depends(get_query_service)):
    """Problems found by the last scan (unparsable descriptors, duplicate names)"""
    diagnostics = service.diagnostics()
    return {
        "count": len(diagnostics),
        "diagnostics": [d.to_dict() for d in diagnostics]
    }


@router.post("/refresh")
async def refresh_modules(service: RegistryQueryService = Depends(get_query_service)):
    """Rescan the descriptor store; 503 with the discovery error if the scan fails"""
    return await service.trigger_refresh()
