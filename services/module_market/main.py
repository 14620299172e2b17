"""
Module Market Service - Module Registry API

Scans the modules directory for module descriptors and serves the registry.

Key Features:
- Filtered and searched module listing
- Aggregate statistics
- Manual and periodic rescans with atomic snapshot replacement
- Route information for the API gateway, bundle locations for the shell
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from core.config.settings import Settings, get_settings
from core.error_handling.handler import register_exception_handlers
from core.logging.correlation import RequestLoggingMiddleware
from core.logging.logger import configure_logger, get_logger
from services.module_market.cache import RegistryCache
from services.module_market.query import RegistryQueryService
from services.module_market.routers import modules
from services.module_market.scanner import ModuleScanner

configure_logger()
logger = get_logger("module-market")

SERVICE_NAME = "module-market"


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the module market app around a fresh registry cache"""
    settings = settings or get_settings()

    cache = RegistryCache(
        settings.MODULES_DIR,
        ModuleScanner.from_settings(settings),
        rescan_interval=settings.REGISTRY_RESCAN_INTERVAL,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initial scan on startup, stop rescans on shutdown"""
        logger.info("Module Market starting", modules_dir=str(cache.root))
        snapshot = await cache.init()
        logger.info("Module Market started", modules=len(snapshot))

        yield

        await cache.teardown()
        logger.info("Module Market shutting down")

    app = FastAPI(
        title="Module Market",
        description="Registry of modules discovered from module descriptors",
        version=settings.APP_VERSION,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.cache = cache
    app.state.query_service = RegistryQueryService(cache)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(modules.router, prefix="/api", tags=["Modules"])

    @app.get("/health")
    async def health_check(request: Request):
        """Liveness with the current module count"""
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "modulesCount": len(request.app.state.cache.current())
        }

    @app.get("/")
    async def root():
        """Root endpoint with API information"""
        return {
            "service": "Module Market",
            "version": settings.APP_VERSION,
            "endpoints": {
                "modules": "/api/modules",
                "module": "/api/modules/{name}",
                "stats": "/api/stats",
                "diagnostics": "/api/diagnostics",
                "refresh": "/api/refresh",
                "health": "/health"
            }
        }

    return app


app = create_app()


def run():
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "services.module_market.main:app",
        host=settings.HOST,
        port=settings.MODULE_MARKET_PORT,
        reload=False
    )


if __name__ == "__main__":
    run()
