"""
API Gateway Main Service

Single entry point for the frontend. Builds its routing rules from the
module market and proxies requests to the backend of each module.

Key Features:
- Dynamic route table from module descriptors
- Degraded mode with default routes when discovery is down
- Periodic background refresh that never drops working routes
- Per-request timeout and failure isolation between backends
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from core.config.settings import Settings, get_settings
from core.error_handling.handler import register_exception_handlers
from core.http.client import create_http_client
from core.logging.correlation import RequestLoggingMiddleware
from core.logging.logger import configure_logger, get_logger
from services.api_gateway.discovery import DiscoveryClient
from services.api_gateway.proxy import ProxyForwarder
from services.api_gateway.route_manager import RouteTableManager

configure_logger()
logger = get_logger("api-gateway")

SERVICE_NAME = "api-gateway"
PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the gateway app.

    Args:
        settings: overrides the cached settings
        transport: httpx transport for discovery and proxy calls (tests use
            httpx.MockTransport)
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build the initial route table and start the refresh loop"""
        logger.info(
            "API Gateway starting",
            module_market_url=settings.MODULE_MARKET_URL,
            port=settings.GATEWAY_PORT,
        )
        client = create_http_client(settings.PROXY_TIMEOUT, transport=transport)
        discovery = DiscoveryClient(settings.MODULE_MARKET_URL, client, timeout=settings.DISCOVERY_TIMEOUT)
        manager = RouteTableManager(
            discovery,
            settings.DEFAULT_ROUTES,
            refresh_interval=settings.ROUTE_REFRESH_INTERVAL,
        )
        await manager.initialize()
        manager.start()

        app.state.route_manager = manager
        app.state.forwarder = ProxyForwarder(
            manager.active,
            client,
            gateway_name=settings.GATEWAY_NAME,
            timeout=settings.PROXY_TIMEOUT,
        )
        logger.info("API Gateway started", state=manager.state.value, routes=len(manager.active()))

        yield

        logger.info("API Gateway shutting down")
        await manager.stop()
        await client.aclose()

    app = FastAPI(
        title="Modgate API Gateway",
        description="Dynamic reverse proxy in front of module backends",
        version=settings.APP_VERSION,
        lifespan=lifespan,
        docs_url="/api/gateway/docs",
        redoc_url=None,
        openapi_url="/api/gateway/openapi.json"
    )
    app.state.settings = settings

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint; degraded while serving default routes"""
        manager: RouteTableManager = request.app.state.route_manager
        return {
            "status": "degraded" if manager.degraded else "healthy",
            "service": SERVICE_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "routes": len(manager.active())
        }

    @app.get("/api/gateway/status")
    async def gateway_status(request: Request):
        """Discovery source and route table freshness"""
        manager: RouteTableManager = request.app.state.route_manager
        return {
            "status": "running",
            "version": settings.APP_VERSION,
            "moduleMarketUrl": settings.MODULE_MARKET_URL,
            "refreshIntervalSeconds": settings.ROUTE_REFRESH_INTERVAL,
            "table": manager.status(),
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    @app.api_route("/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
    async def proxy(request: Request):
        """Everything else is matched against the route table and forwarded"""
        return await request.app.state.forwarder.forward(request)

    return app


app = create_app()


def run():
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "services.api_gateway.main:app",
        host=settings.HOST,
        port=settings.GATEWAY_PORT,
        reload=False
    )


if __name__ == "__main__":
    run()
