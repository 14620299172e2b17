"""
Proxy Forwarder

Forwards an inbound request to the backend of the module whose prefix
matches the request path, and streams the backend response back.

    GET /api/x/items?page=2   (rule /api/x -> http://x:9000)
    ->  GET http://x:9000/items?page=2
        X-Gateway: <gateway name>
        X-Module-Name: module-x

Backend failures (timeout, refused connection, any transport error) become a
502 for that request only; other modules are unaffected.
"""
from typing import AsyncIterator, Callable

import httpx
import structlog
from fastapi import Request
from starlette.background import BackgroundTask
from starlette.responses import StreamingResponse

from core.exceptions import ProxyTargetUnreachable, RouteNotFound
from core.http.client import build_timeout, header_name, strip_hop_by_hop
from services.api_gateway.routes import RouteTable

logger = structlog.get_logger("proxy")

GATEWAY_HEADER = "X-Gateway"
MODULE_HEADER = "X-Module-Name"


class ProxyForwarder:
    """
    Args:
        table_provider: returns the active route table (read once per request)
        client: shared httpx client
        gateway_name: value of the X-Gateway header
        timeout: per-request budget in seconds
    """

    def __init__(
        self,
        table_provider: Callable[[], RouteTable],
        client: httpx.AsyncClient,
        gateway_name: str,
        timeout: float = 5.0,
    ):
        self.table_provider = table_provider
        self.client = client
        self.gateway_name = gateway_name
        self.timeout = build_timeout(timeout)

    async def forward(self, request: Request) -> StreamingResponse:
        """
        Raises:
            RouteNotFound: no prefix matches the path
            ProxyTargetUnreachable: the backend could not be reached in time
        """
        path = request.url.path
        match = self.table_provider().match(path)
        if match is None:
            raise RouteNotFound(path)

        module = match.rule.module_name
        raw_path = request.scope.get("raw_path")
        if raw_path:
            target_url = match.raw_target_url(raw_path.decode("latin-1"))
        else:
            target_url = match.target_url
        if request.url.query:
            target_url = f"{target_url}?{request.url.query}"

        injected = {GATEWAY_HEADER.lower(), MODULE_HEADER.lower()}
        headers = [
            (key, value)
            for key, value in strip_hop_by_hop(request.headers.raw)
            if header_name(key) not in injected
        ]
        headers.append((GATEWAY_HEADER.encode("latin-1"), self.gateway_name.encode("utf-8")))
        headers.append((MODULE_HEADER.encode("latin-1"), module.encode("utf-8")))

        body = await request.body()
        logger.info("Proxying request", module=module, method=request.method, path=path, target=target_url)

        try:
            upstream_request = self.client.build_request(
                request.method,
                target_url,
                headers=headers,
                content=body,
                timeout=self.timeout,
            )
            upstream = await self.client.send(upstream_request, stream=True)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            reason = str(e) or type(e).__name__
            logger.error("Proxy error", module=module, prefix=match.rule.prefix, target=target_url, error=reason)
            raise ProxyTargetUnreachable(module, reason) from e

        response = StreamingResponse(
            _body(upstream),
            status_code=upstream.status_code,
            background=BackgroundTask(upstream.aclose),
        )
        response.raw_headers = [
            (key.lower(), value) for key, value in strip_hop_by_hop(upstream.headers.raw)
        ]
        return response


async def _body(upstream: httpx.Response) -> AsyncIterator[bytes]:
    """Raw backend body; a transport may hand back a response it already read"""
    if upstream.is_stream_consumed:
        yield upstream.content
        return
    async for chunk in upstream.aiter_raw():
        yield chunk
