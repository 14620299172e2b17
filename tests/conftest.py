"""
Shared fixtures: descriptor store factory, settings and fake backends.
"""
import json
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest

from core.config.settings import Settings


def descriptor(name: str, **fields) -> Dict:
    """Minimal valid descriptor with optional extra fields"""
    data = {"name": name, "displayName": fields.pop("displayName", name.replace("-", " ").title())}
    data.update(fields)
    return data


@pytest.fixture
def modules_dir(tmp_path) -> Path:
    root = tmp_path / "modules"
    root.mkdir()
    return root


@pytest.fixture
def make_module(modules_dir) -> Callable:
    """
    Create a module directory.

    `content` may be a dict (written as JSON), a raw string (written as is)
    or None (no descriptor file).
    """
    def _make(
        dirname: str,
        content: Union[Dict, str, None] = None,
        backend: bool = False,
        frontend: bool = False,
    ) -> Path:
        module_dir = modules_dir / dirname
        module_dir.mkdir(exist_ok=True)
        if content is not None:
            text = content if isinstance(content, str) else json.dumps(content)
            (module_dir / "module.json").write_text(text, encoding="utf-8")
        if backend:
            (module_dir / "backend").mkdir(exist_ok=True)
        if frontend:
            (module_dir / "frontend").mkdir(exist_ok=True)
        return module_dir

    return _make


@pytest.fixture
def sample_registry(make_module, modules_dir) -> Path:
    """Three modules of different types, one disabled, one without backend"""
    make_module(
        "module-market",
        descriptor(
            "module-market",
            displayName="Module Market",
            type="core",
            description="Discovers and serves modules",
            backend={"url": "http://market:3001", "prefix": "/api/module-market"},
            frontend={"entry": "http://localhost:8081", "activeRule": "/module-market"},
        ),
        backend=True,
        frontend=True,
    )
    make_module(
        "module-user",
        descriptor(
            "module-user",
            displayName="User Management",
            type="business",
            description="User CRUD with search",
            backend={"url": "http://users:3002", "prefix": "/api/user"},
        ),
        backend=True,
    )
    make_module(
        "module-docs",
        descriptor("module-docs", displayName="Docs", enabled=False),
        frontend=True,
    )
    return modules_dir


@pytest.fixture
def registry_settings(modules_dir) -> Settings:
    return Settings(MODULES_DIR=str(modules_dir), REGISTRY_RESCAN_INTERVAL=0)


@pytest.fixture
def gateway_settings() -> Settings:
    return Settings(
        MODULE_MARKET_URL="http://market.test",
        ROUTE_REFRESH_INTERVAL=0,
        PROXY_TIMEOUT=1.0,
        DISCOVERY_TIMEOUT=1.0,
        DEFAULT_ROUTES=[
            {"name": "module-market", "url": "http://market.test", "prefix": "/api/module-market"},
            {"name": "module-user", "url": "http://users.test", "prefix": "/api/user"},
        ],
    )


class StreamedBody(httpx.AsyncByteStream):
    """Unread response body, delivered in chunks like a real socket"""

    def __init__(self, body: bytes, chunk_size: int = 16):
        self.body = body
        self.chunk_size = chunk_size

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for start in range(0, len(self.body), self.chunk_size):
            yield self.body[start:start + self.chunk_size]


def streamed_response(
    status_code: int,
    json_body: Any = None,
    content: bytes = b"",
    headers: Optional[List[Tuple]] = None,
) -> httpx.Response:
    """
    Build a transport response whose body has not been read yet.

    httpx.Response(json=...) reads its content eagerly, which a streaming
    proxy cannot iterate again.
    """
    headers = list(headers or [])
    if json_body is not None:
        content = json.dumps(json_body).encode("utf-8")
        headers.append(("Content-Type", "application/json"))
    headers.append(("Content-Length", str(len(content))))
    return httpx.Response(status_code, headers=headers, stream=StreamedBody(content))


class FakeNetwork:
    """
    httpx.MockTransport handler that plays the module market and the backends.

    `modules` is what GET <market>/api/modules returns; set it to an
    exception instance to make discovery fail. Backends echo the request
    they received, unless their host is listed in `down`.
    """

    def __init__(self, market_host: str = "market.test", modules: Optional[object] = None):
        self.market_host = market_host
        self.modules = modules if modules is not None else []
        self.down = set()
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host

        if host in self.down:
            raise httpx.ConnectError("Connection refused", request=request)

        if host == self.market_host and request.url.path == "/api/modules":
            if isinstance(self.modules, Exception):
                raise self.modules
            return streamed_response(200, json_body=self.modules)

        return streamed_response(
            200,
            json_body={
                "host": host,
                "method": request.method,
                "path": request.url.path,
                "rawPath": request.url.raw_path.split(b"?", 1)[0].decode("ascii"),
                "query": request.url.query.decode(),
                "body": request.content.decode(),
                "headers": {k.lower(): v for k, v in request.headers.items()},
            },
            headers=[("X-Backend", host)],
        )

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork(
        modules=[
            {"name": "module-x", "displayName": "X", "backend": {"url": "http://x.test:9000", "prefix": "/api/x"}},
            {"name": "module-y", "displayName": "Y", "backend": {"url": "http://y.test:9001", "prefix": "/api/y"}},
        ]
    )
