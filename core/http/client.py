"""
HTTP Client with Optimized Timeouts

Provides the configured httpx client shared by the gateway for discovery
calls and proxied requests.
"""

import httpx
from typing import Optional
import structlog

logger = structlog.get_logger("http-client")


# Connection limits
DEFAULT_LIMITS = httpx.Limits(
    max_keepalive_connections=20,
    max_connections=100,
    keepalive_expiry=30.0
)

# Connection-scoped headers that must not be forwarded by a proxy
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
})


def build_timeout(seconds: float) -> httpx.Timeout:
    """Single budget applied to connect, read, write and pool acquisition"""
    return httpx.Timeout(seconds)


def create_http_client(
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Create the shared async client.

    Redirects are not followed: a proxy hands them back to the caller.
    `transport` lets tests swap the network for an httpx.MockTransport.
    """
    client = httpx.AsyncClient(
        timeout=build_timeout(timeout),
        limits=DEFAULT_LIMITS,
        follow_redirects=False,
        transport=transport,
    )
    logger.info("HTTP client initialized", timeout=timeout)
    return client


def header_name(key) -> str:
    """Lower-cased header name from a str or raw bytes key"""
    if isinstance(key, bytes):
        key = key.decode("latin-1")
    return key.lower()


def strip_hop_by_hop(items) -> list:
    """
    Copy (name, value) pairs without hop-by-hop entries or Host, keeping repeats.

    Pairs may be str or raw bytes; they are returned as given, so raw header
    values pass through without being decoded and re-encoded.
    """
    return [
        (key, value)
        for key, value in items
        if header_name(key) not in HOP_BY_HOP_HEADERS and header_name(key) != "host"
    ]
