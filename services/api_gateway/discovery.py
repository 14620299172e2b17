"""
Discovery Client

Fetches the registry snapshot from the module market.
"""
from typing import Any, List

import httpx
import structlog

from core.exceptions import DiscoveryUnavailable

logger = structlog.get_logger("discovery-client")

MODULES_PATH = "/api/modules"


class DiscoveryClient:
    """
    Reads module records from the module market over HTTP.

    Usage:
        discovery = DiscoveryClient("http://localhost:3001", client, timeout=5.0)
        modules = await discovery.fetch_modules()
    """

    def __init__(self, base_url: str, client: httpx.AsyncClient, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.client = client
        self.timeout = timeout

    @property
    def modules_url(self) -> str:
        return f"{self.base_url}{MODULES_PATH}"

    async def fetch_modules(self) -> List[Any]:
        """
        Get all module records.

        Raises:
            DiscoveryUnavailable: timeout, connection failure, non-2xx status
                or a body that is not JSON
        """
        logger.info("Fetching modules from module market", url=self.modules_url)
        try:
            response = await self.client.get(self.modules_url, timeout=self.timeout)
            response.raise_for_status()
            modules = response.json()
        except httpx.HTTPStatusError as e:
            raise DiscoveryUnavailable(
                f"Module market answered {e.response.status_code}", self.base_url
            ) from e
        except httpx.HTTPError as e:
            raise DiscoveryUnavailable(
                f"Module market unreachable: {type(e).__name__}: {e}", self.base_url
            ) from e
        except ValueError as e:
            raise DiscoveryUnavailable(f"Invalid JSON from module market: {e}", self.base_url) from e

        count = len(modules) if isinstance(modules, list) else None
        logger.info("Fetched module configuration", modules=count)
        return modules
