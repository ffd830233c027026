"""
Base Service Client for Internal Microservice Communication

Base class for HTTP clients to peer services (inventory, ...).
"""

import httpx
import logging
from typing import Optional, Dict, Any
from abc import ABC

logger = logging.getLogger(__name__)


class BaseServiceClient(ABC):
    """
    Base class for peer service clients.

    Handles:
    1. Base URL resolution (explicit URL or localhost default port)
    2. HTTP client management
    3. Timeouts

    Example:
        class InventoryClient(BaseServiceClient):
            service_name = "inventory_service"
            default_port = 8252

            async def get_levels(self, item_id: str):
                response = await self.request("GET", f"/api/v1/inventory/items/{item_id}/levels")
                return response.json()
    """

    # Subclasses define these
    service_name: str = None
    default_port: int = None

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the service client.

        Args:
            base_url: Service base URL (defaults to localhost:default_port)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (e.g. httpx.MockTransport)
        """
        if not self.service_name:
            raise ValueError(f"{self.__class__.__name__} must define 'service_name'")

        if base_url:
            self.base_url = base_url.rstrip('/')
        else:
            self.base_url = self._default_url()

        self.client = httpx.AsyncClient(
            timeout=timeout,
            headers=self._build_default_headers(),
            transport=transport,
        )

        logger.debug(f"Initialized {self.service_name} client: {self.base_url}")

    def _default_url(self) -> str:
        default_url = f"http://localhost:{self.default_port}" if self.default_port else "http://localhost:8000"
        logger.warning(f"No base URL configured for {self.service_name}, using default: {default_url}")
        return default_url

    def _build_default_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "User-Agent": f"offer-service-client/{self.service_name}"
        }

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()
        logger.debug(f"Closed {self.service_name} client")

    # ========================================
    # HTTP helpers
    # ========================================

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        return await self.client.request(method, url, json=json, params=params, headers=headers)

    async def health_check(self) -> bool:
        """
        Health check

        Returns:
            Whether the service is healthy
        """
        try:
            response = await self.request("GET", "/health")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(f"{self.service_name} health check failed: {e}")
            return False


__all__ = ["BaseServiceClient"]
