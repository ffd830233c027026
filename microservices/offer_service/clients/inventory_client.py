"""
Inventory Service Client for Offer Service

Implements InventoryGatewayProtocol over the inventory service's HTTP API.
Transport errors, timeouts and error responses become
ExternalServiceUnavailableError; 404 responses become "not found" results.
"""

import httpx
import logging
from typing import Any, Dict, List, Optional

from core.service_client_base import BaseServiceClient

from ..models import (
    InventoryItemRecord,
    InventoryLevel,
    ReservationCreate,
    ReservationRecord,
    ReservationTag,
)
from ..protocols import ExternalServiceUnavailableError

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/inventory"


def _reservation_from_json(data: Dict[str, Any]) -> ReservationRecord:
    return ReservationRecord(
        id=data["id"],
        inventory_item_id=data["inventory_item_id"],
        location_id=data["location_id"],
        quantity=data["quantity"],
        allow_backorder=data.get("allow_backorder", True),
        description=data.get("description"),
        tag=ReservationTag.from_metadata(data.get("metadata")),
    )


class InventoryClient(BaseServiceClient):
    """Client for inventory_service"""

    service_name = "inventory_service"
    default_port = 8252
    enabled = True

    async def _send(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        allow_not_found: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """Send a request and return the decoded body (None on allowed 404)"""
        try:
            response = await self.request(method, f"{API_PREFIX}{path}", json=json, params=params)
        except httpx.TimeoutException as e:
            logger.error(f"Inventory request timed out: {method} {path}")
            raise ExternalServiceUnavailableError(self.service_name, f"timeout: {e}") from e
        except httpx.TransportError as e:
            logger.error(f"Inventory request failed: {method} {path}: {e}")
            raise ExternalServiceUnavailableError(self.service_name, str(e)) from e

        if response.status_code == 404 and allow_not_found:
            return None

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Inventory returned {response.status_code} for {method} {path}")
            raise ExternalServiceUnavailableError(
                self.service_name, f"HTTP {response.status_code}: {response.text}"
            ) from e

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    async def list_inventory_items_by_sku(self, sku: str) -> List[InventoryItemRecord]:
        data = await self._send("GET", "/items", params={"sku": sku})
        return [InventoryItemRecord(**item) for item in data.get("items", [])]

    async def list_inventory_levels(self, inventory_item_id: str) -> List[InventoryLevel]:
        data = await self._send("GET", f"/items/{inventory_item_id}/levels")
        return [InventoryLevel(**level) for level in data.get("levels", [])]

    async def create_reservation(self, reservation: ReservationCreate) -> str:
        payload = {
            "inventory_item_id": reservation.inventory_item_id,
            "location_id": reservation.location_id,
            "quantity": reservation.quantity,
            "allow_backorder": reservation.allow_backorder,
            "description": reservation.description,
            "metadata": reservation.tag.to_metadata(),
        }
        data = await self._send("POST", "/reservations", json=payload)
        return data["id"]

    async def retrieve_reservation(self, reservation_id: str) -> Optional[ReservationRecord]:
        data = await self._send("GET", f"/reservations/{reservation_id}", allow_not_found=True)
        return _reservation_from_json(data) if data else None

    async def update_reservation(self, reservation_id: str, quantity: int) -> ReservationRecord:
        data = await self._send("POST", f"/reservations/{reservation_id}", json={"quantity": quantity})
        return _reservation_from_json(data)

    async def delete_reservation(self, reservation_id: str) -> bool:
        data = await self._send("DELETE", f"/reservations/{reservation_id}", allow_not_found=True)
        return data is not None

    async def list_reservations_for_offer(self, offer_id: str) -> List[ReservationRecord]:
        data = await self._send("GET", "/reservations", params={"offer_id": offer_id})
        return [_reservation_from_json(r) for r in data.get("reservations", [])]

    async def update_stocked_quantity(
        self, inventory_item_id: str, location_id: str, stocked_quantity: int
    ) -> InventoryLevel:
        data = await self._send(
            "POST",
            f"/items/{inventory_item_id}/levels/{location_id}",
            json={"stocked_quantity": stocked_quantity},
        )
        return InventoryLevel(**data)

    async def get_live_availability(
        self, variant_ids: List[str], sales_channel_id: Optional[str] = None
    ) -> Dict[str, int]:
        payload = {"variant_ids": variant_ids, "sales_channel_id": sales_channel_id}
        data = await self._send("POST", "/availability", json=payload)
        return {variant_id: int(qty) for variant_id, qty in data.get("availability", {}).items()}


class NullInventoryGateway:
    """
    Gateway used when inventory tracking is disabled.

    Reads return empty results; mutations raise, since callers are expected
    to check ``enabled`` and skip inventory work entirely.
    """

    enabled = False

    def _disabled(self) -> ExternalServiceUnavailableError:
        return ExternalServiceUnavailableError("inventory_service", "inventory tracking disabled")

    async def list_inventory_items_by_sku(self, sku: str) -> List[InventoryItemRecord]:
        return []

    async def list_inventory_levels(self, inventory_item_id: str) -> List[InventoryLevel]:
        return []

    async def create_reservation(self, reservation: ReservationCreate) -> str:
        raise self._disabled()

    async def retrieve_reservation(self, reservation_id: str) -> Optional[ReservationRecord]:
        return None

    async def update_reservation(self, reservation_id: str, quantity: int) -> ReservationRecord:
        raise self._disabled()

    async def delete_reservation(self, reservation_id: str) -> bool:
        return False

    async def list_reservations_for_offer(self, offer_id: str) -> List[ReservationRecord]:
        return []

    async def update_stocked_quantity(
        self, inventory_item_id: str, location_id: str, stocked_quantity: int
    ) -> InventoryLevel:
        raise self._disabled()

    async def get_live_availability(
        self, variant_ids: List[str], sales_channel_id: Optional[str] = None
    ) -> Dict[str, int]:
        return {}

    async def health_check(self) -> bool:
        return True

    async def close(self):
        return None
