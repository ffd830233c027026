"""
Offer Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

# Import only models (no I/O dependencies)
from .models import (
    InventoryItemRecord,
    InventoryLevel,
    Offer,
    OfferFilter,
    OfferItem,
    OfferStatistics,
    OfferStatus,
    OfferStatusHistory,
    ReservationCreate,
    ReservationFailureDetail,
    ReservationRecord,
    StockReduction,
)


# ============================================================================
# Custom Exceptions - defined here to avoid importing repository
# ============================================================================

class OfferServiceError(Exception):
    """Base exception for offer service errors"""
    pass


class OfferNotFoundError(OfferServiceError):
    """Offer (or one of its items) not found"""
    pass


class OfferValidationError(OfferServiceError):
    """Malformed input or change set"""
    pass


class OfferNotEditableError(OfferServiceError):
    """Offer is in a status that forbids the requested edit"""

    def __init__(self, offer_id: str, status: OfferStatus, action: str = "edit"):
        self.offer_id = offer_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} offer {offer_id} in status '{status.value}'")


class InvalidTransitionError(OfferServiceError):
    """Requested status edge is not in the transition table"""

    def __init__(self, current_status: OfferStatus, new_status: OfferStatus):
        self.current_status = current_status
        self.new_status = new_status
        super().__init__(
            f"Invalid status transition from '{current_status.value}' to '{new_status.value}'"
        )


class NoOpTransitionError(OfferServiceError):
    """Requested status equals the current status"""

    def __init__(self, status: OfferStatus):
        self.status = status
        super().__init__(f"Offer is already in status '{status.value}'")


class InsufficientInventoryError(OfferServiceError):
    """One or more items cannot be fulfilled from live stock"""

    def __init__(self, items: List[Dict[str, Any]]):
        self.items = items
        titles = ", ".join(
            f"{i['title']} (required {i['required_quantity']}, available {i['available_quantity']})"
            for i in items
        )
        super().__init__(f"Insufficient inventory: {titles}")


class ReservationFailure(OfferServiceError):
    """Aggregate of per-item reservation failures.

    Raised after every item was attempted; successful items remain committed
    and are reported on ``result``.
    """

    def __init__(self, failures: List[ReservationFailureDetail], result: Optional[Any] = None):
        self.failures = failures
        self.result = result
        summary = "; ".join(f"{f.item_id} [{f.operation}]: {f.reason}" for f in failures)
        super().__init__(f"{len(failures)} reservation operation(s) failed: {summary}")


class ExternalServiceUnavailableError(OfferServiceError):
    """A peer service (inventory) could not be reached or errored"""

    def __init__(self, service: str, reason: str):
        self.service = service
        self.reason = reason
        super().__init__(f"{service} unavailable: {reason}")


class FulfillmentError(OfferServiceError):
    """Stock could not be converted into permanent deductions"""

    def __init__(self, reason: str, applied_reductions: Optional[List[StockReduction]] = None):
        self.reason = reason
        self.applied_reductions = applied_reductions or []
        super().__init__(reason)


# ============================================================================
# Repository Protocol
# ============================================================================

@runtime_checkable
class OfferRepositoryProtocol(Protocol):
    """
    Interface for Offer Repository.

    Implementations must provide these methods.
    Used for dependency injection to enable testing.
    """

    async def next_sequence_number(self) -> int:
        """Allocate the next monotonic offer sequence number"""
        ...

    async def create_offer(self, offer: Offer) -> Offer:
        """Insert an offer together with its items"""
        ...

    async def get_offer(self, offer_id: str) -> Optional[Offer]:
        """Get offer with items, or None if not found"""
        ...

    async def list_offers(self, filters: OfferFilter) -> List[Offer]:
        """List offers (without items) matching the filter"""
        ...

    async def count_offers(self, filters: OfferFilter) -> int:
        """Count offers matching the filter, ignoring limit/offset"""
        ...

    async def update_offer(self, offer_id: str, fields: Dict[str, Any]) -> Optional[Offer]:
        """Update header fields and return the refreshed offer"""
        ...

    async def delete_offer(self, offer_id: str) -> bool:
        """Delete offer, its items and history"""
        ...

    async def get_items(self, offer_id: str) -> List[OfferItem]:
        """Get items of an offer ordered by sort_order"""
        ...

    async def add_item(self, item: OfferItem) -> OfferItem:
        """Insert a line item"""
        ...

    async def update_item(self, item_id: str, fields: Dict[str, Any]) -> Optional[OfferItem]:
        """Update item fields"""
        ...

    async def delete_item(self, item_id: str) -> bool:
        """Delete a line item"""
        ...

    async def set_item_reservation(self, item_id: str, reservation_id: Optional[str]) -> bool:
        """Store (or clear with None) the reservation id of an item"""
        ...

    async def add_history(self, entry: OfferStatusHistory) -> OfferStatusHistory:
        """Append a status history record"""
        ...

    async def get_history(self, offer_id: str) -> List[OfferStatusHistory]:
        """History records, oldest first"""
        ...

    async def get_statistics(self) -> OfferStatistics:
        """Counts and value sums per status"""
        ...

    async def ensure_schema(self) -> None:
        """Create the storage schema if it does not exist (idempotent)"""
        ...


# ============================================================================
# Inventory Gateway Protocol
# ============================================================================

@runtime_checkable
class InventoryGatewayProtocol(Protocol):
    """
    Interface to the inventory subsystem.

    Implementations raise ExternalServiceUnavailableError when the subsystem
    cannot be reached. "Not found" is reported through return values.
    """

    enabled: bool

    async def list_inventory_items_by_sku(self, sku: str) -> List[InventoryItemRecord]:
        ...

    async def list_inventory_levels(self, inventory_item_id: str) -> List[InventoryLevel]:
        ...

    async def create_reservation(self, reservation: ReservationCreate) -> str:
        """Create a reservation and return its id"""
        ...

    async def retrieve_reservation(self, reservation_id: str) -> Optional[ReservationRecord]:
        ...

    async def update_reservation(self, reservation_id: str, quantity: int) -> ReservationRecord:
        ...

    async def delete_reservation(self, reservation_id: str) -> bool:
        """Delete a reservation; False if it did not exist"""
        ...

    async def list_reservations_for_offer(self, offer_id: str) -> List[ReservationRecord]:
        """Reservations whose tag references the offer"""
        ...

    async def update_stocked_quantity(
        self, inventory_item_id: str, location_id: str, stocked_quantity: int
    ) -> InventoryLevel:
        ...

    async def get_live_availability(
        self, variant_ids: List[str], sales_channel_id: Optional[str] = None
    ) -> Dict[str, int]:
        """Sellable quantity per variant, summed across the channel's locations"""
        ...

    async def health_check(self) -> bool:
        """Whether the inventory subsystem answers"""
        ...


# ============================================================================
# Event Bus Protocol
# ============================================================================

@runtime_checkable
class EventBusProtocol(Protocol):
    """Interface for Event Bus"""

    async def publish_event(self, event: Any) -> bool:
        """Publish an event"""
        ...
