"""
Offer Service Component Test Fixtures

Provides mocks for offer service component testing:
- MockOfferRepository: In-memory implementation of OfferRepositoryProtocol
- MockEventBus / MockInventoryGateway: from tests.component.mocks
- Helpers that create offers and drive them through the lifecycle
"""

import pytest
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from microservices.offer_service.models import (
    Offer,
    OfferFilter,
    OfferItem,
    OfferStatistics,
    OfferStatus,
    OfferStatusHistory,
)
from tests.contracts.offer.data_contract import OfferTestDataFactory


# =============================================================================
# Mock Repository Implementation
# =============================================================================


class MockOfferRepository:
    """
    Mock implementation of OfferRepositoryProtocol for testing.

    Stores offers, items and history in memory. Returned objects are copies,
    so callers can't mutate the stored state by accident.
    """

    def __init__(self):
        self.offers: Dict[str, Offer] = {}
        self.items: Dict[str, OfferItem] = {}
        self.history: List[OfferStatusHistory] = []
        self._sequence = 0

        # Track method calls for verification
        self.method_calls: List[Tuple[Any, ...]] = []

        # method -> (error, predicate on the call arguments)
        self._failures: Dict[str, Tuple[Exception, Callable[..., bool]]] = {}

    def reset(self):
        """Reset all stored data"""
        self.offers.clear()
        self.items.clear()
        self.history.clear()
        self.method_calls.clear()
        self._failures.clear()

    # Failure injection

    def fail_on(self, method: str, error: Exception, when: Optional[Callable[..., bool]] = None):
        self._failures[method] = (error, when or (lambda *args: True))

    def fail_status_update(self, error: Optional[Exception] = None):
        """Fail update_offer calls that change the status"""
        self.fail_on(
            "update_offer",
            error or RuntimeError("database unavailable"),
            when=lambda offer_id, fields: "status" in fields,
        )

    def clear_failures(self):
        self._failures.clear()

    def _record(self, method: str, *args):
        self.method_calls.append((method, *args))
        failure = self._failures.get(method)
        if failure and failure[1](*args):
            raise failure[0]

    def calls(self, method: str) -> List[Tuple[Any, ...]]:
        return [c for c in self.method_calls if c[0] == method]

    # Test setup helpers

    def put_offer(self, offer: Offer) -> Offer:
        """Store an offer with its items directly"""
        self.offers[offer.offer_id] = offer.model_copy(update={"items": []}, deep=True)
        for item in offer.items:
            self.items[item.item_id] = item.model_copy(deep=True)
        return offer

    def history_of(self, offer_id: str, event_type: Optional[str] = None) -> List[OfferStatusHistory]:
        return [
            h for h in self.history
            if h.offer_id == offer_id and (event_type is None or h.event_type.value == event_type)
        ]

    def _items_of(self, offer_id: str) -> List[OfferItem]:
        items = [i for i in self.items.values() if i.offer_id == offer_id]
        return [i.model_copy(deep=True) for i in sorted(items, key=lambda i: i.sort_order)]

    def _matches(self, offer: Offer, filters: OfferFilter) -> bool:
        if filters.status and offer.status != filters.status:
            return False
        if filters.customer_email and offer.customer_email != filters.customer_email:
            return False
        if filters.has_reservations is not None and offer.has_reservations != filters.has_reservations:
            return False
        if filters.search:
            needle = filters.search.lower()
            haystack = [offer.title, offer.offer_number, offer.customer_name or ""]
            if not any(needle in value.lower() for value in haystack):
                return False
        return True

    # OfferRepositoryProtocol

    async def next_sequence_number(self) -> int:
        self._record("next_sequence_number")
        self._sequence += 1
        return self._sequence

    async def create_offer(self, offer: Offer) -> Offer:
        self._record("create_offer", offer.offer_id)
        self.put_offer(offer)
        return await self.get_offer(offer.offer_id)

    async def get_offer(self, offer_id: str) -> Optional[Offer]:
        self._record("get_offer", offer_id)
        offer = self.offers.get(offer_id)
        if not offer:
            return None
        return offer.model_copy(update={"items": self._items_of(offer_id)}, deep=True)

    async def list_offers(self, filters: OfferFilter) -> List[Offer]:
        self._record("list_offers", filters)
        matching = [o for o in self.offers.values() if self._matches(o, filters)]
        matching.sort(key=lambda o: o.created_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
        return [o.model_copy(deep=True) for o in matching[filters.offset:filters.offset + filters.limit]]

    async def count_offers(self, filters: OfferFilter) -> int:
        self._record("count_offers", filters)
        return sum(1 for o in self.offers.values() if self._matches(o, filters))

    async def update_offer(self, offer_id: str, fields: Dict[str, Any]) -> Optional[Offer]:
        self._record("update_offer", offer_id, dict(fields))
        offer = self.offers.get(offer_id)
        if not offer:
            return None
        self.offers[offer_id] = offer.model_copy(
            update={**fields, "updated_at": datetime.now(timezone.utc)}, deep=True
        )
        return await self.get_offer(offer_id)

    async def delete_offer(self, offer_id: str) -> bool:
        self._record("delete_offer", offer_id)
        if offer_id not in self.offers:
            return False
        del self.offers[offer_id]
        for item_id in [i.item_id for i in self.items.values() if i.offer_id == offer_id]:
            del self.items[item_id]
        self.history = [h for h in self.history if h.offer_id != offer_id]
        return True

    async def get_items(self, offer_id: str) -> List[OfferItem]:
        self._record("get_items", offer_id)
        return self._items_of(offer_id)

    async def add_item(self, item: OfferItem) -> OfferItem:
        self._record("add_item", item.item_id)
        self.items[item.item_id] = item.model_copy(deep=True)
        return item.model_copy(deep=True)

    async def update_item(self, item_id: str, fields: Dict[str, Any]) -> Optional[OfferItem]:
        self._record("update_item", item_id, dict(fields))
        item = self.items.get(item_id)
        if not item:
            return None
        self.items[item_id] = item.model_copy(update=fields, deep=True)
        return self.items[item_id].model_copy(deep=True)

    async def delete_item(self, item_id: str) -> bool:
        self._record("delete_item", item_id)
        return self.items.pop(item_id, None) is not None

    async def set_item_reservation(self, item_id: str, reservation_id: Optional[str]) -> bool:
        self._record("set_item_reservation", item_id, reservation_id)
        item = self.items.get(item_id)
        if not item:
            return False
        self.items[item_id] = item.model_copy(update={"reservation_id": reservation_id})
        return True

    async def add_history(self, entry: OfferStatusHistory) -> OfferStatusHistory:
        self._record("add_history", entry.event_type)
        self.history.append(entry.model_copy(deep=True))
        return entry

    async def get_history(self, offer_id: str) -> List[OfferStatusHistory]:
        self._record("get_history", offer_id)
        return [h.model_copy(deep=True) for h in self.history if h.offer_id == offer_id]

    async def get_statistics(self) -> OfferStatistics:
        self._record("get_statistics")
        counts = Counter(o.status.value for o in self.offers.values())
        values: Dict[str, int] = {}
        for offer in self.offers.values():
            values[offer.status.value] = values.get(offer.status.value, 0) + offer.total_amount

        counted = [s.value for s in (OfferStatus.ACTIVE, OfferStatus.ACCEPTED, OfferStatus.COMPLETED)]
        total_value = sum(v for status, v in values.items() if status in counted)
        counted_offers = sum(c for status, c in counts.items() if status in counted)
        return OfferStatistics(
            total_offers=len(self.offers),
            offers_by_status=dict(counts),
            value_by_status=values,
            total_value=total_value,
            average_value=total_value // counted_offers if counted_offers else 0,
        )

    async def ensure_schema(self) -> None:
        self._record("ensure_schema")


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture
def mock_repository():
    """Create mock offer repository"""
    return MockOfferRepository()


@pytest.fixture
def offer_service(mock_repository, mock_inventory, mock_event_bus):
    """Create offer service with mocked dependencies"""
    from microservices.offer_service.offer_service import OfferService

    return OfferService(
        repository=mock_repository,
        inventory=mock_inventory,
        event_bus=mock_event_bus,
        sales_channel_id="sc_test",
    )


@pytest.fixture
def coordinator(offer_service):
    """Reservation coordinator wired to the same mocks as offer_service"""
    return offer_service.coordinator


@pytest.fixture
def data_factory():
    """Provide data factory for test data generation"""
    return OfferTestDataFactory


@pytest.fixture
def stocked_offer(offer_service, mock_inventory, data_factory):
    """
    Factory creating a draft offer whose product items are backed by stock.

    Usage:
        offer = await stocked_offer(quantities=[2, 3], stocked=20)
    """
    async def _create(quantities=(2,), stocked: int = 20, with_service: bool = False) -> Offer:
        items = []
        for quantity in quantities:
            request = data_factory.make_product_item_request(quantity=quantity, unit_price=1000)
            mock_inventory.add_stock(request.sku, stocked, variant_id=request.variant_id)
            items.append(request)
        if with_service:
            items.append(data_factory.make_service_item_request(unit_price=5000))
        return await offer_service.create_offer_with_items(data_factory.make_create_request(items=items))

    return _create


@pytest.fixture
def active_offer(offer_service, stocked_offer):
    """Factory creating an offer and moving it to active (reservations held)"""
    async def _create(**kwargs) -> Offer:
        offer = await stocked_offer(**kwargs)
        result = await offer_service.transition_status(offer.offer_id, OfferStatus.ACTIVE)
        return result.offer

    return _create
