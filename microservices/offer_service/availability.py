"""
Availability checker

Classifies every item of an offer against live sellable stock. Lookups for
distinct variants run concurrently; a failed lookup marks that variant's
items out of stock instead of failing the whole check.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Union

from .models import (
    AvailabilityReport,
    ItemAvailability,
    OfferItem,
    StockStatus,
)
from .protocols import InventoryGatewayProtocol

logger = logging.getLogger(__name__)

DEFAULT_LOW_STOCK_THRESHOLD = 5


def classify_stock(required: int, available: int, low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD) -> StockStatus:
    """Stock status of a product item with a known available quantity"""
    if available <= 0:
        return StockStatus.OUT_OF_STOCK
    if available < required:
        return StockStatus.INSUFFICIENT
    if available <= low_stock_threshold:
        return StockStatus.LOW_STOCK
    return StockStatus.AVAILABLE


class AvailabilityChecker:
    """Live availability of offer items"""

    def __init__(
        self,
        inventory: InventoryGatewayProtocol,
        sales_channel_id: Optional[str] = None,
        low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
    ):
        self.inventory = inventory
        self.sales_channel_id = sales_channel_id
        self.low_stock_threshold = low_stock_threshold

    async def _lookup(self, variant_id: str) -> int:
        result = await self.inventory.get_live_availability([variant_id], self.sales_channel_id)
        return int(result.get(variant_id, 0))

    async def _lookup_all(self, variant_ids: Sequence[str]) -> Dict[str, Union[int, Exception]]:
        results = await asyncio.gather(
            *(self._lookup(variant_id) for variant_id in variant_ids),
            return_exceptions=True,
        )
        return dict(zip(variant_ids, results))

    def _classify(self, item: OfferItem, lookups: Dict[str, Union[int, Exception]]) -> ItemAvailability:
        base = dict(
            item_id=item.item_id,
            title=item.title,
            item_type=item.item_type,
            variant_id=item.variant_id,
            sku=item.sku,
            required_quantity=item.quantity,
        )

        if not item.is_product:
            return ItemAvailability(**base, available_quantity=None, stock_status=StockStatus.SERVICE, can_fulfill=True)

        if not item.variant_id:
            return ItemAvailability(**base, available_quantity=0, stock_status=StockStatus.NO_VARIANT, can_fulfill=False)

        available = lookups[item.variant_id]
        if isinstance(available, Exception):
            return ItemAvailability(
                **base,
                available_quantity=0,
                stock_status=StockStatus.OUT_OF_STOCK,
                can_fulfill=False,
                error=str(available),
            )

        status = classify_stock(item.quantity, available, self.low_stock_threshold)
        return ItemAvailability(
            **base,
            available_quantity=available,
            stock_status=status,
            can_fulfill=status in (StockStatus.AVAILABLE, StockStatus.LOW_STOCK),
        )

    async def check(self, offer_id: str, items: List[OfferItem]) -> AvailabilityReport:
        """
        Check availability of all items on an offer.

        Args:
            offer_id: Offer the items belong to
            items: Current offer items

        Returns:
            AvailabilityReport; never raises for lookup failures
        """
        now = datetime.now(timezone.utc)

        if not self.inventory.enabled:
            return AvailabilityReport(
                offer_id=offer_id,
                items=[
                    ItemAvailability(
                        item_id=item.item_id,
                        title=item.title,
                        item_type=item.item_type,
                        variant_id=item.variant_id,
                        sku=item.sku,
                        required_quantity=item.quantity,
                        stock_status=StockStatus.AVAILABLE if item.is_product else StockStatus.SERVICE,
                        can_fulfill=True,
                    )
                    for item in items
                ],
                inventory_tracking=False,
                checked_at=now,
            )

        variant_ids = list(dict.fromkeys(i.variant_id for i in items if i.is_product and i.variant_id))
        lookups = await self._lookup_all(variant_ids) if variant_ids else {}

        for variant_id, result in lookups.items():
            if isinstance(result, Exception):
                logger.error(f"Availability lookup failed for variant {variant_id}: {result}")

        report_items = [self._classify(item, lookups) for item in items]
        blocking = any(i.is_blocking for i in report_items)

        return AvailabilityReport(
            offer_id=offer_id,
            items=report_items,
            can_complete=not blocking,
            has_out_of_stock=blocking,
            has_low_stock=any(i.stock_status == StockStatus.LOW_STOCK for i in report_items),
            inventory_tracking=True,
            checked_at=now,
        )
