"""
Reservation Coordinator

Keeps inventory reservations consistent with an offer's items and status:
reserve on activation, reconcile when items change, release on cancellation
and convert reservations into stock deductions on completion.

Every operation re-reads the offer and the inventory state before acting,
so repeating an operation converges instead of duplicating work. Every
reservation carries a ReservationTag, which is how leftovers are found when
a stored reservation_id is stale.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from .models import (
    DanglingReservation,
    FulfillmentResult,
    InventoryItemRecord,
    ItemReservationSpec,
    Offer,
    OfferItem,
    ReconciliationResult,
    ReleaseResult,
    RepairResult,
    ReservationAudit,
    ReservationChangeSet,
    ReservationCreate,
    ReservationFailureDetail,
    ReservationResult,
    ReservationStatus,
    ReservationTag,
    ReservedItem,
    SkippedItem,
    SkipReason,
    StockReduction,
)
from .protocols import (
    ExternalServiceUnavailableError,
    FulfillmentError,
    InventoryGatewayProtocol,
    OfferNotFoundError,
    OfferRepositoryProtocol,
    OfferValidationError,
    ReservationFailure,
)

logger = logging.getLogger(__name__)

# Skip reasons that mean an item should have been reserved but could not be
_UNRESOLVED = frozenset({SkipReason.MISSING_SKU, SkipReason.SKU_NOT_FOUND, SkipReason.NO_INVENTORY_LEVELS})


@dataclass
class _Placement:
    inventory_item_id: str
    location_id: str


class ReservationCoordinator:
    """Reservation side effects of the offer lifecycle"""

    def __init__(
        self,
        repository: OfferRepositoryProtocol,
        inventory: InventoryGatewayProtocol,
        reservation_ttl_hours: int = 24,
    ):
        self.repository = repository
        self.inventory = inventory
        self.reservation_ttl = timedelta(hours=reservation_ttl_hours)

    # ====================
    # Helpers
    # ====================

    async def _load_offer(self, offer_id: str) -> Offer:
        offer = await self.repository.get_offer(offer_id)
        if not offer:
            raise OfferNotFoundError(f"Offer not found: {offer_id}")
        return offer

    async def _find_inventory_items(self, sku: str) -> List[InventoryItemRecord]:
        """Resolve a SKU, trying the lower-cased form before the original"""
        normalized = sku.lower()
        records = await self.inventory.list_inventory_items_by_sku(normalized)
        if not records and normalized != sku:
            records = await self.inventory.list_inventory_items_by_sku(sku)
        return records

    async def _resolve_placement(self, sku: str) -> Tuple[Optional[_Placement], Optional[SkipReason]]:
        """Inventory item and stock location a reservation for this SKU goes to"""
        records = await self._find_inventory_items(sku)
        if not records:
            return None, SkipReason.SKU_NOT_FOUND

        inventory_item = records[0]
        levels = await self.inventory.list_inventory_levels(inventory_item.id)
        if not levels:
            return None, SkipReason.NO_INVENTORY_LEVELS

        return _Placement(inventory_item.id, levels[0].location_id), None

    @staticmethod
    def _tag(offer: Offer, item: OfferItem) -> ReservationTag:
        return ReservationTag(
            offer_id=offer.offer_id,
            offer_item_id=item.item_id,
            variant_id=item.variant_id,
            sku=item.sku,
            offer_number=offer.offer_number,
        )

    async def _create_reservation(self, offer: Offer, item: OfferItem, placement: _Placement) -> ReservedItem:
        reservation_id = await self.inventory.create_reservation(
            ReservationCreate(
                inventory_item_id=placement.inventory_item_id,
                location_id=placement.location_id,
                quantity=item.quantity,
                allow_backorder=True,
                description=f"Offer {offer.offer_number}: {item.title}",
                tag=self._tag(offer, item),
            )
        )
        await self.repository.set_item_reservation(item.item_id, reservation_id)
        logger.info(f"Reserved {item.quantity} x {item.sku} for offer {offer.offer_number} ({reservation_id})")
        return ReservedItem(
            item_id=item.item_id,
            reservation_id=reservation_id,
            inventory_item_id=placement.inventory_item_id,
            location_id=placement.location_id,
            quantity=item.quantity,
        )

    async def _delete_quietly(self, reservation_id: str) -> bool:
        """Delete a reservation, treating "not found" as success"""
        deleted = await self.inventory.delete_reservation(reservation_id)
        if not deleted:
            logger.debug(f"Reservation {reservation_id} already gone")
        return deleted

    async def _clear_tagged(
        self, offer_id: str, item_id: Optional[str] = None, keep: Optional[str] = None
    ) -> int:
        """Delete reservations tagged with the offer (optionally one item), except ``keep``"""
        cleared = 0
        for reservation in await self.inventory.list_reservations_for_offer(offer_id):
            if reservation.id == keep:
                continue
            if item_id and (not reservation.tag or reservation.tag.offer_item_id != item_id):
                continue
            if await self._delete_quietly(reservation.id):
                cleared += 1
        return cleared

    async def _release_item(self, offer: Offer, item: OfferItem) -> None:
        """Drop whatever reservation an item holds and clear its reservation_id"""
        if item.reservation_id:
            await self._delete_quietly(item.reservation_id)
            await self.repository.set_item_reservation(item.item_id, None)
        await self._clear_tagged(offer.offer_id, item_id=item.item_id)

    async def _refresh_reservation_flags(self, offer_id: str) -> None:
        offer = await self._load_offer(offer_id)
        holding = any(item.reservation_id for item in offer.items)
        fields = {"has_reservations": holding}
        if not holding:
            fields["reservation_expires_at"] = None
        elif offer.reservation_expires_at is None:
            fields["reservation_expires_at"] = datetime.now(timezone.utc) + self.reservation_ttl
        await self.repository.update_offer(offer_id, fields)

    # ====================
    # Reserve
    # ====================

    async def reserve(self, offer_id: str) -> ReservationResult:
        """
        Reserve stock for every reservable item of an offer.

        Leftover reservations tagged with the offer are removed first, so a
        repeated call never double-reserves.

        Args:
            offer_id: Offer to reserve for

        Returns:
            ReservationResult with created reservations and skipped items

        Raises:
            OfferNotFoundError: Offer does not exist
            ReservationFailure: One or more items could not be reserved
                (raised after all items were attempted)
        """
        offer = await self._load_offer(offer_id)
        result = ReservationResult(offer_id=offer_id)

        if not self.inventory.enabled:
            logger.info(f"Inventory tracking disabled, skipping reservations for offer {offer.offer_number}")
            return result

        result.reservations_cleared = await self._clear_tagged(offer_id)
        for item in offer.items:
            if item.reservation_id:
                await self.repository.set_item_reservation(item.item_id, None)
                item.reservation_id = None

        failures: List[ReservationFailureDetail] = []
        for item in offer.items:
            reason = item.skip_reason
            if reason:
                result.items_skipped.append(SkippedItem(item_id=item.item_id, reason=reason))
                continue
            try:
                placement, reason = await self._resolve_placement(item.sku)
                if reason:
                    logger.warning(f"Item {item.title} ({item.sku}) not reserved: {reason.value}")
                    result.items_skipped.append(SkippedItem(item_id=item.item_id, reason=reason))
                    continue
                result.reservations_created.append(await self._create_reservation(offer, item, placement))
            except Exception as e:
                logger.error(f"Failed to reserve item {item.item_id} of offer {offer.offer_number}: {e}")
                failures.append(ReservationFailureDetail(item_id=item.item_id, operation="reserve", reason=str(e)))

        if failures:
            raise ReservationFailure(failures, result)

        if result.reservations_created:
            result.expires_at = datetime.now(timezone.utc) + self.reservation_ttl
            unresolved = any(s.reason in _UNRESOLVED for s in result.items_skipped)
            result.status = ReservationStatus.PARTIAL if unresolved else ReservationStatus.RESERVED

        await self.repository.update_offer(offer_id, {
            "has_reservations": bool(result.reservations_created),
            "reservation_expires_at": result.expires_at,
        })

        logger.info(
            f"Offer {offer.offer_number}: {len(result.reservations_created)} reservation(s) created, "
            f"{len(result.items_skipped)} item(s) skipped, status={result.status.value}"
        )
        return result

    # ====================
    # Update (reconcile)
    # ====================

    @staticmethod
    def _validate_change_set(changes: ReservationChangeSet) -> None:
        groups = {
            "items_to_delete": list(changes.items_to_delete),
            "items_to_update": [s.item_id for s in changes.items_to_update],
            "items_to_create": [s.item_id for s in changes.items_to_create],
        }
        seen: Dict[str, str] = {}
        for group, ids in groups.items():
            for item_id in ids:
                if item_id in seen:
                    raise OfferValidationError(
                        f"Item {item_id} appears in both {seen[item_id]} and {group}"
                    )
                seen[item_id] = group

    async def _reconcile_delete(self, offer: Offer, item_id: str, result: ReconciliationResult) -> None:
        item = offer.get_item(item_id)
        if item and item.reservation_id:
            await self._delete_quietly(item.reservation_id)
            await self.repository.set_item_reservation(item_id, None)
        await self._clear_tagged(offer.offer_id, item_id=item_id)
        result.removed.append(item_id)

    async def _ensure_reservation(
        self, offer: Offer, spec: ItemReservationSpec, result: ReconciliationResult
    ) -> None:
        """Make the item's reservation match its current quantity and SKU"""
        stored = offer.get_item(spec.item_id)
        if stored is None:
            raise OfferNotFoundError(f"Item not found: {spec.item_id}")

        item = stored.model_copy(update={
            "variant_id": spec.variant_id or stored.variant_id,
            "sku": spec.sku or stored.sku,
            "quantity": spec.quantity,
        })

        reason = item.skip_reason
        placement = None
        if reason is None:
            placement, reason = await self._resolve_placement(item.sku)
        if reason:
            await self._release_item(offer, item)
            result.skipped.append(SkippedItem(item_id=item.item_id, reason=reason))
            return

        existing = await self.inventory.retrieve_reservation(item.reservation_id) if item.reservation_id else None

        if existing and existing.inventory_item_id == placement.inventory_item_id:
            if existing.quantity != item.quantity:
                await self.inventory.update_reservation(existing.id, item.quantity)
            await self._clear_tagged(offer.offer_id, item_id=item.item_id, keep=existing.id)
            result.updated.append(ReservedItem(
                item_id=item.item_id,
                reservation_id=existing.id,
                inventory_item_id=existing.inventory_item_id,
                location_id=existing.location_id,
                quantity=item.quantity,
            ))
            return

        if existing:
            # SKU now resolves to a different inventory item
            await self._delete_quietly(existing.id)
        elif item.reservation_id:
            logger.warning(f"Reservation {item.reservation_id} of item {item.item_id} no longer exists")

        if item.reservation_id:
            await self.repository.set_item_reservation(item.item_id, None)
        await self._clear_tagged(offer.offer_id, item_id=item.item_id)
        result.created.append(await self._create_reservation(offer, item, placement))

    async def _attempt(self, result: ReconciliationResult, item_id: str, operation: str, coro) -> None:
        try:
            await coro
        except Exception as e:
            logger.error(f"Reservation {operation} failed for item {item_id}: {e}")
            result.failures.append(ReservationFailureDetail(item_id=item_id, operation=operation, reason=str(e)))

    async def reconcile(self, offer_id: str, changes: ReservationChangeSet) -> ReconciliationResult:
        """
        Bring reservations in line with a set of item changes.

        Per-item operations run concurrently. Successful operations stay
        committed when others fail.

        Args:
            offer_id: Offer whose items changed
            changes: Deleted, updated and created items

        Returns:
            ReconciliationResult

        Raises:
            OfferValidationError: An item id appears in more than one set
            OfferNotFoundError: Offer does not exist
            ReservationFailure: One or more items failed (carries the result)
        """
        self._validate_change_set(changes)
        offer = await self._load_offer(offer_id)
        result = ReconciliationResult(offer_id=offer_id)

        if not self.inventory.enabled or changes.is_empty:
            return result

        await asyncio.gather(
            *(self._attempt(result, item_id, "delete", self._reconcile_delete(offer, item_id, result))
              for item_id in changes.items_to_delete),
            *(self._attempt(result, spec.item_id, "update", self._ensure_reservation(offer, spec, result))
              for spec in changes.items_to_update),
            *(self._attempt(result, spec.item_id, "create", self._ensure_reservation(offer, spec, result))
              for spec in changes.items_to_create),
        )

        await self._refresh_reservation_flags(offer_id)

        logger.info(
            f"Offer {offer.offer_number} reconciled: removed={len(result.removed)} "
            f"updated={len(result.updated)} created={len(result.created)} failures={len(result.failures)}"
        )

        if result.failures:
            raise ReservationFailure(result.failures, result)
        return result

    # ====================
    # Release
    # ====================

    async def release(self, offer_id: str, reason: str = "manual_release") -> ReleaseResult:
        """
        Release every reservation held for an offer.

        Never raises for inventory errors: they are logged and reported on
        the result, and item reservation ids are cleared regardless.

        Args:
            offer_id: Offer to release
            reason: Recorded in the logs

        Returns:
            ReleaseResult
        """
        offer = await self._load_offer(offer_id)
        result = ReleaseResult(offer_id=offer_id)

        for item in offer.items:
            if not item.reservation_id:
                continue
            if self.inventory.enabled:
                try:
                    existing = await self.inventory.retrieve_reservation(item.reservation_id)
                    if existing and await self.inventory.delete_reservation(item.reservation_id):
                        result.reservations_released += 1
                    else:
                        result.already_released += 1
                except Exception as e:
                    logger.error(f"Failed to release reservation {item.reservation_id} of item {item.item_id}: {e}")
                    result.errors.append(ReservationFailureDetail(
                        item_id=item.item_id, operation="release", reason=str(e)
                    ))
            await self.repository.set_item_reservation(item.item_id, None)
            result.items_cleared += 1

        if self.inventory.enabled:
            try:
                for reservation in await self.inventory.list_reservations_for_offer(offer_id):
                    if await self.inventory.delete_reservation(reservation.id):
                        result.reservations_released += 1
            except Exception as e:
                logger.error(f"Failed to sweep tagged reservations of offer {offer.offer_number}: {e}")
                result.errors.append(ReservationFailureDetail(item_id="*", operation="sweep", reason=str(e)))

        await self.repository.update_offer(offer_id, {
            "has_reservations": False,
            "reservation_expires_at": None,
        })

        logger.info(
            f"Released {result.reservations_released} reservation(s) for offer {offer.offer_number} "
            f"({reason}), already released: {result.already_released}"
        )
        return result

    # ====================
    # Fulfill
    # ====================

    async def _plan_reductions(self, offer: Offer) -> Tuple[List[StockReduction], List[SkippedItem]]:
        plan: List[StockReduction] = []
        skipped: List[SkippedItem] = []
        # Running stock per (inventory_item_id, location_id) across planned reductions
        stocked: Dict[Tuple[str, str], int] = {}
        available: Dict[Tuple[str, str], int] = {}

        for item in offer.items:
            if not item.is_reservable:
                continue

            records = await self._find_inventory_items(item.sku)
            levels = []
            for record in records:
                levels.extend(await self.inventory.list_inventory_levels(record.id))
            if not levels:
                reason = SkipReason.NO_INVENTORY_LEVELS if records else SkipReason.SKU_NOT_FOUND
                logger.warning(f"Item {item.title} ({item.sku}) not fulfilled from stock: {reason.value}")
                skipped.append(SkippedItem(item_id=item.item_id, reason=reason))
                continue

            own = await self.inventory.retrieve_reservation(item.reservation_id) if item.reservation_id else None
            remaining = item.quantity

            for level in levels:
                if remaining <= 0:
                    break
                key = (level.inventory_item_id, level.location_id)
                if key not in stocked:
                    stocked[key] = level.stocked_quantity
                    available[key] = level.available_quantity

                usable = available[key]
                if own and (own.inventory_item_id, own.location_id) == key:
                    usable += own.quantity

                quantity = min(usable, remaining)
                if quantity <= 0:
                    continue

                plan.append(StockReduction(
                    item_id=item.item_id,
                    inventory_item_id=level.inventory_item_id,
                    location_id=level.location_id,
                    quantity=quantity,
                    previous_stocked=stocked[key],
                    new_stocked=stocked[key] - quantity,
                ))
                stocked[key] -= quantity
                available[key] -= quantity
                remaining -= quantity

            if remaining > 0:
                raise FulfillmentError(
                    f"Insufficient stock to fulfill '{item.title}' ({item.sku}): {remaining} unit(s) short"
                )

        return plan, skipped

    async def fulfill(self, offer_id: str) -> FulfillmentResult:
        """
        Turn an offer's reservations into permanent stock deductions.

        The reductions are planned for every item before any stock is
        touched; then they are applied and the reservations released.
        Items whose SKU has no inventory record or stock level are skipped
        and listed in items_skipped.

        Args:
            offer_id: Offer being completed

        Returns:
            FulfillmentResult

        Raises:
            FulfillmentError: Stock cannot cover the offer, or a reduction
                failed part-way (applied_reductions lists what was changed)
        """
        offer = await self._load_offer(offer_id)
        result = FulfillmentResult(offer_id=offer_id)

        if not self.inventory.enabled:
            logger.info(f"Inventory tracking disabled, nothing to fulfill for offer {offer.offer_number}")
            return result

        try:
            plan, result.items_skipped = await self._plan_reductions(offer)
        except ExternalServiceUnavailableError as e:
            raise FulfillmentError(f"Inventory unavailable while planning fulfillment: {e.reason}") from e

        applied: List[StockReduction] = []
        for reduction in plan:
            try:
                await self.inventory.update_stocked_quantity(
                    reduction.inventory_item_id, reduction.location_id, reduction.new_stocked
                )
            except Exception as e:
                logger.error(
                    f"Stock reduction failed for offer {offer.offer_number} after {len(applied)} of "
                    f"{len(plan)} reduction(s); manual reconciliation required: "
                    f"{[r.model_dump() for r in applied]}"
                )
                raise FulfillmentError(
                    f"Stock reduction failed at {reduction.inventory_item_id}/{reduction.location_id}: {e}",
                    applied,
                ) from e
            applied.append(reduction)

        result.reductions = applied
        result.items_reduced = len({r.item_id for r in applied})
        result.total_quantity_reduced = sum(r.quantity for r in applied)

        release = await self.release(offer_id, reason="fulfilled")
        result.reservations_released = release.reservations_released

        logger.info(
            f"Fulfilled offer {offer.offer_number}: {result.total_quantity_reduced} unit(s) "
            f"across {result.items_reduced} item(s), {len(result.items_skipped)} skipped"
        )
        return result

    # ====================
    # Audit / Repair
    # ====================

    async def audit(self, offer_id: str) -> ReservationAudit:
        """Compare stored reservation ids with the reservations that exist"""
        offer = await self._load_offer(offer_id)
        audit = ReservationAudit(offer_id=offer_id)
        if not self.inventory.enabled:
            return audit

        referenced = set()
        for item in offer.items:
            if not item.reservation_id:
                continue
            referenced.add(item.reservation_id)
            if await self.inventory.retrieve_reservation(item.reservation_id) is None:
                audit.dangling.append(DanglingReservation(item_id=item.item_id, reservation_id=item.reservation_id))

        for reservation in await self.inventory.list_reservations_for_offer(offer_id):
            if reservation.id not in referenced:
                audit.untracked.append(reservation.id)

        if not audit.consistent:
            logger.warning(
                f"Offer {offer.offer_number} reservation audit: {len(audit.dangling)} dangling, "
                f"{len(audit.untracked)} untracked"
            )
        return audit

    async def repair(self, offer_id: str) -> RepairResult:
        """Clear dangling reservation ids and delete untracked reservations"""
        audit = await self.audit(offer_id)
        result = RepairResult(offer_id=offer_id)

        for dangling in audit.dangling:
            await self.repository.set_item_reservation(dangling.item_id, None)
            result.cleared_item_ids.append(dangling.item_id)

        for reservation_id in audit.untracked:
            await self._delete_quietly(reservation_id)
            result.deleted_reservation_ids.append(reservation_id)

        if not audit.consistent:
            await self._refresh_reservation_flags(offer_id)
        return result
