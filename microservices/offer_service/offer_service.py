"""
Offer Service - Business Logic Layer

Orchestrates the offer lifecycle:
- Offer creation with numbering and totals
- Header and line item edits (with reservation reconciliation once active)
- Status transitions run as a saga: validate, gate on availability,
  apply the inventory side effect, persist status, record history
- Operator entry points for reservations (reserve, release, audit, repair)
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.config import NotificationSettings, OfferSettings

from . import status_machine
from .availability import AvailabilityChecker
from .clients.inventory_client import NullInventoryGateway
from .events.publishers import (
    publish_offer_created,
    publish_offer_reservations_updated,
    publish_offer_status_changed,
)
from .models import (
    AvailabilityReport,
    FulfillmentResult,
    HistoryEventType,
    InventoryAction,
    ItemReservationSpec,
    ItemsUpdateResult,
    Offer,
    OfferCreateRequest,
    OfferFilter,
    OfferItem,
    OfferItemCreateRequest,
    OfferItemsUpdateRequest,
    OfferListResponse,
    OfferStatistics,
    OfferStatus,
    OfferStatusHistory,
    OfferUpdateRequest,
    OfferWithInventory,
    ReconciliationResult,
    ReleaseResult,
    RepairResult,
    ReservationAudit,
    ReservationChangeSet,
    ReservationResult,
    TransitionResult,
)
from .protocols import (
    EventBusProtocol,
    FulfillmentError,
    InsufficientInventoryError,
    InventoryGatewayProtocol,
    OfferNotEditableError,
    OfferNotFoundError,
    OfferRepositoryProtocol,
    OfferValidationError,
    ReservationFailure,
)
from .reservation_coordinator import ReservationCoordinator
from .saga import Saga
from .totals import calculate_offer_totals

logger = logging.getLogger(__name__)

# Item fields whose change affects the item's reservation
RESERVATION_FIELDS = frozenset({"quantity", "variant_id", "sku", "manage_inventory"})

# History event recorded for the inventory side effect of a transition
INVENTORY_HISTORY_EVENTS = {
    InventoryAction.RESERVE: HistoryEventType.RESERVATION,
    InventoryAction.RELEASE: HistoryEventType.RESERVATION_RELEASE,
    InventoryAction.FULFILL: HistoryEventType.FULFILLMENT,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OfferService:
    """
    Offer Service - Core business logic

    Dependencies are injected; the inventory gateway defaults to a null
    gateway (inventory tracking disabled) and the event bus is optional.
    """

    def __init__(
        self,
        repository: OfferRepositoryProtocol,
        inventory: Optional[InventoryGatewayProtocol] = None,
        event_bus: Optional[EventBusProtocol] = None,
        settings: Optional[OfferSettings] = None,
        notifications: Optional[NotificationSettings] = None,
        sales_channel_id: Optional[str] = None,
    ):
        """
        Initialize offer service with dependencies.

        Args:
            repository: Offer repository for data access
            inventory: Inventory gateway (optional, disabled when omitted)
            event_bus: Event bus for publishing events (optional)
            settings: Numbering, VAT, stock threshold and reservation TTL
            notifications: Which statuses notify the customer
            sales_channel_id: Sales channel for live availability lookups
        """
        self.repository = repository
        self.inventory = inventory or NullInventoryGateway()
        self.event_bus = event_bus
        self.settings = settings or OfferSettings()
        self.notifications = notifications or NotificationSettings()

        self.availability = AvailabilityChecker(
            self.inventory,
            sales_channel_id=sales_channel_id,
            low_stock_threshold=self.settings.low_stock_threshold,
        )
        self.coordinator = ReservationCoordinator(
            repository,
            self.inventory,
            reservation_ttl_hours=self.settings.reservation_ttl_hours,
        )

    # ====================
    # Helpers
    # ====================

    def format_offer_number(self, sequence_number: int) -> str:
        return f"{self.settings.number_prefix}-{sequence_number:0{self.settings.number_padding}d}"

    async def _get_offer_or_raise(self, offer_id: str) -> Offer:
        offer = await self.repository.get_offer(offer_id)
        if not offer:
            raise OfferNotFoundError(f"Offer not found: {offer_id}")
        return offer

    def _build_item(self, offer_id: str, request: OfferItemCreateRequest, sort_order: int) -> OfferItem:
        now = _now()
        return OfferItem(
            item_id=str(uuid.uuid4()),
            offer_id=offer_id,
            item_type=request.item_type,
            product_id=request.product_id,
            variant_id=request.variant_id,
            service_id=request.service_id,
            sku=request.sku,
            title=request.title,
            description=request.description,
            variant_title=request.variant_title,
            quantity=request.quantity,
            unit=request.unit,
            unit_price=request.unit_price,
            discount_percentage=request.discount_percentage,
            discount_amount=request.discount_amount,
            tax_rate=request.tax_rate,
            manage_inventory=request.manage_inventory,
            sort_order=request.sort_order if request.sort_order is not None else sort_order,
            created_at=now,
            updated_at=now,
        )

    async def _recalculate_totals(self, offer_id: str) -> Offer:
        """Recompute item and offer money fields from the stored items"""
        items = await self.repository.get_items(offer_id)
        totals = calculate_offer_totals(items, self.settings.vat_rate)

        net_by_item = {t.item_id: t.net for t in totals.items}
        for item in items:
            if item.total_price != net_by_item[item.item_id]:
                await self.repository.update_item(item.item_id, {"total_price": net_by_item[item.item_id]})

        offer = await self.repository.update_offer(offer_id, {
            "subtotal": totals.subtotal,
            "tax_amount": totals.tax_amount,
            "discount_amount": totals.discount_amount,
            "total_amount": totals.total_amount,
        })
        if not offer:
            raise OfferNotFoundError(f"Offer not found: {offer_id}")
        return offer

    async def _record(
        self,
        offer: Offer,
        event_type: HistoryEventType,
        description: str,
        previous_status: Optional[OfferStatus] = None,
        new_status: Optional[OfferStatus] = None,
        changed_by: Optional[str] = None,
        system_change: bool = False,
        inventory_impact: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> OfferStatusHistory:
        return await self.repository.add_history(OfferStatusHistory(
            history_id=str(uuid.uuid4()),
            offer_id=offer.offer_id,
            previous_status=previous_status,
            new_status=new_status or offer.status,
            event_type=event_type,
            event_description=description,
            changed_by=changed_by,
            system_change=system_change,
            inventory_impact=inventory_impact,
            metadata=metadata or {},
            created_at=_now(),
        ))

    # ====================
    # Offer Management
    # ====================

    async def create_offer_with_items(
        self, request: OfferCreateRequest, created_by: Optional[str] = None
    ) -> Offer:
        """
        Create a draft offer with its initial items.

        Args:
            request: Offer header and items
            created_by: Actor creating the offer

        Returns:
            Created offer with computed totals
        """
        offer_id = str(uuid.uuid4())
        sequence_number = await self.repository.next_sequence_number()
        items = [self._build_item(offer_id, item, index) for index, item in enumerate(request.items)]

        totals = calculate_offer_totals(items, self.settings.vat_rate)
        for item, item_totals in zip(items, totals.items):
            item.total_price = item_totals.net

        now = _now()
        offer = Offer(
            offer_id=offer_id,
            sequence_number=sequence_number,
            offer_number=self.format_offer_number(sequence_number),
            title=request.title,
            description=request.description,
            status=OfferStatus.DRAFT,
            customer_name=request.customer_name,
            customer_email=request.customer_email,
            customer_phone=request.customer_phone,
            customer_address=request.customer_address,
            currency_code=request.currency_code or self.settings.default_currency,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            discount_amount=totals.discount_amount,
            total_amount=totals.total_amount,
            valid_until=request.valid_until,
            internal_notes=request.internal_notes,
            customer_notes=request.customer_notes,
            created_by=created_by,
            assigned_to=request.assigned_to,
            created_at=now,
            updated_at=now,
            items=items,
        )

        created = await self.repository.create_offer(offer)
        await self._record(
            created,
            HistoryEventType.CREATED,
            f"Offer {created.offer_number} created with {len(items)} item(s)",
            new_status=OfferStatus.DRAFT,
            changed_by=created_by,
        )
        logger.info(f"Created offer {created.offer_number} ({created.offer_id}) with {len(items)} item(s)")

        await publish_offer_created(
            self.event_bus,
            offer_id=created.offer_id,
            offer_number=created.offer_number,
            status=created.status.value,
            customer_email=created.customer_email,
            customer_name=created.customer_name,
            total_amount=created.total_amount,
            currency_code=created.currency_code,
            notify_customer=self.notifications.offer_created,
        )
        return created

    async def get_offer(self, offer_id: str) -> Offer:
        """Get offer with items; raises OfferNotFoundError"""
        return await self._get_offer_or_raise(offer_id)

    async def list_offers(self, filters: Optional[OfferFilter] = None) -> OfferListResponse:
        filters = filters or OfferFilter()
        offers = await self.repository.list_offers(filters)
        total = await self.repository.count_offers(filters)
        return OfferListResponse(
            offers=offers,
            total_count=total,
            limit=filters.limit,
            offset=filters.offset,
            has_next=filters.offset + len(offers) < total,
        )

    async def get_history(self, offer_id: str) -> List[OfferStatusHistory]:
        await self._get_offer_or_raise(offer_id)
        return await self.repository.get_history(offer_id)

    async def get_statistics(self) -> OfferStatistics:
        return await self.repository.get_statistics()

    async def health_check(self) -> Dict[str, Any]:
        """Database and inventory connectivity"""
        try:
            await self.repository.get_statistics()
            database_connected = True
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            database_connected = False

        if not self.inventory.enabled:
            inventory = "disabled"
        elif await self.inventory.health_check():
            inventory = "connected"
        else:
            inventory = "disconnected"

        healthy = database_connected and inventory != "disconnected"
        return {
            "status": "healthy" if healthy else "unhealthy",
            "database_connected": database_connected,
            "inventory": inventory,
            "timestamp": _now(),
        }

    async def update_offer(
        self, offer_id: str, request: OfferUpdateRequest, changed_by: Optional[str] = None
    ) -> Offer:
        """
        Update offer header fields.

        Raises:
            OfferNotFoundError: Offer does not exist
            OfferNotEditableError: Offer is completed or cancelled
        """
        offer = await self._get_offer_or_raise(offer_id)
        if status_machine.is_terminal(offer.status):
            raise OfferNotEditableError(offer_id, offer.status, action="update")

        fields = request.model_dump(exclude_unset=True)
        if not fields:
            return offer

        updated = await self.repository.update_offer(offer_id, fields)
        await self._record(
            updated,
            HistoryEventType.UPDATED,
            "Offer details updated",
            previous_status=offer.status,
            changed_by=changed_by,
            metadata={"fields": sorted(fields)},
        )
        return updated

    async def delete_offer(self, offer_id: str) -> bool:
        """Delete a draft offer"""
        offer = await self._get_offer_or_raise(offer_id)
        if offer.status != OfferStatus.DRAFT:
            raise OfferNotEditableError(offer_id, offer.status, action="delete")

        deleted = await self.repository.delete_offer(offer_id)
        if deleted:
            logger.info(f"Deleted draft offer {offer.offer_number}")
        return deleted

    # ====================
    # Item Management
    # ====================

    def _validate_items_request(self, offer: Offer, request: OfferItemsUpdateRequest) -> None:
        known = {item.item_id for item in offer.items}
        update_ids = [u.item_id for u in request.items_to_update]

        for item_id in list(request.items_to_delete) + update_ids:
            if item_id not in known:
                raise OfferValidationError(f"Item {item_id} does not belong to offer {offer.offer_id}")

        if len(set(update_ids)) != len(update_ids):
            raise OfferValidationError("An item may only be updated once per request")

        overlap = set(request.items_to_delete) & set(update_ids)
        if overlap:
            raise OfferValidationError(f"Items both updated and deleted: {sorted(overlap)}")

    async def update_items(
        self,
        offer_id: str,
        request: OfferItemsUpdateRequest,
        changed_by: Optional[str] = None,
    ) -> ItemsUpdateResult:
        """
        Apply item deletions, updates and additions.

        When the offer holds reservations (active or accepted), the changed
        items' reservations are reconciled. Item changes are kept even when
        some reservation operations fail; the failure is raised afterwards.

        Args:
            offer_id: Offer to edit
            request: Batch of item changes
            changed_by: Actor making the change

        Returns:
            ItemsUpdateResult with the refreshed offer and reconciliation result

        Raises:
            OfferNotFoundError: Offer does not exist
            OfferNotEditableError: Offer is completed or cancelled
            OfferValidationError: Unknown or conflicting item ids
            ReservationFailure: Some reservations could not be reconciled
        """
        offer = await self._get_offer_or_raise(offer_id)
        if offer.status not in status_machine.EDITABLE:
            raise OfferNotEditableError(offer_id, offer.status, action="edit items of")
        self._validate_items_request(offer, request)

        changes = ReservationChangeSet(items_to_delete=list(request.items_to_delete))

        for update in request.items_to_update:
            fields = update.model_dump(exclude_unset=True, exclude={"item_id"})
            if not fields:
                continue
            fields["updated_at"] = _now()
            item = await self.repository.update_item(update.item_id, fields)
            if item is None:
                raise OfferNotFoundError(f"Item not found: {update.item_id}")
            if RESERVATION_FIELDS & fields.keys():
                changes.items_to_update.append(ItemReservationSpec(
                    item_id=item.item_id, variant_id=item.variant_id, sku=item.sku, quantity=item.quantity
                ))

        next_sort = max((i.sort_order for i in offer.items), default=-1) + 1
        for index, addition in enumerate(request.items_to_add):
            item = await self.repository.add_item(self._build_item(offer_id, addition, next_sort + index))
            changes.items_to_create.append(ItemReservationSpec(
                item_id=item.item_id, variant_id=item.variant_id, sku=item.sku, quantity=item.quantity
            ))

        reconciliation: Optional[ReconciliationResult] = None
        failure: Optional[ReservationFailure] = None
        if offer.status in status_machine.RESERVING and not changes.is_empty:
            try:
                reconciliation = await self.coordinator.reconcile(offer_id, changes)
            except ReservationFailure as e:
                failure = e
                reconciliation = e.result

        # Rows go last so reconciliation still sees the deleted items' reservation ids
        for item_id in request.items_to_delete:
            await self.repository.delete_item(item_id)

        updated = await self._recalculate_totals(offer_id)

        await self._record(
            updated,
            HistoryEventType.RESERVATION_UPDATE if reconciliation else HistoryEventType.UPDATED,
            (
                f"Items changed: {len(request.items_to_delete)} removed, "
                f"{len(request.items_to_update)} updated, {len(request.items_to_add)} added"
            ),
            previous_status=offer.status,
            changed_by=changed_by,
            inventory_impact="reservations_reconciled" if reconciliation else None,
            metadata=reconciliation.model_dump(mode="json") if reconciliation else {},
        )

        if reconciliation:
            await publish_offer_reservations_updated(
                self.event_bus,
                offer_id=offer_id,
                offer_number=updated.offer_number,
                removed=len(reconciliation.removed),
                updated=len(reconciliation.updated),
                created=len(reconciliation.created),
            )

        if failure:
            raise failure
        return ItemsUpdateResult(offer=updated, reconciliation=reconciliation)

    async def reconcile_items(
        self, offer_id: str, changes: ReservationChangeSet, changed_by: Optional[str] = None
    ) -> ReconciliationResult:
        """
        Reconcile reservations for an explicit change set.

        Only offers that hold reservations (active or accepted) can be
        reconciled. A history row is written even when some operations fail.

        Raises:
            OfferNotFoundError: Offer does not exist
            OfferNotEditableError: Offer is not active or accepted
            ReservationFailure: Some reservations could not be reconciled
        """
        offer = await self._get_offer_or_raise(offer_id)
        if offer.status not in status_machine.RESERVING:
            raise OfferNotEditableError(offer_id, offer.status, action="reconcile reservations of")

        failure: Optional[ReservationFailure] = None
        try:
            result = await self.coordinator.reconcile(offer_id, changes)
        except ReservationFailure as e:
            failure = e
            result = e.result

        await self._record(
            offer,
            HistoryEventType.RESERVATION_UPDATE,
            (
                f"Reservations reconciled: {len(result.removed)} removed, "
                f"{len(result.updated)} updated, {len(result.created)} created"
            ),
            previous_status=offer.status,
            changed_by=changed_by,
            inventory_impact="reservations_reconciled",
            metadata=result.model_dump(mode="json"),
        )

        if failure:
            raise failure
        return result

    # ====================
    # Availability
    # ====================

    async def check_availability(self, offer_id: str) -> AvailabilityReport:
        offer = await self._get_offer_or_raise(offer_id)
        return await self.availability.check(offer_id, offer.items)

    async def get_offer_with_inventory(self, offer_id: str) -> OfferWithInventory:
        offer = await self._get_offer_or_raise(offer_id)
        report = await self.availability.check(offer_id, offer.items)
        return OfferWithInventory(offer=offer, availability=report)

    # ====================
    # Status Transitions
    # ====================

    async def transition_status(
        self,
        offer_id: str,
        new_status: OfferStatus,
        notes: Optional[str] = None,
        changed_by: Optional[str] = None,
    ) -> TransitionResult:
        """
        Move an offer to a new status together with its inventory side effect.

        Steps run as a saga; when a step fails, completed steps are
        compensated in reverse order and the original error is raised.

        Args:
            offer_id: Offer to transition
            new_status: Target status
            notes: Free text stored on the history record
            changed_by: Actor requesting the transition

        Returns:
            TransitionResult

        Raises:
            OfferNotFoundError, NoOpTransitionError, InvalidTransitionError,
            InsufficientInventoryError, ReservationFailure, FulfillmentError,
            ExternalServiceUnavailableError
        """
        saga = Saga(name=f"transition:{offer_id}->{new_status.value}")

        async def validate(ctx):
            offer = await self._get_offer_or_raise(offer_id)
            status_machine.validate_transition(offer.status, new_status)
            ctx["offer"] = offer
            ctx["action"] = status_machine.inventory_action(offer.status, new_status)
            return offer

        async def check_availability(ctx):
            if not status_machine.requires_availability(new_status):
                return None
            report = await self.availability.check(offer_id, ctx["offer"].items)
            if not report.can_complete:
                raise InsufficientInventoryError([
                    {
                        "item_id": item.item_id,
                        "title": item.title,
                        "required_quantity": item.required_quantity,
                        "available_quantity": item.available_quantity,
                    }
                    for item in report.blocking_items
                ])
            return report

        async def apply_inventory(ctx):
            action = ctx["action"]
            if action == InventoryAction.RESERVE:
                outcome = await self.coordinator.reserve(offer_id)
            elif action == InventoryAction.RELEASE:
                outcome = await self.coordinator.release(offer_id, reason=f"status_{new_status.value}")
            elif action == InventoryAction.FULFILL:
                outcome = await self.coordinator.fulfill(offer_id)
            else:
                outcome = None
            ctx["inventory_done"] = True
            return outcome

        async def compensate_inventory(ctx):
            action = ctx["action"]
            previous = ctx["offer"].status
            if action == InventoryAction.RESERVE:
                await self.coordinator.release(offer_id, reason="transition_rollback")
            elif action == InventoryAction.RELEASE and ctx.get("inventory_done"):
                if previous in status_machine.RESERVING:
                    await self.coordinator.reserve(offer_id)
            elif action == InventoryAction.FULFILL:
                error = ctx.get("error")
                applied = error.applied_reductions if isinstance(error, FulfillmentError) else None
                if ctx.get("inventory_done") or applied:
                    logger.error(
                        f"Offer {ctx['offer'].offer_number}: stock was reduced but the transition to "
                        f"'{new_status.value}' failed; manual reconciliation required"
                    )

        async def update_status(ctx):
            offer = ctx["offer"]
            fields = {"status": new_status}
            fields.update(status_machine.timestamp_updates(offer.status, new_status, _now()))
            ctx["previous_fields"] = {key: getattr(offer, key) for key in fields}
            updated = await self.repository.update_offer(offer_id, fields)
            if not updated:
                raise OfferNotFoundError(f"Offer not found: {offer_id}")
            return updated

        async def revert_status(ctx):
            await self.repository.update_offer(offer_id, ctx["previous_fields"])

        async def record_history(ctx):
            offer = ctx["offer"]
            updated = ctx["update_status"]
            action = ctx["action"]
            outcome = ctx["inventory"]

            if outcome is not None and action in INVENTORY_HISTORY_EVENTS:
                await self._record(
                    updated,
                    INVENTORY_HISTORY_EVENTS[action],
                    f"Inventory {action.value} for transition to {new_status.value}",
                    previous_status=offer.status,
                    new_status=new_status,
                    changed_by=changed_by,
                    system_change=True,
                    inventory_impact=action.value,
                    metadata=outcome.model_dump(mode="json"),
                )

            description = f"Status changed from {offer.status.value} to {new_status.value}"
            await self._record(
                updated,
                HistoryEventType.STATUS_CHANGE,
                description,
                previous_status=offer.status,
                new_status=new_status,
                changed_by=changed_by,
                inventory_impact=action.value,
                metadata={"notes": notes, "inventory_action": action.value},
            )

        saga.add_step("validate", validate)
        saga.add_step("check_availability", check_availability)
        saga.add_step("inventory", apply_inventory, compensate_inventory, compensate_on_failure=True)
        saga.add_step("update_status", update_status, revert_status)
        saga.add_step("record_history", record_history)

        ctx = await saga.execute()

        previous_status = ctx["offer"].status
        action = ctx["action"]
        outcome = ctx["inventory"]
        offer = await self._get_offer_or_raise(offer_id)

        logger.info(
            f"Offer {offer.offer_number}: {previous_status.value} -> {new_status.value} "
            f"(inventory: {action.value})"
        )

        await publish_offer_status_changed(
            self.event_bus,
            offer_id=offer.offer_id,
            offer_number=offer.offer_number,
            previous_status=previous_status.value,
            new_status=new_status.value,
            customer_email=offer.customer_email,
            customer_name=offer.customer_name,
            notify_customer=self.notifications.should_notify(new_status.value),
        )

        return TransitionResult(
            offer=offer,
            previous_status=previous_status,
            new_status=new_status,
            inventory_action=action,
            reservation=outcome if isinstance(outcome, ReservationResult) else None,
            release=outcome if isinstance(outcome, ReleaseResult) else None,
            fulfillment=outcome if isinstance(outcome, FulfillmentResult) else None,
        )

    # ====================
    # Reservation Operations
    # ====================

    async def reserve_inventory(self, offer_id: str, changed_by: Optional[str] = None) -> ReservationResult:
        """Re-run reservation for an active or accepted offer"""
        offer = await self._get_offer_or_raise(offer_id)
        if offer.status not in status_machine.RESERVING:
            raise OfferNotEditableError(offer_id, offer.status, action="reserve inventory for")

        result = await self.coordinator.reserve(offer_id)
        await self._record(
            offer,
            HistoryEventType.RESERVATION,
            f"Inventory reserved: {len(result.reservations_created)} reservation(s)",
            previous_status=offer.status,
            changed_by=changed_by,
            inventory_impact=InventoryAction.RESERVE.value,
            metadata=result.model_dump(mode="json"),
        )
        return result

    async def release_reservations(
        self, offer_id: str, reason: str = "manual_release", changed_by: Optional[str] = None
    ) -> ReleaseResult:
        """Release all reservations of an offer regardless of status"""
        offer = await self._get_offer_or_raise(offer_id)
        result = await self.coordinator.release(offer_id, reason=reason)
        await self._record(
            offer,
            HistoryEventType.RESERVATION_RELEASE,
            f"Inventory Released: {reason}",
            previous_status=offer.status,
            changed_by=changed_by,
            inventory_impact=InventoryAction.RELEASE.value,
            metadata=result.model_dump(mode="json"),
        )
        return result

    async def audit_reservations(self, offer_id: str) -> ReservationAudit:
        return await self.coordinator.audit(offer_id)

    async def repair_reservations(self, offer_id: str, changed_by: Optional[str] = None) -> RepairResult:
        """Clear dangling reservation ids and delete untracked reservations"""
        offer = await self._get_offer_or_raise(offer_id)
        result = await self.coordinator.repair(offer_id)

        if result.cleared_item_ids or result.deleted_reservation_ids:
            await self._record(
                offer,
                HistoryEventType.RESERVATION_UPDATE,
                (
                    f"Reservations repaired: {len(result.cleared_item_ids)} dangling id(s) cleared, "
                    f"{len(result.deleted_reservation_ids)} untracked reservation(s) deleted"
                ),
                previous_status=offer.status,
                changed_by=changed_by,
                system_change=changed_by is None,
                inventory_impact="reservations_repaired",
                metadata=result.model_dump(mode="json"),
            )
        return result
