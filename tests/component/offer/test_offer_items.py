"""
Offer Items and Management Component Tests

Item edits (with reservation reconciliation once an offer is active),
header updates, deletion, listing, statistics and the operator
reservation entry points.

Usage:
    pytest tests/component/offer/test_offer_items.py -v
"""

from decimal import Decimal

import pytest

from microservices.offer_service.models import (
    HistoryEventType,
    ItemReservationSpec,
    OfferFilter,
    OfferStatus,
    OfferUpdateRequest,
    ReservationChangeSet,
)
from microservices.offer_service.protocols import (
    OfferNotEditableError,
    OfferNotFoundError,
    OfferValidationError,
    ReservationFailure,
)
from tests.contracts.offer.data_contract import OfferItemsUpdateRequestBuilder


# =============================================================================
# Item edits on draft offers
# =============================================================================


@pytest.mark.component
@pytest.mark.asyncio
class TestDraftItemEdits:
    """Draft offers hold no reservations; edits never touch inventory"""

    async def test_add_update_delete_items(self, offer_service, stocked_offer, mock_inventory, data_factory):
        offer = await stocked_offer(quantities=[1, 1])
        keep, drop = offer.items
        mock_inventory.method_calls.clear()

        request = (
            OfferItemsUpdateRequestBuilder()
            .delete(drop.item_id)
            .set_quantity(keep.item_id, 3)
            .add(data_factory.make_product_item_request(quantity=2, unit_price=500))
            .build()
        )
        result = await offer_service.update_items(offer.offer_id, request)

        assert result.reconciliation is None
        assert mock_inventory.method_calls == []
        assert len(result.offer.items) == 2
        assert drop.item_id not in {i.item_id for i in result.offer.items}
        assert result.offer.get_item(keep.item_id).quantity == 3

    async def test_totals_recalculated(self, offer_service, stocked_offer):
        offer = await stocked_offer(quantities=[2])
        item = offer.items[0]
        assert offer.total_amount == 2000

        request = OfferItemsUpdateRequestBuilder().set_discount(item.item_id, Decimal("25")).build()
        result = await offer_service.update_items(offer.offer_id, request)

        assert result.offer.total_amount == 1500
        assert result.offer.discount_amount == 500
        assert result.offer.subtotal == 1261
        assert result.offer.tax_amount == 239
        assert result.offer.get_item(item.item_id).total_price == 1500

    async def test_added_items_sorted_after_existing(self, offer_service, stocked_offer, data_factory):
        offer = await stocked_offer(quantities=[1, 1])

        request = OfferItemsUpdateRequestBuilder().add(data_factory.make_service_item_request()).build()
        result = await offer_service.update_items(offer.offer_id, request)

        assert [i.sort_order for i in result.offer.items] == [0, 1, 2]

    async def test_draft_edit_history(self, offer_service, stocked_offer, mock_repository):
        offer = await stocked_offer(quantities=[1])

        request = OfferItemsUpdateRequestBuilder().set_quantity(offer.items[0].item_id, 2).build()
        await offer_service.update_items(offer.offer_id, request, changed_by="editor")

        row = mock_repository.history_of(offer.offer_id)[-1]
        assert row.event_type == HistoryEventType.UPDATED
        assert row.changed_by == "editor"


# =============================================================================
# Item edits on active offers
# =============================================================================


@pytest.mark.component
@pytest.mark.asyncio
class TestActiveItemEdits:
    """Reservations follow item edits while the offer holds them"""

    async def test_quantity_change_updates_reservation(
        self, offer_service, active_offer, mock_inventory, mock_event_bus
    ):
        offer = await active_offer(quantities=[2])
        item = offer.items[0]

        request = OfferItemsUpdateRequestBuilder().set_quantity(item.item_id, 6).build()
        result = await offer_service.update_items(offer.offer_id, request)

        assert [u.item_id for u in result.reconciliation.updated] == [item.item_id]
        assert mock_inventory.reservations[item.reservation_id].quantity == 6
        mock_event_bus.assert_event_published(
            "offer.reservations_updated", {"offer_id": offer.offer_id, "updated": 1}
        )

    async def test_deleted_item_releases_reservation(self, offer_service, active_offer, mock_inventory):
        offer = await active_offer(quantities=[2, 3])
        removed = offer.items[0]

        request = OfferItemsUpdateRequestBuilder().delete(removed.item_id).build()
        result = await offer_service.update_items(offer.offer_id, request)

        assert result.reconciliation.removed == [removed.item_id]
        assert removed.reservation_id not in mock_inventory.reservations
        assert len(mock_inventory.reservations_for(offer.offer_id)) == 1
        assert [i.item_id for i in result.offer.items] == [offer.items[1].item_id]

    async def test_added_item_is_reserved(self, offer_service, active_offer, mock_inventory, data_factory):
        offer = await active_offer(quantities=[1])
        addition = data_factory.make_product_item_request(quantity=4)
        mock_inventory.add_stock(addition.sku, 10, variant_id=addition.variant_id)

        request = OfferItemsUpdateRequestBuilder().add(addition).build()
        result = await offer_service.update_items(offer.offer_id, request)

        assert len(result.reconciliation.created) == 1
        assert mock_inventory.reserved_quantity(addition.sku) == 4
        new_item = next(i for i in result.offer.items if i.sku == addition.sku)
        assert new_item.reservation_id == result.reconciliation.created[0].reservation_id

    async def test_opting_out_of_inventory_releases(self, offer_service, active_offer, mock_inventory):
        offer = await active_offer(quantities=[2])
        item = offer.items[0]

        request = OfferItemsUpdateRequestBuilder().update(item.item_id, manage_inventory=False).build()
        result = await offer_service.update_items(offer.offer_id, request)

        assert [s.item_id for s in result.reconciliation.skipped] == [item.item_id]
        assert mock_inventory.reservations_for(offer.offer_id) == []
        assert result.offer.has_reservations is False

    async def test_title_change_skips_reconciliation(self, offer_service, active_offer, mock_inventory):
        offer = await active_offer(quantities=[2])
        mock_inventory.method_calls.clear()

        request = OfferItemsUpdateRequestBuilder().update(offer.items[0].item_id, title="Renamed").build()
        result = await offer_service.update_items(offer.offer_id, request)

        assert result.reconciliation is None
        assert mock_inventory.method_calls == []
        assert result.offer.items[0].title == "Renamed"

    async def test_reconcile_history(self, offer_service, active_offer, mock_repository):
        offer = await active_offer(quantities=[2])

        request = OfferItemsUpdateRequestBuilder().set_quantity(offer.items[0].item_id, 4).build()
        await offer_service.update_items(offer.offer_id, request)

        row = mock_repository.history_of(offer.offer_id)[-1]
        assert row.event_type == HistoryEventType.RESERVATION_UPDATE
        assert row.inventory_impact == "reservations_reconciled"
        assert row.metadata["updated"][0]["quantity"] == 4

    async def test_partial_failure_keeps_item_changes(self, offer_service, active_offer, mock_inventory):
        """Item rows change even when a reservation call fails; the failure is raised"""
        offer = await active_offer(quantities=[2, 3])
        first, second = offer.items
        mock_inventory.fail_on("update_reservation")

        request = (
            OfferItemsUpdateRequestBuilder()
            .set_quantity(first.item_id, 5)
            .delete(second.item_id)
            .build()
        )
        with pytest.raises(ReservationFailure) as exc_info:
            await offer_service.update_items(offer.offer_id, request)

        assert exc_info.value.result.removed == [second.item_id]
        current = await offer_service.get_offer(offer.offer_id)
        assert [i.item_id for i in current.items] == [first.item_id]
        assert current.items[0].quantity == 5
        assert current.total_amount == 5000


# =============================================================================
# Item edit validation
# =============================================================================


@pytest.mark.component
@pytest.mark.asyncio
class TestItemEditValidation:
    """Conflicting or foreign item ids are rejected before any change"""

    async def test_unknown_item(self, offer_service, stocked_offer, mock_repository):
        offer = await stocked_offer()
        mock_repository.method_calls.clear()

        with pytest.raises(OfferValidationError):
            await offer_service.update_items(
                offer.offer_id, OfferItemsUpdateRequestBuilder().delete("not-an-item").build()
            )

        assert mock_repository.calls("delete_item") == []

    async def test_update_and_delete_same_item(self, offer_service, stocked_offer):
        offer = await stocked_offer()
        item_id = offer.items[0].item_id

        with pytest.raises(OfferValidationError):
            await offer_service.update_items(
                offer.offer_id,
                OfferItemsUpdateRequestBuilder().delete(item_id).set_quantity(item_id, 2).build(),
            )

    async def test_duplicate_update(self, offer_service, stocked_offer):
        offer = await stocked_offer()
        item_id = offer.items[0].item_id

        with pytest.raises(OfferValidationError):
            await offer_service.update_items(
                offer.offer_id,
                OfferItemsUpdateRequestBuilder().set_quantity(item_id, 2).set_quantity(item_id, 3).build(),
            )

    async def test_completed_offer_not_editable(self, offer_service, active_offer):
        offer = await active_offer(quantities=[1], stocked=30)
        await offer_service.transition_status(offer.offer_id, OfferStatus.ACCEPTED)
        await offer_service.transition_status(offer.offer_id, OfferStatus.COMPLETED)

        with pytest.raises(OfferNotEditableError):
            await offer_service.update_items(
                offer.offer_id,
                OfferItemsUpdateRequestBuilder().set_quantity(offer.items[0].item_id, 2).build(),
            )


# =============================================================================
# Header management
# =============================================================================


@pytest.mark.component
@pytest.mark.asyncio
class TestOfferManagement:
    """Header updates, deletion, listing and statistics"""

    async def test_update_header(self, offer_service, stocked_offer, mock_repository):
        offer = await stocked_offer()

        updated = await offer_service.update_offer(
            offer.offer_id, OfferUpdateRequest(title="Renovation", customer_name="Erika")
        )

        assert updated.title == "Renovation"
        assert updated.customer_name == "Erika"
        assert mock_repository.history_of(offer.offer_id)[-1].metadata["fields"] == ["customer_name", "title"]

    async def test_update_cancelled_offer_rejected(self, offer_service, stocked_offer):
        offer = await stocked_offer()
        await offer_service.transition_status(offer.offer_id, OfferStatus.CANCELLED)

        with pytest.raises(OfferNotEditableError):
            await offer_service.update_offer(offer.offer_id, OfferUpdateRequest(title="Too late"))

    async def test_delete_draft(self, offer_service, stocked_offer):
        offer = await stocked_offer()

        assert await offer_service.delete_offer(offer.offer_id) is True
        with pytest.raises(OfferNotFoundError):
            await offer_service.get_offer(offer.offer_id)

    async def test_delete_active_rejected(self, offer_service, active_offer):
        offer = await active_offer()

        with pytest.raises(OfferNotEditableError):
            await offer_service.delete_offer(offer.offer_id)

    async def test_list_and_filter(self, offer_service, stocked_offer):
        draft = await stocked_offer()
        other = await stocked_offer()
        await offer_service.transition_status(other.offer_id, OfferStatus.ACTIVE)

        everything = await offer_service.list_offers()
        active = await offer_service.list_offers(OfferFilter(status=OfferStatus.ACTIVE))
        page = await offer_service.list_offers(OfferFilter(limit=1))

        assert everything.total_count == 2
        assert [o.offer_id for o in active.offers] == [other.offer_id]
        assert page.has_next is True
        assert len(page.offers) == 1
        assert draft.offer_id in {o.offer_id for o in everything.offers}

    async def test_statistics(self, offer_service, stocked_offer):
        first = await stocked_offer(quantities=[1])
        await stocked_offer(quantities=[2])
        await offer_service.transition_status(first.offer_id, OfferStatus.ACTIVE)

        stats = await offer_service.get_statistics()

        assert stats.total_offers == 2
        assert stats.offers_by_status == {"active": 1, "draft": 1}
        assert stats.total_value == 1000
        assert stats.average_value == 1000

    async def test_history_of_unknown_offer(self, offer_service):
        with pytest.raises(OfferNotFoundError):
            await offer_service.get_history("missing")


# =============================================================================
# Operator reservation entry points
# =============================================================================


@pytest.mark.component
@pytest.mark.asyncio
class TestReservationOperations:
    """reserve / release / audit / repair on demand"""

    async def test_reserve_requires_reserving_status(self, offer_service, stocked_offer):
        offer = await stocked_offer()

        with pytest.raises(OfferNotEditableError):
            await offer_service.reserve_inventory(offer.offer_id)

    async def test_re_reserve_active_offer(self, offer_service, active_offer, mock_inventory, mock_repository):
        offer = await active_offer(quantities=[2])
        mock_inventory.reservations.clear()

        result = await offer_service.reserve_inventory(offer.offer_id, changed_by="ops")

        assert len(result.reservations_created) == 1
        assert len(mock_inventory.reservations_for(offer.offer_id)) == 1
        assert mock_repository.history_of(offer.offer_id)[-1].event_type == HistoryEventType.RESERVATION

    async def test_manual_release(self, offer_service, active_offer, mock_inventory, mock_repository):
        offer = await active_offer(quantities=[2])

        result = await offer_service.release_reservations(offer.offer_id, reason="stock_recount")

        assert result.reservations_released == 1
        assert mock_inventory.reservations_for(offer.offer_id) == []
        row = mock_repository.history_of(offer.offer_id)[-1]
        assert row.event_type == HistoryEventType.RESERVATION_RELEASE
        assert row.event_description == "Inventory Released: stock_recount"

    async def test_audit_and_repair_through_service(self, offer_service, active_offer, mock_inventory):
        offer = await active_offer(quantities=[2])
        mock_inventory.reservations.clear()

        audit = await offer_service.audit_reservations(offer.offer_id)
        repair = await offer_service.repair_reservations(offer.offer_id)

        assert [d.item_id for d in audit.dangling] == [offer.items[0].item_id]
        assert repair.cleared_item_ids == [offer.items[0].item_id]
        assert (await offer_service.get_offer(offer.offer_id)).has_reservations is False

    @pytest.mark.parametrize("status", [OfferStatus.DRAFT, OfferStatus.CANCELLED])
    async def test_reconcile_requires_reserving_status(
        self, offer_service, stocked_offer, mock_inventory, mock_repository, status
    ):
        offer = await stocked_offer(quantities=[3])
        if status != OfferStatus.DRAFT:
            await offer_service.transition_status(offer.offer_id, status)
        item = offer.items[0]
        rows_before = len(mock_repository.history_of(offer.offer_id))
        changes = ReservationChangeSet(items_to_create=[
            ItemReservationSpec(item_id=item.item_id, variant_id=item.variant_id, sku=item.sku, quantity=3)
        ])

        with pytest.raises(OfferNotEditableError):
            await offer_service.reconcile_items(offer.offer_id, changes)

        assert mock_inventory.reservations_for(offer.offer_id) == []
        assert (await offer_service.get_offer(offer.offer_id)).has_reservations is False
        assert len(mock_repository.history_of(offer.offer_id)) == rows_before

    async def test_reconcile_writes_history(self, offer_service, active_offer, mock_inventory, mock_repository):
        offer = await active_offer(quantities=[2])
        item = offer.items[0]
        changes = ReservationChangeSet(items_to_update=[
            ItemReservationSpec(item_id=item.item_id, variant_id=item.variant_id, sku=item.sku, quantity=4)
        ])

        result = await offer_service.reconcile_items(offer.offer_id, changes, changed_by="ops")

        assert result.updated[0].quantity == 4
        row = mock_repository.history_of(offer.offer_id)[-1]
        assert row.event_type == HistoryEventType.RESERVATION_UPDATE
        assert row.changed_by == "ops"
        assert row.metadata["updated"][0]["item_id"] == item.item_id

    async def test_repair_writes_history_when_inconsistent(self, offer_service, active_offer, mock_inventory,
                                                          mock_repository):
        offer = await active_offer(quantities=[2])
        mock_inventory.reservations.clear()

        await offer_service.repair_reservations(offer.offer_id, changed_by="ops")

        row = mock_repository.history_of(offer.offer_id)[-1]
        assert row.event_type == HistoryEventType.RESERVATION_UPDATE
        assert row.inventory_impact == "reservations_repaired"
        assert row.metadata["cleared_item_ids"] == [offer.items[0].item_id]

    async def test_repair_of_consistent_offer_writes_nothing(self, offer_service, active_offer, mock_repository):
        offer = await active_offer(quantities=[2])
        rows_before = len(mock_repository.history_of(offer.offer_id))

        result = await offer_service.repair_reservations(offer.offer_id)

        assert result.cleared_item_ids == [] and result.deleted_reservation_ids == []
        assert len(mock_repository.history_of(offer.offer_id)) == rows_before
