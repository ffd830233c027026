"""
Offer Service Event Publishers

Functions to publish events from offer service. Publishing is best-effort:
failures, including events the bus refuses, are logged and reported
through the return value.
"""

import logging
from typing import Optional

from core.nats_client import Event, EventType, ServiceSource
from .models import (
    OfferCreatedEvent,
    OfferStatusChangedEvent,
    OfferReservationsUpdatedEvent,
)

logger = logging.getLogger(__name__)


async def publish_offer_created(
    event_bus,
    offer_id: str,
    offer_number: str,
    status: str,
    customer_email: Optional[str] = None,
    customer_name: Optional[str] = None,
    total_amount: int = 0,
    currency_code: str = "EUR",
    notify_customer: bool = False,
) -> bool:
    """Publish offer.created event"""
    if not event_bus:
        logger.warning("Event bus not available, skipping offer.created event")
        return False

    try:
        event_data = OfferCreatedEvent(
            offer_id=offer_id,
            offer_number=offer_number,
            status=status,
            customer_email=customer_email,
            customer_name=customer_name,
            total_amount=total_amount,
            currency_code=currency_code,
            notify_customer=notify_customer,
        )

        event = Event(
            event_type=EventType.OFFER_CREATED,
            source=ServiceSource.OFFER_SERVICE,
            data=event_data.model_dump(mode='json')
        )

        if not await event_bus.publish_event(event):
            logger.error(f"❌ Event bus rejected offer.created event for offer {offer_number}")
            return False

        logger.info(f"✅ Published offer.created event for offer {offer_number}")
        return True

    except Exception as e:
        logger.error(f"❌ Failed to publish offer.created event: {e}")
        return False


async def publish_offer_status_changed(
    event_bus,
    offer_id: str,
    offer_number: str,
    previous_status: str,
    new_status: str,
    customer_email: Optional[str] = None,
    customer_name: Optional[str] = None,
    notify_customer: bool = False,
) -> bool:
    """Publish offer.status_changed event"""
    if not event_bus:
        logger.warning("Event bus not available, skipping offer.status_changed event")
        return False

    try:
        event_data = OfferStatusChangedEvent(
            offer_id=offer_id,
            offer_number=offer_number,
            previous_status=previous_status,
            new_status=new_status,
            customer_email=customer_email,
            customer_name=customer_name,
            notify_customer=notify_customer,
        )

        event = Event(
            event_type=EventType.OFFER_STATUS_CHANGED,
            source=ServiceSource.OFFER_SERVICE,
            data=event_data.model_dump(mode='json')
        )

        if not await event_bus.publish_event(event):
            logger.error(f"❌ Event bus rejected offer.status_changed event for offer {offer_number}")
            return False

        logger.info(f"✅ Published offer.status_changed event for offer {offer_number}: {previous_status} -> {new_status}")
        return True

    except Exception as e:
        logger.error(f"❌ Failed to publish offer.status_changed event: {e}")
        return False


async def publish_offer_reservations_updated(
    event_bus,
    offer_id: str,
    offer_number: str,
    removed: int = 0,
    updated: int = 0,
    created: int = 0,
) -> bool:
    """Publish offer.reservations_updated event"""
    if not event_bus:
        logger.warning("Event bus not available, skipping offer.reservations_updated event")
        return False

    try:
        event_data = OfferReservationsUpdatedEvent(
            offer_id=offer_id,
            offer_number=offer_number,
            removed=removed,
            updated=updated,
            created=created,
        )

        event = Event(
            event_type=EventType.OFFER_RESERVATIONS_UPDATED,
            source=ServiceSource.OFFER_SERVICE,
            data=event_data.model_dump(mode='json')
        )

        if not await event_bus.publish_event(event):
            logger.error(f"❌ Event bus rejected offer.reservations_updated event for offer {offer_number}")
            return False

        logger.info(f"✅ Published offer.reservations_updated event for offer {offer_number}")
        return True

    except Exception as e:
        logger.error(f"❌ Failed to publish offer.reservations_updated event: {e}")
        return False
