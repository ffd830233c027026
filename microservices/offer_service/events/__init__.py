"""
Offer Service Events Module

Exports all event-related functionality for offer service
"""

from .models import (
    OfferCreatedEvent,
    OfferStatusChangedEvent,
    OfferReservationsUpdatedEvent,
)

from .publishers import (
    publish_offer_created,
    publish_offer_status_changed,
    publish_offer_reservations_updated,
)

__all__ = [
    # Event Models
    "OfferCreatedEvent",
    "OfferStatusChangedEvent",
    "OfferReservationsUpdatedEvent",
    # Publishers
    "publish_offer_created",
    "publish_offer_status_changed",
    "publish_offer_reservations_updated",
]
