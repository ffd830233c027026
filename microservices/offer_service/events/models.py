"""
Offer Service Event Models

Pydantic models for events published by offer service
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OfferCreatedEvent(BaseModel):
    """Event published when an offer is created"""
    offer_id: str
    offer_number: str
    status: str
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    total_amount: int = 0
    currency_code: str = "EUR"
    notify_customer: bool = False
    timestamp: datetime = Field(default_factory=_now)


class OfferStatusChangedEvent(BaseModel):
    """Event published after a committed status transition"""
    offer_id: str
    offer_number: str
    previous_status: str
    new_status: str
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    notify_customer: bool = False
    timestamp: datetime = Field(default_factory=_now)


class OfferReservationsUpdatedEvent(BaseModel):
    """Event published when item edits changed an offer's reservations"""
    offer_id: str
    offer_number: str
    removed: int = 0
    updated: int = 0
    created: int = 0
    timestamp: datetime = Field(default_factory=_now)
