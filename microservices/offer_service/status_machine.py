"""
Offer status machine

Transition table, edge validation, and the inventory action and timestamp
changes implied by each edge.
"""

from datetime import datetime
from typing import Any, Dict, FrozenSet, Mapping

from .models import InventoryAction, OfferStatus
from .protocols import InvalidTransitionError, NoOpTransitionError

TRANSITIONS: Mapping[OfferStatus, FrozenSet[OfferStatus]] = {
    OfferStatus.DRAFT: frozenset({OfferStatus.ACTIVE, OfferStatus.CANCELLED}),
    OfferStatus.ACTIVE: frozenset({OfferStatus.ACCEPTED, OfferStatus.CANCELLED, OfferStatus.DRAFT}),
    OfferStatus.ACCEPTED: frozenset({OfferStatus.COMPLETED, OfferStatus.CANCELLED, OfferStatus.ACTIVE}),
    OfferStatus.COMPLETED: frozenset(),
    OfferStatus.CANCELLED: frozenset(),
}

# Targets that need every product item to be fulfillable from live stock
AVAILABILITY_GATED: FrozenSet[OfferStatus] = frozenset({OfferStatus.ACCEPTED, OfferStatus.COMPLETED})

# Statuses whose items may be edited
EDITABLE: FrozenSet[OfferStatus] = frozenset({OfferStatus.DRAFT, OfferStatus.ACTIVE, OfferStatus.ACCEPTED})

# Statuses in which reservations are expected to be held
RESERVING: FrozenSet[OfferStatus] = frozenset({OfferStatus.ACTIVE, OfferStatus.ACCEPTED})


def can_transition(current: OfferStatus, target: OfferStatus) -> bool:
    return target in TRANSITIONS[current]


def validate_transition(current: OfferStatus, target: OfferStatus) -> None:
    """Raise if the edge current -> target is not allowed"""
    if current == target:
        raise NoOpTransitionError(current)
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)


def requires_availability(target: OfferStatus) -> bool:
    return target in AVAILABILITY_GATED


def is_terminal(status: OfferStatus) -> bool:
    return not TRANSITIONS[status]


def inventory_action(current: OfferStatus, target: OfferStatus) -> InventoryAction:
    """Inventory side effect for a (validated) edge"""
    if target == OfferStatus.CANCELLED:
        return InventoryAction.RELEASE
    if current == OfferStatus.DRAFT and target == OfferStatus.ACTIVE:
        return InventoryAction.RESERVE
    if current == OfferStatus.ACTIVE and target == OfferStatus.DRAFT:
        return InventoryAction.RELEASE
    if current == OfferStatus.ACCEPTED and target == OfferStatus.COMPLETED:
        return InventoryAction.FULFILL
    if {current, target} == {OfferStatus.ACTIVE, OfferStatus.ACCEPTED}:
        return InventoryAction.MAINTAIN
    return InventoryAction.NONE


def timestamp_updates(current: OfferStatus, target: OfferStatus, now: datetime) -> Dict[str, Any]:
    """Offer timestamp fields to write for an edge"""
    updates: Dict[str, Any] = {}
    if target == OfferStatus.ACCEPTED:
        updates["accepted_at"] = now
    elif target == OfferStatus.COMPLETED:
        updates["completed_at"] = now
    elif target == OfferStatus.CANCELLED:
        updates["cancelled_at"] = now

    if current == OfferStatus.ACCEPTED and target == OfferStatus.ACTIVE:
        updates["accepted_at"] = None
    return updates
