"""
Offer Service Data Models

Pydantic models for offers, line items, status history, inventory
reservations and the results of lifecycle operations.

All money values are integers in minor currency units (cents).
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class OfferStatus(str, Enum):
    """Offer lifecycle status"""
    DRAFT = "draft"
    ACTIVE = "active"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ItemType(str, Enum):
    """Line item type"""
    PRODUCT = "product"
    SERVICE = "service"


class HistoryEventType(str, Enum):
    """Kinds of audit records written to the status history"""
    CREATED = "created"
    STATUS_CHANGE = "status_change"
    UPDATED = "updated"
    RESERVATION = "reservation"
    RESERVATION_UPDATE = "reservation_update"
    RESERVATION_RELEASE = "reservation_release"
    FULFILLMENT = "fulfillment"


class InventoryAction(str, Enum):
    """Inventory side effect implied by a status transition"""
    RESERVE = "reserve"
    RELEASE = "release"
    FULFILL = "fulfill"
    MAINTAIN = "maintain"
    NONE = "none"


class StockStatus(str, Enum):
    """Per-item availability classification"""
    SERVICE = "service"
    NO_VARIANT = "no_variant"
    OUT_OF_STOCK = "out_of_stock"
    INSUFFICIENT = "insufficient"
    LOW_STOCK = "low_stock"
    AVAILABLE = "available"


class ReservationStatus(str, Enum):
    """Outcome of a reserve pass"""
    RESERVED = "reserved"
    PARTIAL = "partial"
    NONE = "none"


class SkipReason(str, Enum):
    """Why an item did not get a reservation"""
    SERVICE_ITEM = "service_item"
    MANAGE_INVENTORY_DISABLED = "manage_inventory_disabled"
    MISSING_SKU = "missing_sku"
    SKU_NOT_FOUND = "sku_not_found"
    NO_INVENTORY_LEVELS = "no_inventory_levels"


# Core Offer Models

class OfferItem(BaseModel):
    """Offer line item"""
    item_id: str
    offer_id: str
    item_type: ItemType = ItemType.PRODUCT
    product_id: Optional[str] = None
    variant_id: Optional[str] = None
    service_id: Optional[str] = None
    sku: Optional[str] = None
    title: str
    description: Optional[str] = None
    variant_title: Optional[str] = None
    quantity: int = Field(..., gt=0)
    unit: str = "STK"
    unit_price: int = Field(..., ge=0)
    discount_percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    discount_amount: int = Field(default=0, ge=0)
    tax_rate: int = 19
    total_price: int = 0
    manage_inventory: bool = True
    reservation_id: Optional[str] = None
    sort_order: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_product(self) -> bool:
        return self.item_type == ItemType.PRODUCT

    @property
    def skip_reason(self) -> Optional[SkipReason]:
        """Reason this item never gets a reservation, or None if it can"""
        if not self.is_product:
            return SkipReason.SERVICE_ITEM
        if not self.manage_inventory:
            return SkipReason.MANAGE_INVENTORY_DISABLED
        if not self.sku:
            return SkipReason.MISSING_SKU
        return None

    @property
    def is_reservable(self) -> bool:
        return self.skip_reason is None


class Offer(BaseModel):
    """Core offer model"""
    offer_id: str
    sequence_number: int
    offer_number: str
    title: str
    description: Optional[str] = None
    status: OfferStatus = OfferStatus.DRAFT
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[Dict[str, Any]] = None
    currency_code: str = "EUR"
    subtotal: int = 0
    tax_amount: int = 0
    discount_amount: int = 0
    total_amount: int = 0
    valid_until: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    has_reservations: bool = False
    reservation_expires_at: Optional[datetime] = None
    internal_notes: Optional[str] = None
    customer_notes: Optional[str] = None
    created_by: Optional[str] = None
    assigned_to: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OfferItem] = []

    def get_item(self, item_id: str) -> Optional[OfferItem]:
        for item in self.items:
            if item.item_id == item_id:
                return item
        return None


class OfferStatusHistory(BaseModel):
    """Append-only audit record"""
    history_id: str
    offer_id: str
    previous_status: Optional[OfferStatus] = None
    new_status: OfferStatus
    event_type: HistoryEventType
    event_description: Optional[str] = None
    changed_by: Optional[str] = None
    system_change: bool = False
    inventory_impact: Optional[str] = None
    metadata: Dict[str, Any] = {}
    created_at: Optional[datetime] = None


# Inventory Models

class ReservationTag(BaseModel):
    """Metadata attached to every reservation the offer service creates.

    The tag lets reservations be found again by offer when the stored
    reservation_id on an item is stale or lost.
    """
    type: Literal["offer"] = "offer"
    offer_id: str
    offer_item_id: str
    variant_id: Optional[str] = None
    sku: Optional[str] = None
    offer_number: Optional[str] = None

    def to_metadata(self) -> Dict[str, Any]:
        return self.model_dump()

    @classmethod
    def from_metadata(cls, metadata: Optional[Dict[str, Any]]) -> Optional["ReservationTag"]:
        if not metadata or metadata.get("type") != "offer":
            return None
        if not metadata.get("offer_id") or not metadata.get("offer_item_id"):
            return None
        return cls(
            offer_id=metadata["offer_id"],
            offer_item_id=metadata["offer_item_id"],
            variant_id=metadata.get("variant_id"),
            sku=metadata.get("sku"),
            offer_number=metadata.get("offer_number"),
        )


class InventoryLevel(BaseModel):
    """Stock of one inventory item at one location"""
    inventory_item_id: str
    location_id: str
    stocked_quantity: int = 0
    reserved_quantity: int = 0

    @property
    def available_quantity(self) -> int:
        return self.stocked_quantity - self.reserved_quantity


class InventoryItemRecord(BaseModel):
    """Inventory item resolved from a SKU"""
    id: str
    sku: Optional[str] = None
    title: Optional[str] = None


class ReservationRecord(BaseModel):
    """Reservation as held by the inventory subsystem"""
    id: str
    inventory_item_id: str
    location_id: str
    quantity: int
    allow_backorder: bool = True
    description: Optional[str] = None
    tag: Optional[ReservationTag] = None


class ReservationCreate(BaseModel):
    """Payload for creating a reservation"""
    inventory_item_id: str
    location_id: str
    quantity: int = Field(..., gt=0)
    allow_backorder: bool = True
    description: Optional[str] = None
    tag: ReservationTag


# Availability Models

class ItemAvailability(BaseModel):
    """Availability of one line item"""
    item_id: str
    title: str
    item_type: ItemType
    variant_id: Optional[str] = None
    sku: Optional[str] = None
    required_quantity: int
    available_quantity: Optional[int] = None
    stock_status: StockStatus
    can_fulfill: bool
    error: Optional[str] = None

    @property
    def is_blocking(self) -> bool:
        return self.stock_status in (StockStatus.OUT_OF_STOCK, StockStatus.INSUFFICIENT)


class AvailabilityReport(BaseModel):
    """Availability of every item on an offer"""
    offer_id: str
    items: List[ItemAvailability] = []
    can_complete: bool = True
    has_out_of_stock: bool = False
    has_low_stock: bool = False
    inventory_tracking: bool = True
    checked_at: datetime

    @property
    def blocking_items(self) -> List[ItemAvailability]:
        return [item for item in self.items if item.is_blocking]


# Totals Models

class ItemTotals(BaseModel):
    item_id: str
    gross: int
    discount: int
    net: int


class OfferTotals(BaseModel):
    """Recomputed money fields for an offer"""
    subtotal: int
    tax_amount: int
    discount_amount: int
    total_amount: int
    items: List[ItemTotals] = []


# Reservation Operation Models

class SkippedItem(BaseModel):
    item_id: str
    reason: SkipReason


class ReservedItem(BaseModel):
    item_id: str
    reservation_id: str
    inventory_item_id: Optional[str] = None
    location_id: Optional[str] = None
    quantity: int


class ReservationFailureDetail(BaseModel):
    """One failed per-item reservation operation"""
    item_id: str
    operation: str
    reason: str


class ReservationResult(BaseModel):
    """Result of reserving inventory for an offer"""
    offer_id: str
    reservations_created: List[ReservedItem] = []
    reservations_cleared: int = 0
    items_skipped: List[SkippedItem] = []
    status: ReservationStatus = ReservationStatus.NONE
    expires_at: Optional[datetime] = None


class ItemReservationSpec(BaseModel):
    """Reservation-relevant fields of an item in a change set"""
    item_id: str
    variant_id: Optional[str] = None
    sku: Optional[str] = None
    quantity: int = Field(..., gt=0)


class ReservationChangeSet(BaseModel):
    """Item changes whose reservations must be reconciled"""
    items_to_delete: List[str] = []
    items_to_update: List[ItemReservationSpec] = []
    items_to_create: List[ItemReservationSpec] = []

    @property
    def is_empty(self) -> bool:
        return not (self.items_to_delete or self.items_to_update or self.items_to_create)


class ReconciliationResult(BaseModel):
    """Result of reconciling reservations after item changes"""
    offer_id: str
    removed: List[str] = []
    updated: List[ReservedItem] = []
    created: List[ReservedItem] = []
    skipped: List[SkippedItem] = []
    failures: List[ReservationFailureDetail] = []


class ReleaseResult(BaseModel):
    """Result of releasing an offer's reservations"""
    offer_id: str
    reservations_released: int = 0
    already_released: int = 0
    items_cleared: int = 0
    errors: List[ReservationFailureDetail] = []


class StockReduction(BaseModel):
    """A permanent stock decrement at one location"""
    item_id: str
    inventory_item_id: str
    location_id: str
    quantity: int
    previous_stocked: int
    new_stocked: int


class FulfillmentResult(BaseModel):
    """Result of converting reservations into stock deductions"""
    offer_id: str
    items_reduced: int = 0
    total_quantity_reduced: int = 0
    reductions: List[StockReduction] = []
    items_skipped: List[SkippedItem] = []
    reservations_released: int = 0


class DanglingReservation(BaseModel):
    item_id: str
    reservation_id: str


class ReservationAudit(BaseModel):
    """Consistency between stored reservation ids and the inventory subsystem"""
    offer_id: str
    dangling: List[DanglingReservation] = []
    untracked: List[str] = []

    @property
    def consistent(self) -> bool:
        return not self.dangling and not self.untracked


class RepairResult(BaseModel):
    offer_id: str
    cleared_item_ids: List[str] = []
    deleted_reservation_ids: List[str] = []


# Request Models

class OfferItemCreateRequest(BaseModel):
    """Line item payload for creating or adding items"""
    item_type: ItemType = Field(default=ItemType.PRODUCT, description="product or service")
    product_id: Optional[str] = None
    variant_id: Optional[str] = None
    service_id: Optional[str] = None
    sku: Optional[str] = None
    title: str = Field(..., min_length=1, description="Item title")
    description: Optional[str] = None
    variant_title: Optional[str] = None
    quantity: int = Field(..., gt=0, description="Quantity")
    unit: str = Field(default="STK")
    unit_price: int = Field(..., ge=0, description="Unit price in minor units, tax inclusive")
    discount_percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    discount_amount: int = Field(default=0, ge=0)
    tax_rate: int = Field(default=19, ge=0)
    manage_inventory: bool = Field(default=True, description="Reserve stock for this item")
    sort_order: Optional[int] = None

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        if not v.strip():
            raise ValueError('Title must not be blank')
        return v.strip()


class OfferCreateRequest(BaseModel):
    """Create offer request"""
    title: str = Field(..., min_length=1, description="Offer title")
    description: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[Dict[str, Any]] = None
    currency_code: Optional[str] = Field(None, description="Defaults to the configured currency")
    valid_until: Optional[datetime] = None
    internal_notes: Optional[str] = None
    customer_notes: Optional[str] = None
    assigned_to: Optional[str] = None
    items: List[OfferItemCreateRequest] = Field(default=[], description="Initial line items")


class OfferUpdateRequest(BaseModel):
    """Update offer header fields"""
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[Dict[str, Any]] = None
    valid_until: Optional[datetime] = None
    internal_notes: Optional[str] = None
    customer_notes: Optional[str] = None
    assigned_to: Optional[str] = None

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        # Omit the field to leave the title unchanged
        if v is None:
            raise ValueError('Title cannot be null')
        if not v.strip():
            raise ValueError('Title must not be blank')
        return v.strip()


class OfferItemUpdateRequest(BaseModel):
    """Partial update of an existing line item"""
    item_id: str
    variant_id: Optional[str] = None
    sku: Optional[str] = None
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    variant_title: Optional[str] = None
    quantity: Optional[int] = Field(None, gt=0)
    unit: Optional[str] = None
    unit_price: Optional[int] = Field(None, ge=0)
    discount_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    discount_amount: Optional[int] = Field(None, ge=0)
    manage_inventory: Optional[bool] = None
    sort_order: Optional[int] = None

    @field_validator(
        'title', 'quantity', 'unit', 'unit_price', 'discount_percentage',
        'discount_amount', 'manage_inventory', 'sort_order',
    )
    @classmethod
    def reject_null(cls, v, info):
        if v is None:
            raise ValueError(f'{info.field_name} cannot be null')
        return v


class OfferItemsUpdateRequest(BaseModel):
    """Batch item edit: deletions, partial updates and additions"""
    items_to_delete: List[str] = []
    items_to_update: List[OfferItemUpdateRequest] = []
    items_to_add: List[OfferItemCreateRequest] = []


class StatusTransitionRequest(BaseModel):
    """Move an offer to a new status"""
    new_status: OfferStatus
    notes: Optional[str] = None
    changed_by: Optional[str] = None


class ReleaseRequest(BaseModel):
    reason: str = Field(default="manual_release")


# Filter and Query Models

class OfferFilter(BaseModel):
    """Offer filtering parameters"""
    status: Optional[OfferStatus] = None
    customer_email: Optional[str] = None
    search: Optional[str] = None
    has_reservations: Optional[bool] = None
    limit: int = Field(default=50, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


class OfferStatistics(BaseModel):
    """Offer statistics model"""
    total_offers: int = 0
    offers_by_status: Dict[str, int] = {}
    value_by_status: Dict[str, int] = {}
    total_value: int = 0
    average_value: int = 0


class OfferServiceStatus(BaseModel):
    """Detailed health of the service and its dependencies"""
    service: str = "offer_service"
    status: str
    database_connected: bool
    inventory: str
    timestamp: datetime


# Response Models

class OfferResponse(BaseModel):
    """Offer response model"""
    success: bool
    offer: Optional[Offer] = None
    message: str
    error_code: Optional[str] = None


class OfferListResponse(BaseModel):
    """Offer list response"""
    offers: List[Offer]
    total_count: int
    limit: int
    offset: int
    has_next: bool


class TransitionResult(BaseModel):
    """Outcome of a committed status transition"""
    offer: Offer
    previous_status: OfferStatus
    new_status: OfferStatus
    inventory_action: InventoryAction
    reservation: Optional[ReservationResult] = None
    release: Optional[ReleaseResult] = None
    fulfillment: Optional[FulfillmentResult] = None


class ItemsUpdateResult(BaseModel):
    """Outcome of an item edit"""
    offer: Offer
    reconciliation: Optional[ReconciliationResult] = None


class OfferWithInventory(BaseModel):
    """Offer together with live availability of its items"""
    offer: Offer
    availability: AvailabilityReport

