"""
Offer Microservice

Responsibilities:
- Offer (quote) management and numbering
- Status lifecycle with inventory reservation side effects
- Live availability checks for offer items
- Reservation maintenance (reserve, release, audit, repair)
"""

from fastapi import FastAPI, HTTPException, Depends, Header, Query, Path, Body, Request, status
from fastapi.responses import JSONResponse
import uvicorn
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from core.config import get_settings
from core.logger import setup_service_logger
from core.nats_client import get_event_bus

from .factory import create_offer_service
from .models import (
    AvailabilityReport,
    ItemsUpdateResult,
    OfferCreateRequest,
    OfferFilter,
    OfferItemsUpdateRequest,
    OfferListResponse,
    OfferResponse,
    OfferServiceStatus,
    OfferStatistics,
    OfferStatus,
    OfferStatusHistory,
    OfferUpdateRequest,
    OfferWithInventory,
    ReconciliationResult,
    ReleaseRequest,
    ReleaseResult,
    RepairResult,
    ReservationAudit,
    ReservationChangeSet,
    ReservationResult,
    StatusTransitionRequest,
    TransitionResult,
)
from .offer_service import OfferService
from .protocols import (
    ExternalServiceUnavailableError,
    FulfillmentError,
    InsufficientInventoryError,
    InvalidTransitionError,
    NoOpTransitionError,
    OfferNotEditableError,
    OfferNotFoundError,
    OfferServiceError,
    OfferValidationError,
    ReservationFailure,
)

# Initialize configuration
config = get_settings()

# Setup loggers (use actual service name)
app_logger = setup_service_logger(config.service_name, config.logging)
logger = app_logger

# Domain error -> (HTTP status, error code)
ERROR_RESPONSES = {
    OfferNotFoundError: (status.HTTP_404_NOT_FOUND, "OFFER_NOT_FOUND"),
    OfferValidationError: (status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR"),
    InvalidTransitionError: (status.HTTP_409_CONFLICT, "INVALID_TRANSITION"),
    NoOpTransitionError: (status.HTTP_409_CONFLICT, "NO_OP_TRANSITION"),
    OfferNotEditableError: (status.HTTP_409_CONFLICT, "OFFER_NOT_EDITABLE"),
    InsufficientInventoryError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "INSUFFICIENT_INVENTORY"),
    ReservationFailure: (status.HTTP_502_BAD_GATEWAY, "RESERVATION_FAILED"),
    FulfillmentError: (status.HTTP_502_BAD_GATEWAY, "FULFILLMENT_FAILED"),
    ExternalServiceUnavailableError: (status.HTTP_503_SERVICE_UNAVAILABLE, "INVENTORY_UNAVAILABLE"),
}


def error_response_for(exc: OfferServiceError) -> Tuple[int, str]:
    for cls in type(exc).__mro__:
        if cls in ERROR_RESPONSES:
            return ERROR_RESPONSES[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "OFFER_SERVICE_ERROR"


def error_details(exc: OfferServiceError) -> Optional[dict]:
    if isinstance(exc, InsufficientInventoryError):
        return {"items": exc.items}
    if isinstance(exc, ReservationFailure):
        return {
            "failures": [f.model_dump() for f in exc.failures],
            "result": exc.result.model_dump(mode="json") if exc.result is not None else None,
        }
    if isinstance(exc, FulfillmentError):
        return {"applied_reductions": [r.model_dump() for r in exc.applied_reductions]}
    if isinstance(exc, InvalidTransitionError):
        return {"current_status": exc.current_status.value, "new_status": exc.new_status.value}
    if isinstance(exc, ExternalServiceUnavailableError):
        return {"service": exc.service}
    return None


class OfferMicroservice:
    """Offer microservice core class"""

    def __init__(self):
        self.offer_service: Optional[OfferService] = None
        self.event_bus = None

    async def initialize(self, event_bus=None):
        """Initialize the microservice"""
        try:
            self.event_bus = event_bus
            self.offer_service = create_offer_service(config=config, event_bus=event_bus)
            await self.offer_service.repository.ensure_schema()
            logger.info("Offer microservice initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize offer microservice: {e}")
            raise

    async def shutdown(self):
        """Shutdown the microservice"""
        try:
            if self.offer_service:
                inventory = self.offer_service.inventory
                if hasattr(inventory, "close"):
                    await inventory.close()
                db = getattr(self.offer_service.repository, "db", None)
                if db is not None:
                    await db.close()
            if self.event_bus:
                await self.event_bus.close()
                logger.info("Event bus closed")
            logger.info("Offer microservice shutdown completed")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")


# Global microservice instance
offer_microservice = OfferMicroservice()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    event_bus = None
    if config.infrastructure.nats_enabled:
        try:
            event_bus = await get_event_bus(config.service_name, config.infrastructure)
            logger.info("✅ Event bus initialized successfully")
        except Exception as e:
            logger.warning(f"⚠️  Failed to initialize event bus: {e}. Continuing without event publishing.")
            event_bus = None

    await offer_microservice.initialize(event_bus=event_bus)

    yield

    await offer_microservice.shutdown()


# Create FastAPI application
app = FastAPI(
    title="Offer Service",
    description="Offer lifecycle and inventory reservation microservice",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(OfferServiceError)
async def offer_service_error_handler(request: Request, exc: OfferServiceError):
    status_code, error_code = error_response_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error_code": error_code,
            "message": str(exc),
            "details": error_details(exc),
        },
    )


# Dependency injection
def get_offer_service() -> OfferService:
    """Get offer service instance"""
    if not offer_microservice.offer_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Offer service not initialized"
        )
    return offer_microservice.offer_service


# Health check endpoints
@app.get("/health")
async def health_check():
    """Service health check"""
    return {
        "status": "healthy",
        "service": config.service_name,
        "port": config.service_port,
        "version": "1.0.0",
        "inventory_enabled": config.services.inventory_enabled,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@app.get("/health/detailed", response_model=OfferServiceStatus)
async def detailed_health_check(
    offer_service: OfferService = Depends(get_offer_service)
):
    """Detailed health check with database and inventory connectivity"""
    health_data = await offer_service.health_check()
    return OfferServiceStatus(service=config.service_name, **health_data)


# Offer management endpoints

@app.post("/api/v1/offers", response_model=OfferResponse, status_code=status.HTTP_201_CREATED)
async def create_offer(
    request: OfferCreateRequest,
    x_user_id: Optional[str] = Header(None),
    offer_service: OfferService = Depends(get_offer_service)
):
    """Create a draft offer with items"""
    offer = await offer_service.create_offer_with_items(request, created_by=x_user_id)
    return OfferResponse(success=True, offer=offer, message=f"Offer {offer.offer_number} created")


@app.get("/api/v1/offers", response_model=OfferListResponse)
async def list_offers(
    offer_status: Optional[OfferStatus] = Query(None, alias="status", description="Filter by status"),
    customer_email: Optional[str] = Query(None, description="Filter by customer email"),
    search: Optional[str] = Query(None, description="Search title, number and customer"),
    has_reservations: Optional[bool] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    offer_service: OfferService = Depends(get_offer_service)
):
    """List offers with filtering and pagination"""
    filters = OfferFilter(
        status=offer_status,
        customer_email=customer_email,
        search=search,
        has_reservations=has_reservations,
        limit=limit,
        offset=offset,
    )
    return await offer_service.list_offers(filters)


@app.get("/api/v1/offers/stats", response_model=OfferStatistics)
async def get_offer_statistics(offer_service: OfferService = Depends(get_offer_service)):
    """Offer counts and values per status"""
    return await offer_service.get_statistics()


@app.get("/api/v1/offers/{offer_id}", response_model=OfferWithInventory)
async def get_offer(
    offer_id: str = Path(..., description="Offer ID"),
    offer_service: OfferService = Depends(get_offer_service)
):
    """Get offer details with live item availability"""
    return await offer_service.get_offer_with_inventory(offer_id)


@app.put("/api/v1/offers/{offer_id}", response_model=OfferResponse)
async def update_offer(
    offer_id: str = Path(..., description="Offer ID"),
    request: OfferUpdateRequest = Body(...),
    x_user_id: Optional[str] = Header(None),
    offer_service: OfferService = Depends(get_offer_service)
):
    """Update offer header fields"""
    offer = await offer_service.update_offer(offer_id, request, changed_by=x_user_id)
    return OfferResponse(success=True, offer=offer, message="Offer updated")


@app.delete("/api/v1/offers/{offer_id}")
async def delete_offer(
    offer_id: str = Path(..., description="Offer ID"),
    offer_service: OfferService = Depends(get_offer_service)
):
    """Delete a draft offer"""
    deleted = await offer_service.delete_offer(offer_id)
    return {"success": deleted, "message": "Offer deleted" if deleted else "Offer not deleted"}


@app.put("/api/v1/offers/{offer_id}/items", response_model=ItemsUpdateResult)
async def update_offer_items(
    offer_id: str = Path(..., description="Offer ID"),
    request: OfferItemsUpdateRequest = Body(...),
    x_user_id: Optional[str] = Header(None),
    offer_service: OfferService = Depends(get_offer_service)
):
    """Add, update and remove items; reservations follow once the offer is active"""
    return await offer_service.update_items(offer_id, request, changed_by=x_user_id)


@app.get("/api/v1/offers/{offer_id}/history", response_model=List[OfferStatusHistory])
async def get_offer_history(
    offer_id: str = Path(..., description="Offer ID"),
    offer_service: OfferService = Depends(get_offer_service)
):
    """Status history of an offer"""
    return await offer_service.get_history(offer_id)


# Lifecycle endpoints

@app.post("/api/v1/offers/{offer_id}/transition", response_model=TransitionResult)
async def transition_offer_status(
    offer_id: str = Path(..., description="Offer ID"),
    request: StatusTransitionRequest = Body(...),
    x_user_id: Optional[str] = Header(None),
    offer_service: OfferService = Depends(get_offer_service)
):
    """Move an offer to a new status"""
    return await offer_service.transition_status(
        offer_id,
        request.new_status,
        notes=request.notes,
        changed_by=request.changed_by or x_user_id,
    )


@app.get("/api/v1/offers/{offer_id}/availability", response_model=AvailabilityReport)
async def check_offer_availability(
    offer_id: str = Path(..., description="Offer ID"),
    offer_service: OfferService = Depends(get_offer_service)
):
    """Live availability of every item"""
    return await offer_service.check_availability(offer_id)


# Reservation endpoints

@app.post("/api/v1/offers/{offer_id}/reservations/reserve", response_model=ReservationResult)
async def reserve_offer_inventory(
    offer_id: str = Path(..., description="Offer ID"),
    x_user_id: Optional[str] = Header(None),
    offer_service: OfferService = Depends(get_offer_service)
):
    """Re-run reservation for an active or accepted offer"""
    return await offer_service.reserve_inventory(offer_id, changed_by=x_user_id)


@app.post("/api/v1/offers/{offer_id}/reservations/release", response_model=ReleaseResult)
async def release_offer_reservations(
    offer_id: str = Path(..., description="Offer ID"),
    request: Optional[ReleaseRequest] = Body(None),
    x_user_id: Optional[str] = Header(None),
    offer_service: OfferService = Depends(get_offer_service)
):
    """Release all reservations of an offer"""
    request = request or ReleaseRequest()
    return await offer_service.release_reservations(offer_id, reason=request.reason, changed_by=x_user_id)


@app.post("/api/v1/offers/{offer_id}/reservations/reconcile", response_model=ReconciliationResult)
async def reconcile_offer_reservations(
    offer_id: str = Path(..., description="Offer ID"),
    changes: ReservationChangeSet = Body(...),
    x_user_id: Optional[str] = Header(None),
    offer_service: OfferService = Depends(get_offer_service)
):
    """Reconcile reservations for an explicit change set"""
    return await offer_service.reconcile_items(offer_id, changes, changed_by=x_user_id)


@app.get("/api/v1/offers/{offer_id}/reservations/audit", response_model=ReservationAudit)
async def audit_offer_reservations(
    offer_id: str = Path(..., description="Offer ID"),
    offer_service: OfferService = Depends(get_offer_service)
):
    """Compare stored reservation ids with the inventory subsystem"""
    return await offer_service.audit_reservations(offer_id)


@app.post("/api/v1/offers/{offer_id}/reservations/repair", response_model=RepairResult)
async def repair_offer_reservations(
    offer_id: str = Path(..., description="Offer ID"),
    x_user_id: Optional[str] = Header(None),
    offer_service: OfferService = Depends(get_offer_service)
):
    """Clear dangling reservation ids and delete untracked reservations"""
    return await offer_service.repair_reservations(offer_id, changed_by=x_user_id)


if __name__ == "__main__":
    uvicorn.run(
        "microservices.offer_service.main:app",
        host=config.service_host,
        port=config.service_port,
        reload=config.debug,
        log_level=config.logging.log_level.lower()
    )
