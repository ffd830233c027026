"""
Offer Service Factory

Factory functions for creating service instances with real dependencies.
This is the ONLY place that imports I/O-dependent modules.

Usage:
    from .factory import create_offer_service
    service = create_offer_service(config, event_bus)
"""
from typing import Optional

from core.config import OfferServiceConfig, get_settings

from .offer_service import OfferService
from .protocols import EventBusProtocol, InventoryGatewayProtocol, OfferRepositoryProtocol


def create_inventory_gateway(config: Optional[OfferServiceConfig] = None) -> InventoryGatewayProtocol:
    """Inventory HTTP client, or the null gateway when tracking is disabled"""
    from .clients.inventory_client import InventoryClient, NullInventoryGateway

    config = config or get_settings()
    services = config.services
    if not services.inventory_enabled:
        return NullInventoryGateway()
    return InventoryClient(base_url=services.inventory_service_url, timeout=services.inventory_timeout)


def create_offer_service(
    config: Optional[OfferServiceConfig] = None,
    event_bus: Optional[EventBusProtocol] = None,
    repository: Optional[OfferRepositoryProtocol] = None,
    inventory: Optional[InventoryGatewayProtocol] = None,
) -> OfferService:
    """
    Create OfferService with real dependencies.

    This function imports the real repository (which has I/O dependencies).
    Use this in production, NOT in tests.

    Args:
        config: Service configuration (defaults to environment settings)
        event_bus: Event bus for publishing events
        repository: Repository override
        inventory: Inventory gateway override

    Returns:
        Configured OfferService instance
    """
    config = config or get_settings()

    if repository is None:
        # Import real repository here (not at module level)
        from core.postgres_client import PostgresClientWrapper
        from .offer_repository import OfferRepository

        repository = OfferRepository(
            PostgresClientWrapper(config.service_name, config=config.infrastructure)
        )

    return OfferService(
        repository=repository,
        inventory=inventory or create_inventory_gateway(config),
        event_bus=event_bus,
        settings=config.offers,
        notifications=config.notifications,
        sales_channel_id=config.services.sales_channel_id,
    )
