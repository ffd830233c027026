"""
Offer Service Clients

HTTP clients for the peer services the offer service depends on.
"""

from .inventory_client import InventoryClient, NullInventoryGateway

__all__ = ["InventoryClient", "NullInventoryGateway"]
