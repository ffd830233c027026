"""
Component Test Mocks

Shared mock implementations for component testing.
These mocks replace real I/O dependencies (NATS, inventory service).
"""

from .nats_mock import MockEventBus
from .inventory_mock import MockInventoryGateway

__all__ = [
    'MockEventBus',
    'MockInventoryGateway',
]
