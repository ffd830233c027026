"""
Component Test Layer Configuration (Layer 3)

Structure:
    tests/component/
    ├── offer/       Offer service component tests
    └── mocks/       Mock implementations (event bus, inventory)

Usage:
    pytest tests/component -v
    pytest tests/component/offer -v
"""
import os
import sys

import pytest

# Set testing environment BEFORE any imports
os.environ["ENV"] = "testing"
os.environ["ENVIRONMENT"] = "testing"
os.environ["NATS_ENABLED"] = "false"

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from tests.component.mocks import (
    MockEventBus,
    MockInventoryGateway,
)


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "component: marks tests as component tests"
    )


# =============================================================================
# Event Bus Mocks
# =============================================================================

@pytest.fixture
def mock_event_bus() -> MockEventBus:
    """Mock NATS event bus"""
    return MockEventBus()


# =============================================================================
# Inventory Mocks
# =============================================================================

@pytest.fixture
def mock_inventory() -> MockInventoryGateway:
    """In-memory inventory subsystem"""
    return MockInventoryGateway()


@pytest.fixture
def disabled_inventory() -> MockInventoryGateway:
    """Inventory gateway with tracking disabled"""
    return MockInventoryGateway(enabled=False)
