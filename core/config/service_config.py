#!/usr/bin/env python3
"""Service configuration for peer services

External service dependencies the offer service calls over HTTP.
Currently only the inventory service.
"""
import os
from dataclasses import dataclass
from typing import Optional

def _bool(val: str) -> bool:
    return val.lower() == "true"

def _float(val: str, default: float) -> float:
    try:
        return float(val) if val else default
    except ValueError:
        return default


@dataclass
class ServiceConfig:
    """Peer service endpoints"""

    # ===========================================
    # Inventory service
    # ===========================================
    inventory_enabled: bool = True
    inventory_service_url: str = "http://localhost:8252"
    inventory_timeout: float = 10.0

    # Sales channel used for live availability lookups
    sales_channel_id: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'ServiceConfig':
        """Load service configuration from environment variables"""
        return cls(
            inventory_enabled=_bool(os.getenv("INVENTORY_ENABLED", "true")),
            inventory_service_url=os.getenv("INVENTORY_SERVICE_URL", "http://localhost:8252"),
            inventory_timeout=_float(os.getenv("INVENTORY_TIMEOUT", "10"), 10.0),
            sales_channel_id=os.getenv("SALES_CHANNEL_ID") or None,
        )
