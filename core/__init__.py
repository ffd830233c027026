#!/usr/bin/env python3
"""
Core Module for the Offer Service

Shared infrastructure components used by the offer microservice.

COMPONENTS:
    - config/: Environment-driven configuration dataclasses
    - logger.py: Service logger setup
    - nats_client.py: NATS event bus for event-driven architecture
    - postgres_client.py: asyncpg connection pool wrapper
    - service_client_base.py: Base class for HTTP clients to peer services

USAGE:
    from core.config import get_settings
    from core.logger import setup_service_logger

    settings = get_settings()
    logger = setup_service_logger("offer_service")
"""

__version__ = "1.0.0"
