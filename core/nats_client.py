"""
NATS JetStream Client for Python Microservices
Provides event-driven communication between the offer service and its subscribers

This module wraps the nats-py client and its JetStream context.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

import nats
from nats.aio.client import Client as NATSClient
from nats.js import JetStreamContext

from core.config import InfraConfig


class DecimalEncoder(json.JSONEncoder):
    """Custom JSON encoder that handles Decimal and datetime types"""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Event types published by the offer service"""

    # Offer Events
    OFFER_CREATED = "offer.created"
    OFFER_STATUS_CHANGED = "offer.status_changed"
    OFFER_RESERVATIONS_UPDATED = "offer.reservations_updated"


class ServiceSource(Enum):
    """Service sources"""

    OFFER_SERVICE = "offer_service"


class Event:
    """Event model"""

    def __init__(
        self,
        event_type: EventType,
        source: ServiceSource,
        data: Dict[str, Any],
        subject: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        self.id = str(uuid.uuid4())
        self.type = event_type.value
        self.source = source.value
        self.data = data
        self.subject = subject
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.metadata = metadata or {}
        self.version = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "subject": self.subject,
            "timestamp": self.timestamp,
            "data": self.data,
            "metadata": self.metadata,
            "version": self.version,
        }


class NATSEventBus:
    """
    NATS JetStream event bus.

    Events are published on their type as subject (e.g. "offer.status_changed")
    into a single stream that captures "offer.>".
    """

    def __init__(
        self,
        service_name: str,
        config: Optional[InfraConfig] = None,
    ):
        """
        Initialize NATS Event Bus.

        Args:
            service_name: Name of the service publishing events
            config: Optional infrastructure config (defaults to environment)
        """
        self.service_name = service_name
        config = config or InfraConfig.from_env()

        self.url = config.resolved_nats_url
        self.stream_name = config.nats_stream

        self._client: Optional[NATSClient] = None
        self._jetstream: Optional[JetStreamContext] = None
        self._is_connected = False

        logger.info(f"NATS EventBus initialized: {self.url}")

    async def connect(self):
        """Connect to NATS and make sure the offer stream exists"""
        try:
            self._client = await nats.connect(servers=[self.url], name=self.service_name)
            self._jetstream = self._client.jetstream()
            self._is_connected = True
            logger.info(f"Connected to NATS as {self.service_name}")
        except Exception as e:
            logger.error(f"Failed to connect to NATS: {e}")
            raise

        try:
            await self._jetstream.add_stream(name=self.stream_name, subjects=["offer.>"])
        except Exception as e:
            logger.debug(f"Stream creation note: {e}")

    async def publish_event(self, event: Event) -> bool:
        """
        Publish an event to NATS JetStream.

        Returns False instead of raising when the bus is down, so callers can
        treat publishing as best-effort.
        """
        if not self._is_connected or not self._jetstream:
            logger.error("Not connected to NATS")
            return False

        try:
            data = json.dumps(event.to_dict(), cls=DecimalEncoder).encode()
            ack = await self._jetstream.publish(event.type, data)
            logger.info(f"Published event {event.type} [{event.id}] to stream {ack.stream}, seq={ack.seq}")
            return True
        except Exception as e:
            logger.error(f"Error publishing event {event.id}: {e}")
            return False

    async def close(self):
        """Drain and close the NATS connection"""
        if self._client:
            await self._client.drain()
            self._client = None
            self._jetstream = None

        self._is_connected = False
        logger.info("Disconnected from NATS")

    @property
    def is_connected(self) -> bool:
        """Check if connected to NATS"""
        return self._is_connected


# Singleton instance
_event_bus: Optional[NATSEventBus] = None


async def get_event_bus(
    service_name: str,
    config: Optional[InfraConfig] = None,
) -> NATSEventBus:
    """
    Get or create event bus instance.

    Args:
        service_name: Name of the service using the event bus
        config: Optional infrastructure config

    Returns:
        NATSEventBus instance
    """
    global _event_bus

    if _event_bus is None:
        _event_bus = NATSEventBus(service_name=service_name, config=config)
        await _event_bus.connect()

    return _event_bus
