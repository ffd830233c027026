#!/usr/bin/env python3
"""Offer service main configuration

Combines the infrastructure, peer service and logging sub-configs with the
offer-specific business settings (numbering, VAT, stock thresholds,
reservation lifetime, customer notifications).
"""
import os
from dataclasses import dataclass, field

from .infra_config import InfraConfig
from .logging_config import LoggingConfig
from .service_config import ServiceConfig


def _bool(val: str) -> bool:
    return val.lower() == "true"

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default


@dataclass
class NotificationSettings:
    """Which lifecycle events should notify the customer.

    The flag is forwarded on the published events; composing and sending
    the email is left to subscribers.
    """
    offer_created: bool = False
    offer_active: bool = True
    offer_accepted: bool = True
    offer_completed: bool = True
    offer_cancelled: bool = False

    def should_notify(self, status: str) -> bool:
        return bool(getattr(self, f"offer_{status}", False))

    @classmethod
    def from_env(cls) -> 'NotificationSettings':
        return cls(
            offer_created=_bool(os.getenv("NOTIFY_OFFER_CREATED", "false")),
            offer_active=_bool(os.getenv("NOTIFY_OFFER_ACTIVE", "true")),
            offer_accepted=_bool(os.getenv("NOTIFY_OFFER_ACCEPTED", "true")),
            offer_completed=_bool(os.getenv("NOTIFY_OFFER_COMPLETED", "true")),
            offer_cancelled=_bool(os.getenv("NOTIFY_OFFER_CANCELLED", "false")),
        )


@dataclass
class OfferSettings:
    """Business rules for offers"""
    number_prefix: str = "ANG"
    number_padding: int = 5
    default_currency: str = "EUR"
    vat_rate: int = 19
    low_stock_threshold: int = 5
    reservation_ttl_hours: int = 24

    @classmethod
    def from_env(cls) -> 'OfferSettings':
        return cls(
            number_prefix=os.getenv("OFFER_NUMBER_PREFIX", "ANG"),
            number_padding=_int(os.getenv("OFFER_NUMBER_PADDING", "5"), 5),
            default_currency=os.getenv("OFFER_DEFAULT_CURRENCY", "EUR"),
            vat_rate=_int(os.getenv("OFFER_VAT_RATE", "19"), 19),
            low_stock_threshold=_int(os.getenv("OFFER_LOW_STOCK_THRESHOLD", "5"), 5),
            reservation_ttl_hours=_int(os.getenv("OFFER_RESERVATION_TTL_HOURS", "24"), 24),
        )


@dataclass
class OfferServiceConfig:
    """Main configuration for the offer service"""

    service_name: str = "offer_service"
    service_host: str = "0.0.0.0"
    service_port: int = 8260
    debug: bool = False
    environment: str = "development"

    offers: OfferSettings = field(default_factory=OfferSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    infrastructure: InfraConfig = field(default_factory=InfraConfig)
    services: ServiceConfig = field(default_factory=ServiceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> 'OfferServiceConfig':
        """Load configuration from environment variables"""
        env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
        return cls(
            service_name=os.getenv("SERVICE_NAME", "offer_service"),
            service_host=os.getenv("SERVICE_HOST", "0.0.0.0"),
            service_port=_int(os.getenv("OFFER_SERVICE_PORT") or os.getenv("SERVICE_PORT", "8260"), 8260),
            debug=_bool(os.getenv("DEBUG", "false")),
            environment=env,
            offers=OfferSettings.from_env(),
            notifications=NotificationSettings.from_env(),
            infrastructure=InfraConfig.from_env(),
            services=ServiceConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )
