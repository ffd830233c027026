#!/usr/bin/env python3
"""Modular configuration system for the offer service

Configuration hierarchy:
- infra_config: Infrastructure services (PostgreSQL, NATS)
- service_config: Peer services (inventory)
- logging_config: Logging configuration
- offer_config: Offer business settings and notification flags
"""
import os
from dotenv import load_dotenv
from .logging_config import LoggingConfig
from .infra_config import InfraConfig
from .service_config import ServiceConfig
from .offer_config import (
    OfferServiceConfig,
    OfferSettings,
    NotificationSettings,
)

# Load environment file based on ENV
env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
env_files = {
    "development": "deployment/environments/dev.env",
    "dev": "deployment/environments/dev.env",
    "testing": "deployment/environments/test.env",
    "test": "deployment/environments/test.env",
    "staging": "deployment/environments/staging.env",
    "production": "deployment/environments/production.env",
}
env_file = env_files.get(env, "deployment/environments/dev.env")
load_dotenv(env_file, override=False)

# Create global settings instance
settings = OfferServiceConfig.from_env()

def get_settings() -> OfferServiceConfig:
    """Get global settings instance"""
    return settings

def reload_settings() -> OfferServiceConfig:
    """Reload settings from environment"""
    global settings
    settings = OfferServiceConfig.from_env()
    return settings

__all__ = [
    # Main config
    'OfferServiceConfig',
    'get_settings',
    'reload_settings',
    'settings',
    # Sub-configs
    'LoggingConfig',
    'InfraConfig',
    'ServiceConfig',
    'OfferSettings',
    'NotificationSettings',
]
