"""
Service logger setup

Configures stdlib logging once per process from LoggingConfig and returns
the service's named logger.

Usage:
    from core.logger import setup_service_logger

    app_logger = setup_service_logger("offer_service")
"""

import logging
import sys
from typing import Optional

from core.config import LoggingConfig

_configured = False


def setup_service_logger(service_name: str, config: Optional[LoggingConfig] = None) -> logging.Logger:
    """
    Configure root logging handlers and return the service logger.

    Args:
        service_name: Logger name for the service
        config: Logging config (defaults to environment)

    Returns:
        Logger named after the service
    """
    global _configured
    config = config or LoggingConfig.from_env()

    if not _configured:
        root = logging.getLogger()
        root.setLevel(config.log_level.upper())
        formatter = logging.Formatter(config.log_format)

        if config.enable_console:
            console = logging.StreamHandler(sys.stdout)
            console.setFormatter(formatter)
            root.addHandler(console)

        if config.log_file:
            file_handler = logging.FileHandler(config.log_file)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

        # httpx logs every request at INFO
        logging.getLogger("httpx").setLevel(logging.WARNING)
        _configured = True

    return logging.getLogger(service_name)
