#!/usr/bin/env python3
"""
Service logger setup

Configures the root logger once per process from LoggingConfig and returns
the named service logger. Modules keep using logging.getLogger(__name__).
"""
import logging
import sys
from typing import Optional

from core.config import LoggingConfig, get_logging_config

_configured = False


def setup_service_logger(service_name: str, config: Optional[LoggingConfig] = None) -> logging.Logger:
    """
    Configure logging for a service and return its logger.

    Args:
        service_name: Name used for the returned logger
        config: Logging configuration (defaults to the global one)

    Returns:
        Logger named after the service
    """
    global _configured

    config = config or get_logging_config()

    if not _configured:
        root = logging.getLogger()
        root.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
        formatter = logging.Formatter(config.log_format)

        if config.enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(formatter)
            root.addHandler(console_handler)

        if config.log_file:
            file_handler = logging.FileHandler(config.log_file)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

        _configured = True

    logger = logging.getLogger(service_name)
    logger.info(f"Logger initialized for {service_name} ({config.environment})")
    return logger
