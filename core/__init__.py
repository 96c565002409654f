#!/usr/bin/env python3
"""
Core Module for the Order Service

Shared infrastructure components.

COMPONENTS:
    - config/: Environment-driven configuration (dotenv + dataclasses)
    - logger.py: Service logger setup
    - nats_client.py: NATS JetStream event bus for event-driven architecture

USAGE:
    from core.config import get_settings
    from core.nats_client import get_event_bus

    settings = get_settings()
    event_bus = await get_event_bus(settings.service_name)
"""

__version__ = "2.0.0"
