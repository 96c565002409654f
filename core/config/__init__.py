#!/usr/bin/env python3
"""Modular configuration system for the order service

Configuration hierarchy:
- infra_config: Infrastructure endpoints (PostgreSQL, NATS)
- order_config: Order service identity, peer services, lifecycle tuning
- logging_config: Logging configuration
"""
import os
from dotenv import load_dotenv
from .logging_config import LoggingConfig
from .infra_config import InfraConfig
from .order_config import OrderServiceConfig

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

# Create global settings instances
settings = OrderServiceConfig.from_env()
infra_settings = InfraConfig.from_env()
logging_settings = LoggingConfig.from_env()

def get_settings() -> OrderServiceConfig:
    """Get global order service settings"""
    return settings

def get_infra_config() -> InfraConfig:
    """Get global infrastructure settings"""
    return infra_settings

def get_logging_config() -> LoggingConfig:
    """Get global logging settings"""
    return logging_settings

def reload_settings() -> OrderServiceConfig:
    """Reload settings from environment"""
    global settings, infra_settings, logging_settings
    settings = OrderServiceConfig.from_env()
    infra_settings = InfraConfig.from_env()
    logging_settings = LoggingConfig.from_env()
    return settings

__all__ = [
    # Main config
    'OrderServiceConfig',
    'get_settings',
    'reload_settings',
    'settings',
    # Sub-configs
    'LoggingConfig',
    'InfraConfig',
    'get_infra_config',
    'get_logging_config',
]
