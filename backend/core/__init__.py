"""Core utilities for configuration, logging, storage clients and dependency health."""

from .access_policy import AccessPolicy
from .config import AppSettings, load_settings
from .firebase_client_manager import FirebaseClientManager
from .health import HealthState
from .logging_config import get_logger, setup_logging

__all__ = [
    "AccessPolicy",
    "AppSettings",
    "load_settings",
    "FirebaseClientManager",
    "HealthState",
    "get_logger",
    "setup_logging",
]
