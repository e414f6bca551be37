"""
sockstun Core Module

Configuration, settings, and logging.
"""

from .config import (
    Settings,
    ProxySettings,
    LogSettings,
    get_settings,
)
from .logging import setup_logging, get_logger

__all__ = [
    # Settings
    "Settings",
    "ProxySettings",
    "LogSettings",
    "get_settings",
    # Logging
    "setup_logging",
    "get_logger",
]
