"""
Relay configuration: settings and logging.
"""

from collab_relay.config.settings import Settings, get_settings, settings
from collab_relay.config.logging import get_logger, setup_logging

__all__ = [
    "Settings",
    "get_settings",
    "settings",
    "get_logger",
    "setup_logging",
]
