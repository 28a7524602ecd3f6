"""Services package: event bus and logging setup."""

from .event_bus import EventBus, Events
from .logger import cleanup_logging, get_logger, setup_logging

__all__ = ["EventBus", "Events", "cleanup_logging", "get_logger", "setup_logging"]
