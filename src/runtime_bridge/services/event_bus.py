"""
Event Bus Service - synchronous delivery with deadlock prevention

Key behaviors (tested in tests/test_services/test_event_bus.py):
- Callbacks run synchronously in publish order, on the publisher's thread
- No locks held during callback execution (a subscriber may query bridge state)
- Callback ID tracking for proper unsubscribe and duplicate prevention
- A failing callback is logged and isolated
"""

import logging
import threading
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class Events(Enum):
    """Events published by the runtime bridge"""

    CONNECTION_STATE_CHANGED = "runtime.connection_state_changed"
    NAVIGATION_OCCURRED = "runtime.navigation_occurred"


class EventBus:
    """
    Thread-safe, synchronous event bus.

    Subscribers receive {"name": event.value, "data": data}.
    """

    def __init__(self):
        # Subscribers stored as (callback_id, callback) tuples
        self._subscribers: dict[Events, list[tuple[int, Callable]]] = {}

        # Lock only for subscription management, not during callback execution
        self._sub_lock = threading.RLock()

        self._stats = {
            "events_published": 0,
            "events_processed": 0,
            "errors": 0,
        }

    def subscribe(self, event: Events, callback: Callable):
        """
        Subscribe to an event.

        Args:
            event: Event to subscribe to
            callback: Callback function, held strongly until unsubscribed
        """
        with self._sub_lock:
            entries = self._subscribers.setdefault(event, [])
            cb_id = self._callback_id(callback)

            # Skip if already subscribed (prevent duplicates)
            if any(existing_id == cb_id for existing_id, _ in entries):
                logger.debug(f"Already subscribed to {event.value}, skipping duplicate")
                return

            entries.append((cb_id, callback))
            logger.debug(f"Subscribed to {event.value}")

    def unsubscribe(self, event: Events, callback: Callable):
        """Unsubscribe from an event using callback ID matching."""
        with self._sub_lock:
            if event not in self._subscribers:
                logger.debug(f"No subscribers for {event.value}, nothing to unsubscribe")
                return

            cb_id = self._callback_id(callback)
            self._subscribers[event] = [
                (cid, cb) for cid, cb in self._subscribers[event] if cid != cb_id
            ]
            if not self._subscribers[event]:
                self._subscribers.pop(event, None)
            logger.debug(f"Unsubscribed from {event.value}")

    def publish(self, event: Events, data: Any = None):
        """
        Deliver an event to all subscribers before returning.

        CRITICAL: Lock released before callback execution to prevent deadlocks.
        """
        with self._sub_lock:
            self._stats["events_published"] += 1
            callbacks_to_call = [cb for _, cb in self._subscribers.get(event, [])]

        for callback in callbacks_to_call:
            try:
                callback({"name": event.value, "data": data})
                self._stats["events_processed"] += 1
            except Exception as e:
                self._stats["errors"] += 1
                logger.error(f"Error in callback for {event.value}: {e}", exc_info=True)

    @staticmethod
    def _callback_id(callback: Callable) -> int:
        # Bound methods are recreated on every attribute access; key on (obj, func)
        if hasattr(callback, "__self__") and hasattr(callback, "__func__"):
            return hash((id(callback.__self__), id(callback.__func__)))
        return id(callback)

    def get_stats(self) -> dict[str, Any]:
        """Get event bus statistics including processing counters."""
        with self._sub_lock:
            stats = {
                "subscriber_count": sum(len(entries) for entries in self._subscribers.values()),
                "event_types": len(self._subscribers),
            }
            stats.update(self._stats)
            return stats

