"""
Navigation Tracker

Keeps the best-effort LastKnownUrl and republishes Page.frameNavigated as
NAVIGATION_OCCURRED. Events lost to dropped frames or reconnect gaps are not
reconstructed; consumers re-query when they need certainty.
"""

from __future__ import annotations

import logging
import threading

from runtime_bridge.cdp.protocol import EventFrame
from runtime_bridge.services.event_bus import EventBus, Events

logger = logging.getLogger(__name__)


def frame_url(frame: EventFrame) -> str | None:
    """params.frame.url of a Page.frameNavigated event, if present."""
    nav_frame = frame.params.get("frame")
    if not isinstance(nav_frame, dict):
        return None
    url = nav_frame.get("url")
    return url if isinstance(url, str) and url else None


class NavigationTracker:
    """
    Tracks the current page URL.

    LastKnownUrl survives reconnects; it is only ever replaced by a newer
    observation.
    """

    def __init__(self, event_bus: EventBus, lock: threading.Lock | None = None):
        self._event_bus = event_bus
        self._lock = lock or threading.Lock()
        self._last_known_url: str | None = None
        self.navigations_seen = 0

    @property
    def last_known_url(self) -> str | None:
        with self._lock:
            return self._last_known_url

    def seed(self, url: str | None) -> None:
        """Record a URL observed by query rather than by event (no notification)."""
        if not url:
            return
        with self._lock:
            self._last_known_url = url
        logger.debug(f"Seeded last known URL: {url}")

    def handle_event(self, frame: EventFrame) -> None:
        """Dispatcher handler for Page.frameNavigated."""
        url = frame_url(frame)
        if url is None:
            return

        with self._lock:
            self._last_known_url = url
            self.navigations_seen += 1

        logger.debug(f"Navigation: {url}")
        # Published outside the lock; subscribers may read last_known_url
        self._event_bus.publish(Events.NAVIGATION_OCCURRED, url)
