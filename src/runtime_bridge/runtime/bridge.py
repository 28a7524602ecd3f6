"""
Runtime Bridge

The only surface consumer tools see. Wraps the ConnectionManager and exposes:

- execute_script(expression)   -> ScriptResult
- get_task_id()                -> task id from the current URL, or None
- on_connection_state_changed(callback) / on_navigation(callback)
  -> each returns an unsubscribe callable

Protocol framing, pending requests and the channel never leave this package;
faults arrive as connection states and ScriptResult values only.

Usage:
    bridge = RuntimeBridge()
    unsubscribe = bridge.on_navigation(lambda url: print(url))
    if await bridge.connect():
        result = await bridge.execute_script("document.title")
    await bridge.disconnect()
"""

import logging
import threading
from collections.abc import Callable

from runtime_bridge.cdp.protocol import TASK_ID_EXPRESSION
from runtime_bridge.config import BridgeConfig
from runtime_bridge.runtime.connection import ConnectionState
from runtime_bridge.runtime.executor import ScriptResult
from runtime_bridge.runtime.manager import ConnectionManager
from runtime_bridge.services.event_bus import EventBus, Events

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


class RuntimeBridge:
    """Facade over the connection to the remote runtime."""

    def __init__(
        self,
        config: BridgeConfig | None = None,
        *,
        manager: ConnectionManager | None = None,
        event_bus: EventBus | None = None,
    ):
        """
        Args:
            config: Bridge configuration (ignored when `manager` is given)
            manager: Preconfigured connection manager, mainly for tests
            event_bus: Bus shared with the manager
        """
        if manager is None:
            manager = ConnectionManager(config, event_bus=event_bus)
        self._manager = manager
        self._event_bus = manager.event_bus

    # ========== Connection ==========

    @property
    def config(self) -> BridgeConfig:
        return self._manager.config

    @property
    def state(self) -> ConnectionState:
        return self._manager.state

    @property
    def is_connected(self) -> bool:
        return self._manager.is_connected

    @property
    def last_known_url(self) -> str | None:
        return self._manager.last_known_url

    @property
    def reconnect_attempts(self) -> int:
        return self._manager.reconnect_attempts

    async def connect(self) -> bool:
        return await self._manager.connect()

    async def retry(self) -> bool:
        """Retry after FAILED with the reconnect counter reset."""
        return await self._manager.retry()

    async def disconnect(self) -> None:
        await self._manager.disconnect()

    def get_status(self) -> dict:
        """Connection state, target and reconnect counters."""
        status = self._manager.get_status()
        status.pop("pending_requests", None)
        return status

    # ========== Scripts ==========

    async def execute_script(self, expression: str) -> ScriptResult:
        """Evaluate a JavaScript expression in the attached page."""
        return await self._manager.evaluate(expression)

    async def execute_script_value(self, expression: str) -> str | None:
        """Evaluate and return the value, or None on any failure."""
        result = await self.execute_script(expression)
        return result.value if result.success else None

    async def get_task_id(self) -> str | None:
        """
        Task id from the current page URL (/t/<id>), via the injected helper.

        Returns:
            The id, or None when not connected, not on a task, or on failure
        """
        value = await self.execute_script_value(TASK_ID_EXPRESSION)
        if not value or value == "null":
            return None
        return value

    # ========== Subscriptions ==========

    def on_connection_state_changed(self, callback: Callable[[ConnectionState], None]) -> Unsubscribe:
        """Call `callback(state)` on every connection state change."""
        return self._subscribe(Events.CONNECTION_STATE_CHANGED, callback)

    def on_navigation(self, callback: Callable[[str], None]) -> Unsubscribe:
        """Call `callback(url)` whenever the attached page navigates."""
        return self._subscribe(Events.NAVIGATION_OCCURRED, callback)

    def _subscribe(self, event: Events, callback: Callable) -> Unsubscribe:
        def handler(envelope: dict) -> None:
            callback(envelope["data"])

        self._event_bus.subscribe(event, handler)

        def unsubscribe() -> None:
            self._event_bus.unsubscribe(event, handler)

        return unsubscribe

    async def __aenter__(self) -> "RuntimeBridge":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()


# Singleton instance
_bridge_instance: RuntimeBridge | None = None
_bridge_lock = threading.Lock()


def get_runtime_bridge() -> RuntimeBridge:
    """Get or create the shared bridge instance (thread-safe)"""
    global _bridge_instance
    if _bridge_instance is None:
        with _bridge_lock:
            # Double-check locking pattern
            if _bridge_instance is None:
                _bridge_instance = RuntimeBridge()
    return _bridge_instance


def reset_runtime_bridge() -> None:
    """Drop the shared instance (for testing). Disconnect it first."""
    global _bridge_instance
    with _bridge_lock:
        _bridge_instance = None
