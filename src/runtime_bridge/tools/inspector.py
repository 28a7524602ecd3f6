"""
Debug Inspector - read-only view of the runtime bridge.

Observes connection state and navigations without driving the connection.
"""

import logging
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime

from runtime_bridge.runtime.bridge import RuntimeBridge
from runtime_bridge.runtime.connection import ConnectionState
from runtime_bridge.runtime.liveness import ProcessLivenessProbe, is_debug_port_available
from runtime_bridge.tools.lifecycle import ToolLifecycle

logger = logging.getLogger(__name__)

MAX_NAVIGATION_HISTORY = 10


@dataclass
class InspectorState:
    """Snapshot returned by DebugInspector.get_state()"""

    connection_state: str
    last_known_url: str | None
    process_status: str
    debug_port_available: bool
    debug_port: int
    reconnect_attempts: int
    recent_navigations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


class DebugInspector(ToolLifecycle):
    """
    Keeps the most recent navigations (newest first) and reports bridge state.

    Usage:
        inspector = DebugInspector(bridge)
        print(inspector.get_state().to_dict())
    """

    def __init__(
        self,
        bridge: RuntimeBridge,
        probe: ProcessLivenessProbe | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._bridge = bridge
        self._probe = probe or ProcessLivenessProbe(bridge.config.process_name)
        self._clock = clock
        self._recent: deque[str] = deque(maxlen=MAX_NAVIGATION_HISTORY)
        self._lock = threading.Lock()
        self._runtime_ready = False

        self._unsubscribers = [
            bridge.on_connection_state_changed(self._on_state_changed),
            bridge.on_navigation(self._record_navigation),
        ]

    @property
    def recent_navigations(self) -> list[str]:
        with self._lock:
            return list(self._recent)

    @property
    def runtime_ready(self) -> bool:
        return self._runtime_ready

    def on_enable(self) -> None:
        logger.info("Debug Inspector tool enabled")

    def on_disable(self) -> None:
        self._runtime_ready = False
        logger.info("Debug Inspector tool disabled")

    def on_runtime_ready(self, bridge: RuntimeBridge) -> None:
        self._runtime_ready = True
        logger.info("Runtime ready for Debug Inspector")

    def on_runtime_disconnected(self) -> None:
        self._runtime_ready = False
        logger.info("Runtime disconnected for Debug Inspector")

    def close(self) -> None:
        """Stop observing the bridge."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _on_state_changed(self, state: ConnectionState) -> None:
        logger.debug(f"Connection state changed: {state.value}")

    def _record_navigation(self, url: str) -> None:
        entry = f"{self._clock():%H:%M:%S} - {url}"
        with self._lock:
            self._recent.appendleft(entry)

    def get_state(self) -> InspectorState:
        """
        Build a snapshot. Probes the process list and the debug port, so it
        blocks briefly; call it off the event loop (asyncio.to_thread).
        """
        config = self._bridge.config
        return InspectorState(
            connection_state=self._bridge.state.value,
            last_known_url=self._bridge.last_known_url,
            process_status=self._probe.check_status().value,
            debug_port_available=is_debug_port_available(config.debug_port, config.host),
            debug_port=config.debug_port,
            reconnect_attempts=self._bridge.reconnect_attempts,
            recent_navigations=self.recent_navigations,
        )
