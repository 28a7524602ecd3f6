"""
Tool Lifecycle

Tools are optional features built on top of the RuntimeBridge. The ToolManager
instantiates them lazily, tracks which are enabled and forwards runtime
availability:

    enable   -> on_enable() [+ on_runtime_ready(bridge) if already connected]
    disable  -> [on_runtime_disconnected() if connected] + on_disable()
    CONNECTED entered -> on_runtime_ready(bridge) for every enabled tool
    CONNECTED left    -> on_runtime_disconnected() for every enabled tool

Every lifecycle call is isolated: a raising tool is logged and skipped.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable

from runtime_bridge.runtime.bridge import RuntimeBridge
from runtime_bridge.runtime.connection import ConnectionState

logger = logging.getLogger(__name__)


class ToolLifecycle(ABC):
    """Contract every tool implements. Implementations must not block."""

    @abstractmethod
    def on_enable(self) -> None:
        """Tool was switched on."""

    @abstractmethod
    def on_disable(self) -> None:
        """Tool was switched off; release anything acquired in on_enable."""

    @abstractmethod
    def on_runtime_ready(self, bridge: RuntimeBridge) -> None:
        """The runtime is connected and scripts can be executed."""

    @abstractmethod
    def on_runtime_disconnected(self) -> None:
        """The runtime went away; stop using the bridge until ready again."""


class ToolManager:
    """
    Registry of tools and their enabled state.

    Usage:
        manager = ToolManager()
        manager.register_tool("debug-inspector", lambda: DebugInspector(bridge))
        manager.attach(bridge)
        manager.set_enabled("debug-inspector", True)
    """

    def __init__(self):
        self._factories: dict[str, Callable[[], ToolLifecycle]] = {}
        self._instances: dict[str, ToolLifecycle] = {}
        self._enabled: set[str] = set()
        self._bridge: RuntimeBridge | None = None
        self._runtime_ready = False
        self._unsubscribe: Callable[[], None] | None = None
        self._lock = threading.RLock()

    @property
    def runtime_ready(self) -> bool:
        with self._lock:
            return self._runtime_ready

    def register_tool(self, tool_id: str, factory: Callable[[], ToolLifecycle]) -> None:
        """Register a factory; the tool is built the first time it is enabled."""
        with self._lock:
            self._factories[tool_id] = factory

    def get_tool(self, tool_id: str) -> ToolLifecycle | None:
        """Instance for `tool_id`, or None if never enabled."""
        with self._lock:
            return self._instances.get(tool_id)

    def is_enabled(self, tool_id: str) -> bool:
        with self._lock:
            return tool_id in self._enabled

    def enabled_tools(self) -> list[str]:
        with self._lock:
            return sorted(self._enabled)

    def attach(self, bridge: RuntimeBridge) -> None:
        """Follow `bridge` connection state. Replaces any previous bridge."""
        self.detach()
        with self._lock:
            self._bridge = bridge
            self._unsubscribe = bridge.on_connection_state_changed(self._on_state_changed)
        if bridge.state is ConnectionState.CONNECTED:
            self.runtime_connected()

    def detach(self) -> None:
        with self._lock:
            unsubscribe = self._unsubscribe
            self._unsubscribe = None
        if unsubscribe is not None:
            unsubscribe()
        self.runtime_disconnected()
        with self._lock:
            self._bridge = None

    def set_enabled(self, tool_id: str, enabled: bool) -> None:
        """Enable or disable a tool, delivering runtime availability around it."""
        calls: list[tuple[str, Callable, tuple]] = []
        with self._lock:
            if enabled:
                if tool_id in self._enabled:
                    return
                tool = self._instances.get(tool_id)
                if tool is None:
                    factory = self._factories.get(tool_id)
                    if factory is None:
                        logger.warning(f"Tool factory not found: {tool_id}")
                        return
                    try:
                        tool = factory()
                    except Exception as e:
                        logger.error(f"Failed to create tool {tool_id}: {e}", exc_info=True)
                        return
                    self._instances[tool_id] = tool
                    logger.info(f"Instantiated tool: {tool_id}")

                self._enabled.add(tool_id)
                calls.append((tool_id, tool.on_enable, ()))
                if self._runtime_ready and self._bridge is not None:
                    calls.append((tool_id, tool.on_runtime_ready, (self._bridge,)))
            else:
                if tool_id not in self._enabled:
                    return
                self._enabled.discard(tool_id)
                tool = self._instances[tool_id]
                if self._runtime_ready:
                    calls.append((tool_id, tool.on_runtime_disconnected, ()))
                calls.append((tool_id, tool.on_disable, ()))
        self._run(calls)

    def runtime_connected(self) -> None:
        """Deliver on_runtime_ready to enabled tools (once per connection)."""
        with self._lock:
            if self._runtime_ready or self._bridge is None:
                return
            self._runtime_ready = True
            calls = [
                (tool_id, tool.on_runtime_ready, (self._bridge,))
                for tool_id, tool in self._enabled_instances()
            ]
        self._run(calls)

    def runtime_disconnected(self) -> None:
        """Deliver on_runtime_disconnected to enabled tools (once per connection)."""
        with self._lock:
            if not self._runtime_ready:
                return
            self._runtime_ready = False
            calls = [
                (tool_id, tool.on_runtime_disconnected, ())
                for tool_id, tool in self._enabled_instances()
            ]
        self._run(calls)

    def shutdown(self) -> None:
        """Disable every tool and stop following the bridge."""
        for tool_id in self.enabled_tools():
            self.set_enabled(tool_id, False)
        self.detach()

    def _on_state_changed(self, state: ConnectionState) -> None:
        if state is ConnectionState.CONNECTED:
            self.runtime_connected()
        else:
            self.runtime_disconnected()

    def _enabled_instances(self) -> list[tuple[str, ToolLifecycle]]:
        return [(tid, self._instances[tid]) for tid in sorted(self._enabled)]

    def _run(self, calls: list[tuple[str, Callable, tuple]]) -> None:
        # Lock is released; tools may call back into the manager
        for tool_id, method, args in calls:
            self._call(tool_id, method, *args)

    @staticmethod
    def _call(tool_id: str, method: Callable, *args) -> None:
        try:
            method(*args)
        except Exception as e:
            logger.error(f"Tool {tool_id} failed in {method.__name__}: {e}", exc_info=True)
