"""
Connection Manager

Owns the single live connection to the remote runtime and its state machine:

    DISCONNECTED -> CONNECTING -> CONNECTED
                              \\-> FAILED
    CONNECTED -> DISCONNECTED            (channel closed unexpectedly)
    DISCONNECTED / FAILED -> CONNECTING  (automatic reconnect or manual retry)

Connect sequence:
1. Discover and select a target
2. Open the duplex channel and start the receive loop
3. Enable Runtime and Page domains
4. Register the helper script for every new document
5. Inject the helper script into the current document
6. Seed LastKnownUrl from window.location.href

Reconnection (after an unexpected close while CONNECTED):
- Remote process not running -> FAILED, stop
- Attempt counter past the cap -> FAILED, stop
- Otherwise wait 1s, 2s, 4s..., re-check liveness, reconnect

State, the pending-request map, the reconnect counter and LastKnownUrl share
one lock. It is held for mutations only, never across an await, and
notifications are published after it is released.
"""

import asyncio
import logging
import threading
import time
from collections.abc import Awaitable, Callable
from contextlib import suppress

import websockets

from runtime_bridge.cdp.discovery import Target, TargetDiscovery
from runtime_bridge.cdp.dispatcher import DuplexChannel, MessageDispatcher
from runtime_bridge.cdp.protocol import (
    CURRENT_URL_EXPRESSION,
    HELPER_SCRIPT,
    PAGE_ADD_SCRIPT_ON_NEW_DOCUMENT,
    PAGE_ENABLE,
    PAGE_FRAME_NAVIGATED,
    RUNTIME_ENABLE,
)
from runtime_bridge.config import BridgeConfig
from runtime_bridge.errors import SessionSetupError
from runtime_bridge.runtime.connection import ConnectionState, ReconnectState
from runtime_bridge.runtime.executor import ScriptExecutor, ScriptResult
from runtime_bridge.runtime.liveness import ProcessLivenessProbe, ProcessStatus
from runtime_bridge.runtime.navigation import NavigationTracker
from runtime_bridge.services.event_bus import EventBus, Events

logger = logging.getLogger(__name__)

ChannelConnector = Callable[[str], Awaitable[DuplexChannel]]


async def open_websocket(url: str) -> DuplexChannel:
    """Open the CDP websocket; evaluation results can exceed the default frame cap."""
    return await websockets.connect(url, max_size=None)


class ConnectionManager:
    """
    Manages the CDP connection lifecycle.

    Usage:
        manager = ConnectionManager(BridgeConfig())
        if await manager.connect():
            result = await manager.evaluate("document.title")
        await manager.disconnect()
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        *,
        discovery: TargetDiscovery | None = None,
        probe: ProcessLivenessProbe | None = None,
        event_bus: EventBus | None = None,
        connector: ChannelConnector | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            config: Bridge configuration (defaults read from environment)
            discovery: Target discovery (default built from config)
            probe: Remote process liveness probe (default built from config)
            event_bus: Bus for state/navigation notifications
            connector: Opens the duplex channel for an attach address
            sleep: Backoff sleep, replaceable for tests
        """
        self.config = config or BridgeConfig()
        self.event_bus = event_bus or EventBus()
        self.discovery = discovery or TargetDiscovery(
            port=self.config.debug_port,
            host=self.config.host,
            domain=self.config.target_domain,
            http_timeout=self.config.http_timeout,
        )
        self.probe = probe or ProcessLivenessProbe(self.config.process_name)
        self._connector = connector or open_websocket
        self._sleep = sleep

        self._lock = threading.Lock()
        self.navigation = NavigationTracker(self.event_bus, self._lock)
        self.executor = ScriptExecutor()

        self._state = ConnectionState.DISCONNECTED
        self._reconnect = ReconnectState(
            max_attempts=self.config.max_reconnect_attempts,
            base_delay=self.config.reconnect_base_delay,
        )
        self._dispatcher: MessageDispatcher | None = None
        self._target: Target | None = None
        self._connected_at: float | None = None
        self._attempt_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None

        # Statistics
        self.connect_attempts = 0

    # ========== State ==========

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def last_known_url(self) -> str | None:
        return self.navigation.last_known_url

    @property
    def target(self) -> Target | None:
        with self._lock:
            return self._target

    @property
    def reconnect_attempts(self) -> int:
        with self._lock:
            return self._reconnect.attempts

    @property
    def reconnect_pending(self) -> bool:
        with self._lock:
            return self._reconnect.retry_pending

    def get_status(self) -> dict:
        """Snapshot of connection bookkeeping for diagnostics."""
        with self._lock:
            dispatcher = self._dispatcher
            status = {
                "state": self._state.value,
                "target_url": self._target.url if self._target else None,
                "connected_at": self._connected_at,
                "reconnect": self._reconnect.to_dict(),
                "connect_attempts": self.connect_attempts,
            }
        status["pending_requests"] = dispatcher.pending_count if dispatcher else 0
        status["last_known_url"] = self.navigation.last_known_url
        return status

    def _swap_state_locked(self, new_state: ConnectionState) -> bool:
        """Change state; caller holds the lock. Returns True if it changed."""
        old_state = self._state
        if old_state is new_state:
            return False
        self._state = new_state
        if new_state is ConnectionState.CONNECTED:
            self._connected_at = time.time()
        elif old_state is ConnectionState.CONNECTED:
            self._connected_at = None
        logger.info(f"Runtime connection: {old_state.value} -> {new_state.value}")
        return True

    def _notify_state(self, new_state: ConnectionState) -> None:
        self.event_bus.publish(Events.CONNECTION_STATE_CHANGED, new_state)

    def _set_state(self, new_state: ConnectionState) -> None:
        with self._lock:
            changed = self._swap_state_locked(new_state)
        if changed:
            self._notify_state(new_state)

    # ========== Connect ==========

    async def connect(self) -> bool:
        """
        Connect to the remote runtime.

        While CONNECTING, joins the attempt in flight instead of starting a
        second one, leaving any supervised reconnection running; while
        CONNECTED, returns True without traffic. From DISCONNECTED or FAILED,
        resets the reconnect counter and cancels any pending backoff first.

        Returns:
            True if connected
        """
        with self._lock:
            idle = self._state in (ConnectionState.DISCONNECTED, ConnectionState.FAILED)
            if idle:
                self._reconnect.reset()
        if idle:
            self._cancel_reconnect()
        return await self._connect_single_flight()

    async def retry(self) -> bool:
        """Manual retry: same as connect(), typically used after FAILED."""
        logger.info("Manual reconnect requested")
        return await self.connect()

    async def _connect_single_flight(self) -> bool:
        started = False
        with self._lock:
            if self._state is ConnectionState.CONNECTED:
                return True
            task = self._attempt_task
            if task is None:
                started = self._swap_state_locked(ConnectionState.CONNECTING)
                task = asyncio.get_running_loop().create_task(
                    self._attempt_connect(), name="runtime-connect"
                )
                self._attempt_task = task
                self.connect_attempts += 1

        if started:
            self._notify_state(ConnectionState.CONNECTING)
        elif not task.done():
            logger.debug("Connect already in progress, joining it")

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # The attempt was cancelled by disconnect(); the caller was not
            if task.cancelled():
                return False
            raise

    async def _attempt_connect(self) -> bool:
        channel: DuplexChannel | None = None
        dispatcher: MessageDispatcher | None = None
        try:
            target = await self.discovery.discover()
            if target is None:
                logger.warning("No attachable CDP target; cannot connect right now")
                return await self._fail_attempt(None)

            channel = await self._connector(target.websocket_url)
            dispatcher = MessageDispatcher(
                channel,
                lock=self._lock,
                command_timeout=self.config.command_timeout,
                event_handlers={PAGE_FRAME_NAVIGATED: self.navigation.handle_event},
                on_closed=self._on_channel_closed,
            )
            with self._lock:
                self._dispatcher = dispatcher
                self._target = target
            dispatcher.start()
            logger.info(f"Attached to CDP target: {target.url}")

            await self._initialize_session(dispatcher)

            if not dispatcher.is_open:
                raise SessionSetupError("attach", "channel closed during setup")

            with self._lock:
                changed = self._swap_state_locked(ConnectionState.CONNECTED)
                self._reconnect.reset()
                self._attempt_task = None
            if changed:
                self._notify_state(ConnectionState.CONNECTED)

            logger.info("Runtime bridge connected successfully")
            return True

        except asyncio.CancelledError:
            if dispatcher is not None:
                await dispatcher.close()
            elif channel is not None:
                with suppress(Exception):
                    await channel.close()
            raise
        except Exception as e:
            logger.error(f"Failed to connect to CDP: {e}", exc_info=True)
            if dispatcher is None and channel is not None:
                with suppress(Exception):
                    await channel.close()
            return await self._fail_attempt(dispatcher)

    async def _initialize_session(self, dispatcher: MessageDispatcher) -> None:
        """
        Enable domains, install the helper script and seed LastKnownUrl.

        Raises:
            SessionSetupError: If a required protocol command fails
        """
        required = (
            (RUNTIME_ENABLE, None),
            (PAGE_ENABLE, None),
            (PAGE_ADD_SCRIPT_ON_NEW_DOCUMENT, {"source": HELPER_SCRIPT}),
        )
        for method, params in required:
            response = await dispatcher.send(method, params)
            if response is None:
                raise SessionSetupError(method, "no response")
            if response.is_error:
                raise SessionSetupError(method, response.error_message)

        injected = await self.executor.evaluate_on(dispatcher, HELPER_SCRIPT)
        if not injected.success:
            logger.warning(f"Helper script injection failed: {injected.exception_message}")

        current = await self.executor.evaluate_on(dispatcher, CURRENT_URL_EXPRESSION)
        if current.success and current.value:
            self.navigation.seed(current.value)

    async def _fail_attempt(self, dispatcher: MessageDispatcher | None) -> bool:
        with self._lock:
            if dispatcher is not None and self._dispatcher is dispatcher:
                self._dispatcher = None
                self._target = None
        if dispatcher is not None:
            await dispatcher.close()

        with self._lock:
            self._attempt_task = None
            changed = self._swap_state_locked(ConnectionState.FAILED)
        if changed:
            self._notify_state(ConnectionState.FAILED)
        return False

    # ========== Disconnect / reconnect ==========

    def _on_channel_closed(self, dispatcher: MessageDispatcher) -> None:
        """Receive loop ended on its own. Runs once per dispatcher."""
        with self._lock:
            if dispatcher is not self._dispatcher or self._state is not ConnectionState.CONNECTED:
                return
            self._dispatcher = None
            self._target = None
            self._swap_state_locked(ConnectionState.DISCONNECTED)
            self._reconnect.retry_pending = True

        logger.warning("CDP channel closed unexpectedly")
        self._notify_state(ConnectionState.DISCONNECTED)
        self._reconnect_task = asyncio.get_running_loop().create_task(
            self._supervise_reconnect(dispatcher), name="runtime-reconnect"
        )

    async def _remote_running(self) -> bool:
        status = await asyncio.to_thread(self.probe.check_status)
        return status is ProcessStatus.RUNNING

    async def _supervise_reconnect(self, closed: MessageDispatcher) -> None:
        try:
            await closed.close()

            while True:
                if not await self._remote_running():
                    logger.info(
                        f"{self.config.process_name} process not running, "
                        "stopping reconnection attempts"
                    )
                    self._set_state(ConnectionState.FAILED)
                    return

                with self._lock:
                    attempt = self._reconnect.next_attempt()
                    delay = self._reconnect.delay_for(attempt) if attempt is not None else 0.0
                    max_attempts = self._reconnect.max_attempts
                    self._reconnect.retry_pending = attempt is not None

                if attempt is None:
                    logger.warning("Max reconnect attempts reached")
                    self._set_state(ConnectionState.FAILED)
                    return

                logger.info(f"Reconnecting in {delay:g}s (attempt {attempt}/{max_attempts})")
                await self._sleep(delay)

                # The process may have exited during the delay
                if not await self._remote_running():
                    logger.info(f"{self.config.process_name} process stopped during reconnect delay")
                    self._set_state(ConnectionState.FAILED)
                    return

                if await self._connect_single_flight():
                    return
        finally:
            with self._lock:
                self._reconnect.retry_pending = False
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None

    def _cancel_reconnect(self) -> asyncio.Task | None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is None or task.done() or task is asyncio.current_task():
            return None
        logger.debug("Cancelling pending reconnect")
        task.cancel()
        return task

    async def disconnect(self) -> None:
        """Close the connection. Idempotent; never triggers reconnection."""
        reconnect = self._cancel_reconnect()
        if reconnect is not None:
            with suppress(asyncio.CancelledError):
                await reconnect

        with self._lock:
            attempt = self._attempt_task
            self._attempt_task = None
            dispatcher = self._dispatcher
            self._dispatcher = None
            self._target = None
            self._reconnect.retry_pending = False

        if attempt is not None and not attempt.done() and attempt is not asyncio.current_task():
            attempt.cancel()
            with suppress(asyncio.CancelledError, Exception):
                await attempt

        if dispatcher is not None:
            await dispatcher.close()
            logger.info("Runtime bridge disconnected")

        self._set_state(ConnectionState.DISCONNECTED)

    # ========== Commands ==========

    async def evaluate(self, expression: str) -> ScriptResult:
        """Evaluate on the live connection; fails fast when not CONNECTED."""
        with self._lock:
            dispatcher = self._dispatcher if self._state is ConnectionState.CONNECTED else None
        return await self.executor.evaluate_on(dispatcher, expression)

    async def __aenter__(self) -> "ConnectionManager":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()
