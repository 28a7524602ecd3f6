"""
Message Dispatcher

Owns one open duplex channel for the lifetime of a single connection:

- Frames outbound commands with monotonically increasing ids
- Tracks pending requests (id -> future) until their response arrives,
  the command times out, or the channel is torn down
- Runs the receive loop: responses fulfil pending futures (matched by id,
  never by arrival order), events are routed by method name
- Reports loop termination exactly once via `on_closed`

Malformed frames are logged and dropped; they never stop the loop.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from collections.abc import Callable
from contextlib import suppress
from typing import Any, Protocol

import websockets

from runtime_bridge.cdp.protocol import (
    EventFrame,
    ResponseFrame,
    encode_command,
    parse_frame,
)
from runtime_bridge.errors import DispatcherClosedError, FrameError

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TIMEOUT = 10.0

EventHandler = Callable[[EventFrame], None]


class DuplexChannel(Protocol):
    """The subset of a websockets client connection the dispatcher uses."""

    async def send(self, message: str) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self): ...


class MessageDispatcher:
    """
    Request/response correlation over an unordered frame stream.

    Usage:
        dispatcher = MessageDispatcher(ws, event_handlers={"Page.frameNavigated": on_nav})
        dispatcher.start()
        response = await dispatcher.send("Runtime.enable")
        await dispatcher.close()
    """

    def __init__(
        self,
        channel: DuplexChannel,
        *,
        lock: threading.Lock | None = None,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
        event_handlers: dict[str, EventHandler] | None = None,
        on_closed: Callable[["MessageDispatcher"], None] | None = None,
    ):
        """
        Args:
            channel: Open duplex channel (websockets client connection)
            lock: Guard shared with the connection manager; held only for
                pending-map mutations, never across an await
            command_timeout: Seconds to wait for each response
            event_handlers: Event method name -> handler
            on_closed: Called once when the receive loop ends on its own
        """
        self._channel = channel
        self._lock = lock or threading.Lock()
        self.command_timeout = command_timeout
        self._event_handlers = dict(event_handlers or {})
        self._on_closed = on_closed

        self._ids = itertools.count(1)
        self._pending: dict[int, asyncio.Future] = {}
        self._receive_task: asyncio.Task | None = None
        self._closing = False
        self._closed_notified = False

        # Statistics
        self.frames_received = 0
        self.frames_dropped = 0
        self.responses_discarded = 0

    @property
    def is_open(self) -> bool:
        return not self._closing and self._receive_task is not None and not self._receive_task.done()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def pending_ids(self) -> list[int]:
        with self._lock:
            return sorted(self._pending)

    def start(self) -> None:
        """Start the background receive loop."""
        if self._receive_task is not None:
            return
        self._receive_task = asyncio.get_running_loop().create_task(
            self._receive_loop(), name="cdp-receive-loop"
        )

    async def send(self, method: str, params: dict[str, Any] | None = None) -> ResponseFrame | None:
        """
        Send a command and wait for its response.

        Returns:
            The response frame, or None on timeout, teardown or write failure.
            Protocol error responses are returned as-is (check `is_error`).
        """
        if self._closing:
            logger.debug(f"Dispatcher closed, not sending {method}")
            return None

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        with self._lock:
            message_id = next(self._ids)
            self._pending[message_id] = future

        try:
            # Timeout covers the write as well as the response
            return await asyncio.wait_for(
                self._round_trip(encode_command(message_id, method, params), future),
                timeout=self.command_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"CDP command timed out after {self.command_timeout}s: {method} (id {message_id})")
            return None
        except DispatcherClosedError:
            logger.debug(f"CDP command abandoned, channel closed: {method} (id {message_id})")
            return None
        except (websockets.ConnectionClosed, OSError) as e:
            logger.warning(f"CDP command failed: {method}: {e}")
            return None
        finally:
            with self._lock:
                self._pending.pop(message_id, None)
            if future.done() and not future.cancelled():
                # Mark a teardown exception as retrieved when the write itself failed
                future.exception()

    async def _round_trip(self, message: str, future: asyncio.Future) -> ResponseFrame:
        await self._channel.send(message)
        return await future

    def route_frame(self, raw: str | bytes) -> None:
        """Decode one inbound frame and deliver it."""
        self.frames_received += 1
        try:
            frame = parse_frame(raw)
        except FrameError as e:
            self.frames_dropped += 1
            logger.warning(f"Dropping malformed CDP frame: {e}")
            return

        if isinstance(frame, ResponseFrame):
            with self._lock:
                future = self._pending.pop(frame.id, None)
            if future is None or future.done():
                # Already timed out, or not ours
                self.responses_discarded += 1
                logger.debug(f"Discarding response with no pending request: id {frame.id}")
                return
            future.set_result(frame)
            return

        handler = self._event_handlers.get(frame.method)
        if handler is None:
            return
        try:
            handler(frame)
        except Exception as e:
            logger.error(f"Error in handler for {frame.method}: {e}", exc_info=True)

    async def _receive_loop(self) -> None:
        cancelled = False
        try:
            async for raw in self._channel:
                self.route_frame(raw)
            logger.info("CDP channel closed by remote")
        except asyncio.CancelledError:
            cancelled = True
            raise
        except websockets.ConnectionClosed as e:
            logger.info(f"CDP channel closed: {e}")
        except Exception as e:
            logger.error(f"Error in CDP receive loop: {e}", exc_info=True)
        finally:
            self._fail_pending()
            if not cancelled and not self._closing:
                self._notify_closed()

    def _notify_closed(self) -> None:
        if self._closed_notified:
            return
        self._closed_notified = True
        if self._on_closed is None:
            return
        try:
            self._on_closed(self)
        except Exception as e:
            logger.error(f"Error in channel-closed callback: {e}", exc_info=True)

    def _fail_pending(self) -> None:
        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(DispatcherClosedError("Channel closed"))

    async def close(self) -> None:
        """
        Tear down the connection: stop the receive loop, abandon pending
        requests, close the channel. Safe to call more than once.
        """
        self._closing = True

        task = self._receive_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with suppress(asyncio.CancelledError, Exception):
                await task

        self._fail_pending()

        with suppress(Exception):
            await self._channel.close()
