"""
Shared test fixtures for pytest

The duplex channel, discovery and liveness probe are replaced with in-memory
fakes so connection behavior can be driven frame by frame.
"""

import asyncio
import json

import pytest

from runtime_bridge.services import cleanup_logging, setup_logging

_CLOSE = object()

PAGE_URL = "https://app.example.com/"


def default_responder(command: dict) -> dict | None:
    """Reply the way a healthy page would."""
    if command["method"] == "Runtime.evaluate":
        if command["params"]["expression"] == "window.location.href":
            return {"result": {"result": {"type": "string", "value": PAGE_URL}}}
        return {"result": {"result": {"type": "undefined"}}}
    return {"result": {}}


class FakeChannel:
    """
    In-memory stand-in for a websockets client connection.

    Commands sent through it are recorded and answered by `responder`
    (None means "never answer"). Frames can be pushed from the test side, and
    `drop()` simulates the remote closing the channel.
    """

    def __init__(self, responder=default_responder):
        self.responder = responder
        self.sent: list[dict] = []
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, message: str) -> None:
        if self.closed:
            raise OSError("channel closed")
        command = json.loads(message)
        self.sent.append(command)
        if self.responder is None:
            return
        reply = self.responder(command)
        if reply is not None:
            self.push({"id": command["id"], **reply})

    def push(self, frame) -> None:
        """Queue an inbound frame (dict is JSON-encoded, str/bytes sent raw)."""
        raw = json.dumps(frame) if isinstance(frame, dict) else frame
        self._inbox.put_nowait(raw)

    def drop(self) -> None:
        """Remote side closes the channel."""
        self._inbox.put_nowait(_CLOSE)

    async def close(self) -> None:
        self.closed = True
        self._inbox.put_nowait(_CLOSE)

    def methods(self) -> list[str]:
        return [command["method"] for command in self.sent]

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        return item


class FakeDiscovery:
    """Returns queued discovery results in order, repeating the last one."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def discover(self):
        self.calls += 1
        if not self.results:
            return None
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


class FakeProbe:
    """Liveness probe returning queued statuses, repeating the last one."""

    def __init__(self, *statuses):
        from runtime_bridge.runtime.liveness import ProcessStatus

        self.statuses = list(statuses) or [ProcessStatus.RUNNING]
        self.calls = 0

    def check_status(self):
        self.calls += 1
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]


class RecordingSleep:
    """Injected backoff sleep: records delays, yields to the loop, never waits."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture(autouse=True)
def setup_test_logging(tmp_path):
    """Setup logging for all tests"""
    setup_logging({"log_dir": str(tmp_path / "logs"), "log_level": "DEBUG"})
    yield
    cleanup_logging()


@pytest.fixture
def page_target():
    """An attachable page target on the product domain"""
    from runtime_bridge.cdp.discovery import Target

    return Target(
        id="page-1",
        type="page",
        url=PAGE_URL,
        title="Example",
        websocket_url="ws://127.0.0.1:9222/devtools/page/page-1",
    )


@pytest.fixture
def fake_channel_cls():
    return FakeChannel


@pytest.fixture
def fake_discovery_cls():
    return FakeDiscovery


@pytest.fixture
def fake_probe_cls():
    return FakeProbe


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def bridge_config(tmp_path):
    """Config with fast timeouts for tests"""
    from runtime_bridge.config import BridgeConfig

    return BridgeConfig(
        debug_port=9222,
        host="127.0.0.1",
        target_domain="example.com",
        process_name="ExampleApp",
        command_timeout=0.2,
        http_timeout=1.0,
        max_reconnect_attempts=3,
        reconnect_base_delay=1.0,
        log_dir=str(tmp_path / "logs"),
    )


@pytest.fixture
def make_manager(bridge_config, page_target, recording_sleep):
    """
    Build a ConnectionManager wired to fakes.

    Returns (manager, channels) where `channels` collects every FakeChannel
    the manager opened, in order.
    """
    from runtime_bridge.runtime.manager import ConnectionManager

    def _make(discovery=None, probe=None, responder=default_responder, config=None, sleep=None):
        channels: list[FakeChannel] = []

        async def connector(url: str) -> FakeChannel:
            channel = FakeChannel(responder)
            channel.url = url
            channels.append(channel)
            return channel

        manager = ConnectionManager(
            config or bridge_config,
            discovery=discovery or FakeDiscovery(page_target),
            probe=probe or FakeProbe(),
            connector=connector,
            sleep=sleep or recording_sleep,
        )
        return manager, channels

    return _make


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Yield to the loop until predicate() is true."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def wait_for():
    return wait_until


@pytest.fixture
def responder_with():
    """
    Build a responder that overrides replies per method or per evaluated
    expression (a None override means "never answer").
    """

    def _build(overrides: dict):
        def respond(command: dict):
            key = command["method"]
            if key == "Runtime.evaluate":
                expression = command["params"]["expression"]
                if expression in overrides:
                    return overrides[expression]
            if key in overrides:
                return overrides[key]
            return default_responder(command)

        return respond

    return _build
