"""
Tests for the Debug Inspector tool.
"""

from datetime import datetime
from unittest.mock import patch

import pytest

from runtime_bridge.runtime.liveness import ProcessStatus


@pytest.fixture
def bridge(make_manager):
    from runtime_bridge.runtime.bridge import RuntimeBridge

    manager, channels = make_manager()
    bridge = RuntimeBridge(manager=manager)
    bridge.channels = channels
    return bridge


def _navigate(channel, url):
    channel.push({"method": "Page.frameNavigated", "params": {"frame": {"url": url}}})


class TestRecentNavigations:
    @pytest.mark.asyncio
    async def test_newest_first_with_timestamp(self, bridge, fake_probe_cls, wait_for):
        from runtime_bridge.tools.inspector import DebugInspector

        inspector = DebugInspector(
            bridge, probe=fake_probe_cls(), clock=lambda: datetime(2026, 1, 2, 9, 5, 7)
        )
        await bridge.connect()

        _navigate(bridge.channels[0], "https://app.example.com/t/1")
        _navigate(bridge.channels[0], "https://app.example.com/t/2")
        await wait_for(lambda: len(inspector.recent_navigations) == 2)

        assert inspector.recent_navigations == [
            "09:05:07 - https://app.example.com/t/2",
            "09:05:07 - https://app.example.com/t/1",
        ]
        inspector.close()
        await bridge.disconnect()

    @pytest.mark.asyncio
    async def test_history_is_capped_at_ten(self, bridge, fake_probe_cls, wait_for):
        from runtime_bridge.tools.inspector import MAX_NAVIGATION_HISTORY, DebugInspector

        inspector = DebugInspector(bridge, probe=fake_probe_cls())
        await bridge.connect()

        for n in range(12):
            _navigate(bridge.channels[0], f"https://app.example.com/t/{n}")
        await wait_for(lambda: bridge.last_known_url == "https://app.example.com/t/11")

        recent = inspector.recent_navigations
        assert len(recent) == MAX_NAVIGATION_HISTORY
        assert recent[0].endswith("/t/11")
        assert recent[-1].endswith("/t/2")
        inspector.close()
        await bridge.disconnect()

    @pytest.mark.asyncio
    async def test_close_stops_recording(self, bridge, fake_probe_cls, wait_for):
        from runtime_bridge.tools.inspector import DebugInspector

        inspector = DebugInspector(bridge, probe=fake_probe_cls())
        inspector.close()
        await bridge.connect()

        _navigate(bridge.channels[0], "https://app.example.com/t/1")
        await wait_for(lambda: bridge.last_known_url == "https://app.example.com/t/1")

        assert inspector.recent_navigations == []
        await bridge.disconnect()


class TestInspectorState:
    @pytest.mark.asyncio
    async def test_snapshot(self, bridge, fake_probe_cls):
        from runtime_bridge.tools.inspector import DebugInspector

        inspector = DebugInspector(bridge, probe=fake_probe_cls(ProcessStatus.RUNNING))
        await bridge.connect()

        with patch("runtime_bridge.tools.inspector.is_debug_port_available", return_value=True):
            state = inspector.get_state()

        assert state.to_dict() == {
            "connection_state": "connected",
            "last_known_url": "https://app.example.com/",
            "process_status": "running",
            "debug_port_available": True,
            "debug_port": 9222,
            "reconnect_attempts": 0,
            "recent_navigations": [],
        }
        inspector.close()
        await bridge.disconnect()

    def test_snapshot_when_disconnected(self, bridge, fake_probe_cls):
        from runtime_bridge.tools.inspector import DebugInspector

        inspector = DebugInspector(bridge, probe=fake_probe_cls(ProcessStatus.NOT_RUNNING))

        with patch("runtime_bridge.tools.inspector.is_debug_port_available", return_value=False):
            state = inspector.get_state()

        assert state.connection_state == "disconnected"
        assert state.last_known_url is None
        assert state.process_status == "not_running"
        assert state.debug_port_available is False


class TestLifecycle:
    def test_lifecycle_callbacks_track_readiness(self, bridge, fake_probe_cls):
        from runtime_bridge.tools.inspector import DebugInspector

        inspector = DebugInspector(bridge, probe=fake_probe_cls())

        inspector.on_enable()
        inspector.on_runtime_ready(bridge)
        assert inspector.runtime_ready is True

        inspector.on_runtime_disconnected()
        assert inspector.runtime_ready is False
        inspector.on_disable()
        inspector.close()
