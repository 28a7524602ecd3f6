"""
Tests for the process liveness probe and the debug-port probe.
"""

import socket
from unittest.mock import MagicMock, patch

import psutil


def _proc(name):
    proc = MagicMock()
    proc.info = {"name": name}
    return proc


class TestProcessLivenessProbe:
    def test_running_when_name_matches(self):
        from runtime_bridge.runtime.liveness import ProcessLivenessProbe, ProcessStatus

        with patch("psutil.process_iter", return_value=[_proc("bash"), _proc("ClickUp.exe")]):
            probe = ProcessLivenessProbe("ClickUp")
            assert probe.check_status() is ProcessStatus.RUNNING
            assert probe.is_running() is True

    def test_match_is_case_insensitive(self):
        from runtime_bridge.runtime.liveness import ProcessLivenessProbe, ProcessStatus

        with patch("psutil.process_iter", return_value=[_proc("clickup")]):
            assert ProcessLivenessProbe("ClickUp").check_status() is ProcessStatus.RUNNING

    def test_not_running(self):
        from runtime_bridge.runtime.liveness import ProcessLivenessProbe, ProcessStatus

        with patch("psutil.process_iter", return_value=[_proc("bash"), _proc(None)]):
            probe = ProcessLivenessProbe("ClickUp")
            assert probe.check_status() is ProcessStatus.NOT_RUNNING
            assert probe.status is ProcessStatus.NOT_RUNNING

    def test_enumeration_failure_is_unknown(self):
        from runtime_bridge.runtime.liveness import ProcessLivenessProbe, ProcessStatus

        with patch("psutil.process_iter", side_effect=psutil.AccessDenied()):
            assert ProcessLivenessProbe("ClickUp").check_status() is ProcessStatus.UNKNOWN


class TestDebugPortProbe:
    def test_listening_port_is_available(self):
        from runtime_bridge.runtime.liveness import is_debug_port_available

        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
            server.bind(("127.0.0.1", 0))
            server.listen(1)
            port = server.getsockname()[1]

            assert is_debug_port_available(port, "127.0.0.1") is True

    def test_closed_port_is_unavailable(self):
        from runtime_bridge.runtime.liveness import is_debug_port_available

        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("127.0.0.1", 0))
            port = s.getsockname()[1]

        assert is_debug_port_available(port, "127.0.0.1", timeout=0.5) is False
