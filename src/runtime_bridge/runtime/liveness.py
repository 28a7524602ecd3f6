"""
Process liveness checks for the remote application.

The connection manager only consumes the tri-state result: reconnecting is
pointless once the remote process is gone.
"""

import logging
import socket
from enum import Enum

import psutil

logger = logging.getLogger(__name__)


class ProcessStatus(Enum):
    """Remote process status"""

    NOT_RUNNING = "not_running"
    RUNNING = "running"
    UNKNOWN = "unknown"


def _normalize_process_name(name: str) -> str:
    name = name.lower()
    if name.endswith(".exe"):
        name = name[: -len(".exe")]
    return name


class ProcessLivenessProbe:
    """
    Checks whether a process with the given name is running.

    Usage:
        probe = ProcessLivenessProbe("ClickUp")
        if probe.check_status() is ProcessStatus.RUNNING:
            ...
    """

    def __init__(self, process_name: str):
        self.process_name = process_name
        self._needle = _normalize_process_name(process_name)
        self.status = ProcessStatus.UNKNOWN

    def check_status(self) -> ProcessStatus:
        """Enumerate processes and update `status`."""
        try:
            running = False
            for proc in psutil.process_iter(["name"]):
                try:
                    name = proc.info.get("name")
                except (psutil.NoSuchProcess, psutil.AccessDenied):
                    continue
                if name and _normalize_process_name(name) == self._needle:
                    running = True
                    break
            self.status = ProcessStatus.RUNNING if running else ProcessStatus.NOT_RUNNING
        except psutil.Error as e:
            logger.warning(f"Failed to check {self.process_name} status: {e}")
            self.status = ProcessStatus.UNKNOWN

        return self.status

    def is_running(self) -> bool:
        return self.check_status() is ProcessStatus.RUNNING


def is_debug_port_available(port: int, host: str = "localhost", timeout: float = 1.0) -> bool:
    """Check if something accepts TCP connections on the debug port."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.settimeout(timeout)
            s.connect((host, port))
            return True
    except (TimeoutError, ConnectionRefusedError, OSError):
        return False
