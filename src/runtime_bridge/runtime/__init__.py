"""Connection lifecycle, script execution and the RuntimeBridge facade."""

from .bridge import RuntimeBridge, get_runtime_bridge, reset_runtime_bridge
from .connection import ConnectionState, ReconnectState
from .executor import ScriptResult
from .liveness import ProcessLivenessProbe, ProcessStatus
from .manager import ConnectionManager

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "ProcessLivenessProbe",
    "ProcessStatus",
    "ReconnectState",
    "RuntimeBridge",
    "ScriptResult",
    "get_runtime_bridge",
    "reset_runtime_bridge",
]
