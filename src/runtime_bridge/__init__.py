"""
Runtime Bridge

Client for the remote debugging protocol of a Chromium-based desktop app.

Structure:
- config.py - BridgeConfig (environment-driven settings)
- errors.py - internal exception types
- cdp/ - wire format, target discovery, message dispatcher
- runtime/ - connection manager, script executor, navigation, facade
- services/ - event bus and logging setup
- tools/ - tool lifecycle and the debug inspector
- cli.py - command line entry point

Main exports for common use:
"""

from __future__ import annotations

import importlib
from typing import Any

__version__ = "0.1.0"

_LAZY_EXPORTS = {
    "BridgeConfig": ("runtime_bridge.config", "BridgeConfig"),
    "RuntimeBridge": ("runtime_bridge.runtime.bridge", "RuntimeBridge"),
    "get_runtime_bridge": ("runtime_bridge.runtime.bridge", "get_runtime_bridge"),
    "ConnectionState": ("runtime_bridge.runtime.connection", "ConnectionState"),
    "ScriptResult": ("runtime_bridge.runtime.executor", "ScriptResult"),
    "ToolLifecycle": ("runtime_bridge.tools.lifecycle", "ToolLifecycle"),
    "ToolManager": ("runtime_bridge.tools.lifecycle", "ToolManager"),
}


__all__ = [
    # Lazy exports are resolved through PEP 562 module `__getattr__` so that
    # `import runtime_bridge` stays cheap.
    "__version__",
]


def __getattr__(name: str) -> Any:
    if name in _LAZY_EXPORTS:
        module_name, attr = _LAZY_EXPORTS[name]
        module = importlib.import_module(module_name)
        value = getattr(module, attr)
        globals()[name] = value
        return value
    raise AttributeError(f"module 'runtime_bridge' has no attribute {name!r}")
