"""Optional tools built on the runtime bridge."""

from .inspector import DebugInspector, InspectorState
from .lifecycle import ToolLifecycle, ToolManager

__all__ = ["DebugInspector", "InspectorState", "ToolLifecycle", "ToolManager"]
