"""CDP plumbing: wire format, target discovery and the message dispatcher."""

from .discovery import Target, TargetDiscovery, select_target
from .dispatcher import MessageDispatcher

__all__ = ["MessageDispatcher", "Target", "TargetDiscovery", "select_target"]
