"""Exception types used inside the runtime bridge.

None of these cross the RuntimeBridge facade: the dispatcher turns them into
missing responses, the connection manager into state transitions, and the
script executor into failed ScriptResults.
"""


class RuntimeBridgeError(Exception):
    """Base class for runtime bridge errors."""

    pass


class ConfigError(RuntimeBridgeError):
    """Configuration validation error"""

    pass


class FrameError(RuntimeBridgeError):
    """Inbound frame could not be decoded."""

    pass


class DispatcherClosedError(RuntimeBridgeError):
    """A pending request was abandoned because its channel was torn down."""

    pass


class SessionSetupError(RuntimeBridgeError):
    """A required step after attaching to a target failed."""

    def __init__(self, step: str, detail: str = ""):
        self.step = step
        self.detail = detail
        message = f"Session setup failed at {step}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
