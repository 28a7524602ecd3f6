"""Connection state machine for the runtime bridge."""

from dataclasses import dataclass
from enum import Enum


class ConnectionState(Enum):
    """
    Connection states.

    State machine:
        DISCONNECTED -> CONNECTING -> CONNECTED
                                   -> FAILED
        CONNECTED -> DISCONNECTED (channel closed)
        DISCONNECTED / FAILED -> CONNECTING (reconnect or manual retry)
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass
class ReconnectState:
    """
    Tracks supervised reconnection attempts.

    Backoff doubles per attempt: base, 2*base, 4*base, ...
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    attempts: int = 0
    retry_pending: bool = False

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def next_attempt(self) -> int | None:
        """
        Claim the next attempt number.

        Returns:
            Attempt number (1-based), or None if the cap is reached
        """
        if self.exhausted:
            return None
        self.attempts += 1
        return self.attempts

    def delay_for(self, attempt: int) -> float:
        """Backoff delay in seconds before `attempt`."""
        return self.base_delay * (2 ** (attempt - 1))

    def reset(self) -> None:
        """Back to zero (successful connect or manual retry)."""
        self.attempts = 0
        self.retry_pending = False

    def to_dict(self) -> dict:
        """Serialize state to dictionary."""
        return {
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "retry_pending": self.retry_pending,
        }
