"""Runtime bridge configuration."""

import logging
import os
from dataclasses import dataclass, field

from runtime_bridge.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_DEBUG_PORT = 9222
MIN_DEBUG_PORT = 1024
MAX_DEBUG_PORT = 65535


def _safe_int_env(name: str, default: int, min_val: int = None, max_val: int = None) -> int:
    """
    Safely parse integer environment variable with bounds.
    Falls back to default on invalid values.
    """
    try:
        value = int(os.getenv(name, str(default)))
        if min_val is not None:
            value = max(min_val, value)
        if max_val is not None:
            value = min(max_val, value)
        return value
    except (ValueError, TypeError):
        logger.warning(f"Invalid {name}, using default {default}")
        return default


def _safe_float_env(name: str, default: float, min_val: float = None) -> float:
    """Float counterpart of _safe_int_env."""
    try:
        value = float(os.getenv(name, str(default)))
        if min_val is not None:
            value = max(min_val, value)
        return value
    except (ValueError, TypeError):
        logger.warning(f"Invalid {name}, using default {default}")
        return default


def _debug_port_env() -> int:
    # Out-of-range ports fall back to the default instead of being clamped
    port = _safe_int_env("RUNTIME_BRIDGE_PORT", DEFAULT_DEBUG_PORT)
    if port < MIN_DEBUG_PORT or port > MAX_DEBUG_PORT:
        logger.warning(f"RUNTIME_BRIDGE_PORT {port} out of range, using {DEFAULT_DEBUG_PORT}")
        return DEFAULT_DEBUG_PORT
    return port


@dataclass
class BridgeConfig:
    """
    Configuration for the runtime bridge.

    All settings can be overridden via environment variables.
    """

    # Remote debugging endpoint
    debug_port: int = field(default_factory=_debug_port_env)
    host: str = field(default_factory=lambda: os.getenv("RUNTIME_BRIDGE_HOST", "localhost"))

    # Target selection / liveness
    target_domain: str = field(
        default_factory=lambda: os.getenv("RUNTIME_BRIDGE_TARGET_DOMAIN", "clickup.com")
    )
    process_name: str = field(
        default_factory=lambda: os.getenv("RUNTIME_BRIDGE_PROCESS_NAME", "ClickUp")
    )

    # Timeouts (seconds)
    command_timeout: float = field(
        default_factory=lambda: _safe_float_env("RUNTIME_BRIDGE_COMMAND_TIMEOUT", 10.0, 0.1)
    )
    http_timeout: float = field(
        default_factory=lambda: _safe_float_env("RUNTIME_BRIDGE_HTTP_TIMEOUT", 5.0, 0.1)
    )

    # Reconnection
    max_reconnect_attempts: int = field(
        default_factory=lambda: _safe_int_env("RUNTIME_BRIDGE_MAX_RECONNECT_ATTEMPTS", 3, 0, 20)
    )
    reconnect_base_delay: float = field(
        default_factory=lambda: _safe_float_env("RUNTIME_BRIDGE_RECONNECT_BASE_DELAY", 1.0, 0.0)
    )

    # Logging
    log_dir: str = field(default_factory=lambda: os.getenv("RUNTIME_BRIDGE_LOG_DIR", "./logs"))
    log_level: str = field(
        default_factory=lambda: os.getenv("RUNTIME_BRIDGE_LOG_LEVEL", "INFO").upper()
    )
    json_logs: bool = field(
        default_factory=lambda: os.getenv("RUNTIME_BRIDGE_JSON_LOGS", "false").lower() == "true"
    )

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """
        Check explicitly passed values.

        Raises:
            ConfigError: If a value is outside its allowed range
        """
        if not MIN_DEBUG_PORT <= self.debug_port <= MAX_DEBUG_PORT:
            raise ConfigError(
                f"debug_port must be between {MIN_DEBUG_PORT} and {MAX_DEBUG_PORT}, "
                f"got {self.debug_port}"
            )
        if self.command_timeout <= 0:
            raise ConfigError(f"command_timeout must be positive, got {self.command_timeout}")
        if self.http_timeout <= 0:
            raise ConfigError(f"http_timeout must be positive, got {self.http_timeout}")
        if self.max_reconnect_attempts < 0:
            raise ConfigError(
                f"max_reconnect_attempts must be >= 0, got {self.max_reconnect_attempts}"
            )
        if self.reconnect_base_delay < 0:
            raise ConfigError(
                f"reconnect_base_delay must be >= 0, got {self.reconnect_base_delay}"
            )
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigError(f"Unknown log_level: {self.log_level}")

    def logging_config(self) -> dict:
        """Settings consumed by services.logger.setup_logging()."""
        return {
            "log_dir": self.log_dir,
            "log_level": self.log_level,
            "console_level": self.log_level,
            "json_logs": self.json_logs,
        }

    def to_dict(self) -> dict:
        """Serialize config to dictionary."""
        return {
            "debug_port": self.debug_port,
            "host": self.host,
            "target_domain": self.target_domain,
            "process_name": self.process_name,
            "command_timeout": self.command_timeout,
            "http_timeout": self.http_timeout,
            "max_reconnect_attempts": self.max_reconnect_attempts,
            "reconnect_base_delay": self.reconnect_base_delay,
            "log_dir": self.log_dir,
            "log_level": self.log_level,
            "json_logs": self.json_logs,
        }
