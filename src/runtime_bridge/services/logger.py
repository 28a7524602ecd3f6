"""
Logger Service Module
Centralized logging configuration with rotation, formatting, and multiple handlers
"""

import json
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import colorlog

# LogRecord attributes that are not user-supplied `extra` fields
_RESERVED_RECORD_KEYS = frozenset(
    [
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
    ]
)


class LoggerService:
    """
    Centralized logging service with support for:
    - Colored console output
    - Size-rotated application log plus an errors-only log
    - JSON structured logging
    """

    def __init__(self, config: dict[str, Any] | None = None):
        self.config = self._default_config()
        self.config.update(config or {})
        self.loggers = {}

        # Create log directory
        self.log_dir = Path(self.config.get("log_dir", "./logs"))
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            if not os.access(self.log_dir, os.W_OK):
                raise PermissionError(f"Log directory not writable: {self.log_dir}")
        except OSError:
            # File handlers fall back to stderr below
            self.log_dir = None

        self._handlers: list[logging.Handler] = []
        self._setup_root_logger()

    def _default_config(self) -> dict[str, Any]:
        """Default logging configuration"""
        return {
            "log_dir": "./logs",
            "log_level": "INFO",
            "console_level": "INFO",
            "file_level": "DEBUG",
            "max_bytes": 5 * 1024 * 1024,  # 5MB
            "backup_count": 3,
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "date_format": "%Y-%m-%d %H:%M:%S",
            "colored_output": True,
            "json_logs": False,
            "file_output": True,
        }

    def _setup_root_logger(self):
        """Configure the root logger"""
        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG)  # Capture all, filter at handler level

        # Remove existing handlers
        root_logger.handlers = []

        self._add(root_logger, self._create_console_handler())

        if self.config.get("file_output"):
            self._add(root_logger, self._create_file_handler("app.log"))
            self._add(root_logger, self._create_file_handler("errors.log", level=logging.ERROR))

        # Frame-level chatter from the client libraries stays out of app logs
        for noisy in ("websockets", "aiohttp", "asyncio"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

    def _add(self, root_logger: logging.Logger, handler: logging.Handler):
        root_logger.addHandler(handler)
        self._handlers.append(handler)

    def _create_console_handler(self) -> logging.Handler:
        """Create console handler with optional colored output"""
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, self.config.get("console_level", "INFO")))

        if self.config.get("json_logs"):
            formatter = JsonFormatter()
        elif self.config.get("colored_output"):
            formatter = colorlog.ColoredFormatter(
                "%(log_color)s%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt=self.config.get("date_format"),
                log_colors={
                    "DEBUG": "cyan",
                    "INFO": "green",
                    "WARNING": "yellow",
                    "ERROR": "red",
                    "CRITICAL": "red,bg_white",
                },
            )
        else:
            formatter = logging.Formatter(
                self.config.get("format"), datefmt=self.config.get("date_format")
            )

        console_handler.setFormatter(formatter)
        return console_handler

    def _create_file_handler(self, filename: str, level: int | None = None) -> logging.Handler:
        """Create rotating file handler"""
        handler: logging.Handler
        if self.log_dir is None:
            handler = logging.StreamHandler(sys.stderr)
        else:
            try:
                handler = RotatingFileHandler(
                    self.log_dir / filename,
                    maxBytes=self.config.get("max_bytes"),
                    backupCount=self.config.get("backup_count"),
                )
            except OSError:
                # Don't fail hard if filesystem isn't writable (common in CI/sandboxes).
                handler = logging.StreamHandler(sys.stderr)

        handler.setLevel(level or getattr(logging, self.config.get("file_level", "DEBUG")))

        if self.config.get("json_logs"):
            handler.setFormatter(JsonFormatter())
        else:
            handler.setFormatter(
                logging.Formatter(self.config.get("format"), datefmt=self.config.get("date_format"))
            )

        return handler

    def get_logger(self, name: str) -> logging.Logger:
        """Get or create a named logger"""
        if name not in self.loggers:
            self.loggers[name] = logging.getLogger(name)
        return self.loggers[name]

    def set_level(self, level: str, logger_name: str | None = None):
        """Set logging level for a specific logger or the console handler"""
        level_value = getattr(logging, level.upper())

        if logger_name:
            logging.getLogger(logger_name).setLevel(level_value)
        else:
            for handler in self._handlers:
                if isinstance(handler, logging.StreamHandler) and handler.stream is sys.stdout:
                    handler.setLevel(level_value)

    def cleanup(self):
        """Detach and close handlers"""
        root_logger = logging.getLogger()
        for handler in self._handlers:
            root_logger.removeHandler(handler)
            handler.close()
        self._handlers.clear()
        self.loggers.clear()


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON"""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add extra fields
        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


# Global logger service instance
_logger_service: LoggerService | None = None


def setup_logging(config: dict | None = None) -> logging.Logger:
    """
    Setup logging configuration and return root logger

    Args:
        config: Optional configuration dictionary (see BridgeConfig.logging_config)

    Returns:
        Configured root logger
    """
    global _logger_service

    if _logger_service is None:
        _logger_service = LoggerService(config)

    return logging.getLogger()


def get_logger(name: str) -> logging.Logger:
    """Get a named logger"""
    if _logger_service is None:
        setup_logging()

    return _logger_service.get_logger(name)


def cleanup_logging():
    """Clean up logging resources"""
    global _logger_service

    if _logger_service:
        _logger_service.cleanup()
        _logger_service = None
