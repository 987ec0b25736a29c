"""Logging configuration with structured JSON output."""

import json
import logging
import logging.handlers
import re
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "stack_info",
    "exc_info",
    "exc_text",
    "message",
}


class LoggingConfig(BaseModel):
    """Logging configuration for the application and store activity logs."""

    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format (json or text)")
    max_file_size_mb: int = Field(default=10, description="Maximum log file size in MB")
    backup_count: int = Field(default=30, description="Number of rotated files kept")
    log_path: Path = Field(default=Path("logs"), description="Log directory")
    enable_console_output: bool = Field(
        default=True, description="Enable console logging"
    )
    sanitize_sensitive_data: bool = Field(
        default=True, description="Remove sensitive data from logs"
    )

    def setup_directories(self) -> None:
        """Create the log directory if it doesn't exist."""
        self.log_path.mkdir(parents=True, exist_ok=True)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self, *, sanitize_sensitive: bool = True) -> None:
        """Initialize formatter with sanitization option."""
        super().__init__()
        self.sanitize_sensitive = sanitize_sensitive
        self.sensitive_fields = {
            "api_key",
            "authorization",
            "password",
            "secret",
            "token",
            "image_base64",
            "imagebase64",
        }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName if record.funcName else "<unknown>",
            "line": record.lineno,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS
        }
        if extra_fields:
            if self.sanitize_sensitive:
                extra_fields = self._sanitize_data(extra_fields)
            log_entry.update(extra_fields)

        return json.dumps(log_entry, default=self._json_serializer, ensure_ascii=False)

    def _sanitize_data(self, data: dict[str, Any]) -> dict[str, Any]:
        """Remove or mask sensitive data from log entries."""
        sanitized: dict[str, Any] = {}
        for key, value in data.items():
            if self._is_sensitive_key(key):
                sanitized[key] = "***REDACTED***"
            elif isinstance(value, dict):
                sanitized[key] = self._sanitize_data(value)
            elif isinstance(value, list):
                sanitized[key] = [
                    self._sanitize_data(item) if isinstance(item, dict) else item
                    for item in value
                ]
            else:
                sanitized[key] = value
        return sanitized

    def _is_sensitive_key(self, key: str) -> bool:
        """Check if a key should be considered sensitive."""
        key_lower = re.sub(r"[^a-z0-9_]", "", key.lower())
        return any(sensitive in key_lower for sensitive in self.sensitive_fields)

    def _json_serializer(self, obj: Any) -> str:  # noqa: ANN401
        """JSON serializer for non-standard types."""
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Path):
            return str(obj)
        return str(obj)


def setup_logging(config: LoggingConfig, name: str = "receiptbook") -> logging.Logger:
    """Set up the package logger with file rotation and optional console output."""
    config.setup_directories()

    app_logger = logging.getLogger(name)
    app_logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))

    # Clear existing handlers to avoid duplicates
    app_logger.handlers.clear()

    if config.log_format == "json":
        formatter: logging.Formatter = StructuredFormatter(
            sanitize_sensitive=config.sanitize_sensitive_data
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    file_handler = logging.handlers.RotatingFileHandler(
        filename=config.log_path / f"{name}.log",
        maxBytes=config.max_file_size_mb * 1024 * 1024,
        backupCount=config.backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    app_logger.addHandler(file_handler)

    if config.enable_console_output:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        app_logger.addHandler(console_handler)

    app_logger.propagate = False

    return app_logger
