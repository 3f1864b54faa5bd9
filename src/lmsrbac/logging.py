"""Logging utilities for the access-control core.

This module provides:
- Logging configuration from RbacConfig
- Safe preview of values for log lines
- Structured (JSON) or plain-text formatting
- An audit logger adapter that stamps every record with the acting user
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from .config import LogLevel, RbacConfig

_STANDARD_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "message", "pathname", "process", "processName", "relativeCreated",
        "thread", "threadName", "exc_info", "exc_text", "stack_info",
        "taskName", "actor_id",
    }
)


def safe_preview(value: Any, limit: int = 240) -> str:
    """Create a safe, length-bounded, single-line preview of a value.

    Args:
        value: The value to preview (any type)
        limit: Maximum length of the preview (default: 240)

    Returns:
        A truncated string representation
    """
    if value is None:
        return ""

    if isinstance(value, str):
        s = value
    elif isinstance(value, (dict, list, tuple, set, frozenset)):
        try:
            s = json.dumps(
                sorted(value, key=str) if isinstance(value, (set, frozenset)) else value,
                default=str,
                ensure_ascii=False,
            )
        except (TypeError, ValueError):
            s = str(value)
    else:
        s = str(value)

    s = " ".join(s.split())

    if len(s) > limit:
        return s[: limit - 1] + "…"

    return s


class RbacFormatter(logging.Formatter):
    """Formatter that emits JSON (default) or plain text with the acting user.

    Extra fields passed via ``extra=`` are included as safe previews.
    """

    def __init__(self, json_format: bool = True, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.json_format = json_format

    def format(self, record: logging.LogRecord) -> str:
        actor_id = getattr(record, "actor_id", None)

        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if actor_id:
            log_data["actor_id"] = actor_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                log_data[key] = safe_preview(value)

        if self.json_format:
            return json.dumps(log_data, default=str, ensure_ascii=False)

        parts = [
            f"[{log_data['timestamp']}]",
            f"{log_data['level']}",
            f"{log_data['logger']}",
        ]
        if actor_id:
            parts.append(f"actor={actor_id}")
        parts.append(f": {log_data['message']}")
        return " ".join(parts)


class AuditLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds ``actor_id`` to every record.

    Usage:
        audit = get_audit_logger(__name__, actor_id="u-42")
        audit.info("Role assigned", extra={"role": "instructor"})
    """

    def __init__(self, logger: logging.Logger, actor_id: Optional[str] = None):
        super().__init__(logger, {})
        self.actor_id = actor_id

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        actor_id = kwargs.pop("actor_id", self.actor_id)
        extra = dict(kwargs.get("extra") or {})
        if actor_id:
            extra["actor_id"] = actor_id
        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging(
    config: Optional[RbacConfig] = None,
    json_format: Optional[bool] = None,
) -> None:
    """Configure the root logger from RbacConfig.

    Args:
        config: RbacConfig instance (if None, loads from environment)
        json_format: Override ``config.log_json``
    """
    if config is None:
        from .config import load_config_from_env

        config = load_config_from_env()

    level_map = {
        LogLevel.DEBUG: logging.DEBUG,
        LogLevel.INFO: logging.INFO,
        LogLevel.WARNING: logging.WARNING,
        LogLevel.ERROR: logging.ERROR,
        LogLevel.CRITICAL: logging.CRITICAL,
    }
    log_level = level_map.get(config.log_level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(
        RbacFormatter(json_format=config.log_json if json_format is None else json_format)
    )
    root_logger.addHandler(console_handler)


def get_audit_logger(name: str, actor_id: Optional[str] = None) -> AuditLoggerAdapter:
    """Get an audit logger adapter for administrative operations."""
    return AuditLoggerAdapter(logging.getLogger(name), actor_id=actor_id)


__all__ = [
    "AuditLoggerAdapter",
    "RbacFormatter",
    "get_audit_logger",
    "safe_preview",
    "setup_logging",
]
