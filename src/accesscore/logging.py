"""Centralized logging utilities for accesscore.

This module provides:
- Logging configuration from EngineConfig
- Safe preview utilities for large id sets and paths
- Structured logging with generation/query context
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from .config import EngineConfig, LogLevel

# LogRecord attributes that are not user-supplied extras
_RESERVED_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "message", "pathname", "process", "processName", "relativeCreated",
        "thread", "threadName", "exc_info", "exc_text", "stack_info",
        "taskName", "generation_id", "query",
    }
)


def safe_preview(value: Any, limit: int = 240) -> str:
    """Create a length-bounded, single-line preview of a value for logging.

    Closures can hold hundreds of thousands of ids; never log them whole.

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
    elif isinstance(value, (set, frozenset)):
        s = json.dumps(sorted(value, key=str), default=str, ensure_ascii=False)
    elif isinstance(value, (dict, list, tuple)):
        try:
            s = json.dumps(value, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            s = str(value)
    else:
        s = str(value)

    s = " ".join(s.split())

    if len(s) > limit:
        return s[: limit - 1] + "…"

    return s


class AccessCoreFormatter(logging.Formatter):
    """Formatter that includes generation context and optional JSON output.

    This formatter:
    - Extracts generation_id and query from log records (if available)
    - Formats logs as JSON for structured logging, or plain text
    - Includes safe previews of extra fields
    """

    def __init__(
        self,
        include_context: bool = True,
        json_format: bool = True,
        *args: Any,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        self.include_context = include_context
        self.json_format = json_format

    def format(self, record: logging.LogRecord) -> str:
        generation_id = getattr(record, "generation_id", None)
        query = getattr(record, "query", None)

        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_context:
            if generation_id is not None:
                log_data["generation_id"] = generation_id
            if query:
                log_data["query"] = query

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = safe_preview(value)

        if self.json_format:
            return json.dumps(log_data, default=str, ensure_ascii=False)

        parts = [
            f"[{log_data['timestamp']}]",
            f"{log_data['level']}",
            f"{log_data['logger']}",
        ]
        if self.include_context and generation_id is not None:
            parts.append(f"generation={generation_id}")
        if self.include_context and query:
            parts.append(f"query={query}")
        parts.append(f": {log_data['message']}")
        return " ".join(parts)


class GenerationLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that tags every record with the serving generation.

    Usage:
        logger = get_generation_logger(__name__, generation_id=7)
        logger.info("resolved", query="resolve")
    """

    def __init__(
        self,
        logger: logging.Logger,
        generation_id: Optional[int] = None,
    ):
        super().__init__(logger, {})
        self.generation_id = generation_id

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        generation_id = kwargs.pop("generation_id", self.generation_id)
        query = kwargs.pop("query", None)

        extra = dict(kwargs.get("extra") or {})
        if generation_id is not None:
            extra["generation_id"] = generation_id
        if query:
            extra["query"] = query
        kwargs["extra"] = extra

        return msg, kwargs


def setup_logging(
    config: Optional[EngineConfig] = None,
    json_format: Optional[bool] = None,
) -> None:
    """Configure root logging for a process hosting the engine.

    Args:
        config: EngineConfig instance (if None, loads from environment)
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
        AccessCoreFormatter(
            include_context=True,
            json_format=config.log_json if json_format is None else json_format,
        )
    )
    root_logger.addHandler(console_handler)

    if config.service_name:
        logging.getLogger(config.service_name).setLevel(log_level)


def get_generation_logger(
    name: str,
    generation_id: Optional[int] = None,
) -> GenerationLoggerAdapter:
    """Get a logger adapter bound to a graph generation.

    Args:
        name: Logger name (typically __name__)
        generation_id: Generation whose queries this logger reports on

    Returns:
        GenerationLoggerAdapter instance
    """
    logger = logging.getLogger(name)
    return GenerationLoggerAdapter(logger, generation_id=generation_id)


__all__ = [
    "safe_preview",
    "AccessCoreFormatter",
    "GenerationLoggerAdapter",
    "setup_logging",
    "get_generation_logger",
]
