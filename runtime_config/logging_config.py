"""
Structured logging configuration for the runtime configuration manager.

- Uses structlog for structured, contextual logging
- Supports console (dev-friendly) and JSON (prod) renderers
- Exposes configure_logging() and get_logger() helpers

Environment variables:
  LOG_LEVEL   -> DEBUG | INFO | WARNING | ERROR | CRITICAL (default: INFO)
  JSON_LOGS   -> true | false (default: false)

Configuration values are never passed to loggers unmasked; callers log keys,
version ids and counts only. drop_config_values strips value fields that slip
through anyway.
"""
from __future__ import annotations

import logging
import os
import socket
from typing import Optional

import structlog

# Global service name bound at configuration time
_SERVICE_NAME: Optional[str] = None

# Event fields that may carry raw configuration values
REDACTED_FIELDS = ("value", "old_value", "new_value")


def _get_log_level(default: str = "INFO") -> int:
    level = os.getenv("LOG_LEVEL", default).upper()
    return getattr(logging, level, logging.INFO)


def _get_json_logs(default: bool = False) -> bool:
    v = os.getenv("JSON_LOGS")
    if v is None:
        return default
    return str(v).lower() == "true"


def drop_config_values(logger, method_name, event_dict):
    """structlog processor removing raw configuration value fields."""
    for field_name in REDACTED_FIELDS:
        event_dict.pop(field_name, None)
    return event_dict


def configure_logging(service_name: str, log_level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """Configure structlog and stdlib logging for the given service.

    Call once at process start, before creating loggers.
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service_name

    level = getattr(logging, (log_level or "").upper(), None) or _get_log_level()
    use_json = json_logs if json_logs is not None else _get_json_logs(False)

    logging.basicConfig(level=level, format="%(message)s")

    # watchdog emits an event per inotify callback at DEBUG
    logging.getLogger("watchdog").setLevel(max(level, logging.WARNING))

    shared_processors = [
        drop_config_values,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if use_json:
        final_processor = structlog.processors.JSONRenderer()
    else:
        final_processor = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            final_processor,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
        wrapper_class=structlog.stdlib.BoundLogger,
    )


def get_logger(module_name: str, **context) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound with standard fields.

    Example:
        logger = get_logger(__name__, component="audit")
    """
    base_context = {
        "service": _SERVICE_NAME or "runtime-config",
        "module": module_name,
        "hostname": socket.gethostname(),
        "pid": os.getpid(),
    }
    if context:
        base_context.update(context)
    return structlog.get_logger(module_name).bind(**base_context)


__all__ = ["configure_logging", "drop_config_values", "get_logger"]
