"""
Shared logging configuration for the emoji gallery service.

Log lines are structlog events rendered as JSON (one object per line) on
stdout. In the ``local`` environment a console renderer is used instead.
The request ID and the emoji key being served are carried in context
variables and merged into every event logged while they are set.
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

# Context variables for request correlation
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
gallery_key_var: ContextVar[Optional[str]] = ContextVar("gallery_key", default=None)

_service_name: Optional[str] = None


def configure_logging(service_name: str, log_level: str = "info", env: str = "production") -> None:
    """Configure structured logging for a service."""
    global _service_name
    _service_name = service_name

    renderer = (
        structlog.dev.ConsoleRenderer()
        if env == "local"
        else structlog.processors.JSONRenderer(ensure_ascii=False)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context,
            add_correlation_context,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
        force=True,
    )
    # httpx logs every upstream request at INFO; the client logs its own failures.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Tag events with the configured service name."""
    if _service_name and "service" not in event_dict:
        event_dict["service"] = _service_name
    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add request ID and emoji key to log events."""
    request_id = request_id_var.get()
    if request_id:
        event_dict.setdefault("request_id", request_id)

    key = gallery_key_var.get()
    if key:
        event_dict.setdefault("key", key)

    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set request ID in context, generating one when absent."""
    if not request_id:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def set_gallery_key(key: Optional[str]) -> None:
    gallery_key_var.set(key)


def clear_context():
    """Clear all context variables."""
    request_id_var.set(None)
    gallery_key_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
