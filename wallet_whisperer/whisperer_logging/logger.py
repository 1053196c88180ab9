"""
structlog setup for the API server, CLI tools and library code.

Every record carries event_type, level, ISO timestamp, logger and service.
Records go to stderr so CLI output on stdout stays machine-readable.

Environment:
    LOG_LEVEL   debug | info | warning | error (default: info)
    LOG_FORMAT  json (default) | console (colored key=value for local runs)

No wallet_whisperer imports here: every other module imports this one.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

SERVICE_NAME = "wallet_whisperer"
LOG_FORMATS = ("json", "console")


def _level_from_env() -> int:
    name = (os.getenv("LOG_LEVEL") or "INFO").strip().upper()
    return getattr(logging, name, logging.INFO)


def _format_from_env() -> str:
    fmt = (os.getenv("LOG_FORMAT") or "json").strip().lower()
    return fmt if fmt in LOG_FORMATS else "json"


def _add_timestamp(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    return event_dict


def _add_service(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _rename_event(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog's positional 'event' becomes event_type (snake_case event names)."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    return event_dict


def _renderer(fmt: str) -> Any:
    if fmt == "console":
        return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty(), event_key="event_type")
    return structlog.processors.JSONRenderer(sort_keys=True)


def configure_logging(level: int | None = None, fmt: str | None = None) -> None:
    """Configure structlog. Runs once at import with values from the environment."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            _add_timestamp,
            _add_service,
            _rename_event,
            _renderer(fmt or _format_from_env()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level if level is not None else _level_from_env()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_logging()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Module logger:

        logger = get_logger(__name__)
        logger.info("profile_computed", wallet_id=addr[:16], trade_count=96)
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_wallet(wallet_id: str, name: str = SERVICE_NAME) -> structlog.BoundLogger:
    """Logger with a shortened wallet_id bound to every call."""
    short = wallet_id[:16] + "..." if len(wallet_id) > 16 else wallet_id
    return get_logger(name).bind(wallet_id=short)
