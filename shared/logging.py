"""
Shared logging configuration for the rules engine.
"""

import sys
import structlog
import logging
import uuid
import time
from typing import Any, Dict, Iterator, Optional
from contextlib import contextmanager
from contextvars import ContextVar

# Context variables for correlation IDs
run_id_var: ContextVar[Optional[str]] = ContextVar('run_id', default=None)
session_id_var: ContextVar[Optional[str]] = ContextVar('session_id', default=None)


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structured logging for the engine."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context,
            add_correlation_context,
            add_timestamp,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )
    logging.getLogger(service_name).setLevel(getattr(logging, log_level.upper()))


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add service context to log events."""
    # "rules_engine.almanac" -> service "rules_engine", component "almanac"
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        service_name, component = logger_name.split(".", 1)
        event_dict["service"] = service_name
        event_dict["component"] = component

    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add correlation context to log events."""
    run_id = run_id_var.get()
    if run_id:
        event_dict["run_id"] = run_id

    session_id = session_id_var.get()
    if session_id:
        event_dict["session_id"] = session_id

    return event_dict


def add_timestamp(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add high-precision timestamp to log events."""
    event_dict["timestamp"] = time.time()
    return event_dict


@contextmanager
def run_context(run_id: Optional[str] = None) -> Iterator[str]:
    """Bind an engine run ID for the block, restoring the caller's afterwards."""
    run_id = run_id or str(uuid.uuid4())
    token = run_id_var.set(run_id)
    try:
        yield run_id
    finally:
        run_id_var.reset(token)


def get_run_id() -> Optional[str]:
    """Return the run ID bound to the current context, if any."""
    return run_id_var.get()


@contextmanager
def session_context(session_id: str) -> Iterator[str]:
    """Bind an almanac session ID for the block, restoring the caller's afterwards."""
    token = session_id_var.set(session_id)
    try:
        yield session_id
    finally:
        session_id_var.reset(token)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
