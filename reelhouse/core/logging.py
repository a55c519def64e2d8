from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

import structlog


def configure_logging(level: int = logging.INFO) -> None:
    """Render structlog events as JSON through the stdlib root logger (stderr), never stdout."""
    logging.basicConfig(format="%(message)s", level=level)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )


def get_logger(**initial_values: Any) -> structlog.BoundLogger:
    # Lazy proxy: module-level loggers pick up configure_logging() even when imported first.
    return structlog.get_logger(**initial_values)


@contextmanager
def bound_context(**values: Any) -> Iterator[None]:
    """Attach ``values`` to every log line emitted inside the block (per task)."""
    tokens = structlog.contextvars.bind_contextvars(**values)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)


__all__ = ["configure_logging", "get_logger", "bound_context"]
