"""structlog setup shared by the LinkDesk API and the ``linkdesk`` CLI.

Service modules keep using ``logging.getLogger(__name__)``; their records are
rendered by structlog so the ``request_id`` bound by the web middleware shows
up on every line logged while a request is handled.

Reads the environment directly rather than ``get_config()`` because the web
app configures logging at import time, before ``DATABASE_URL`` is checked.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Any

import structlog

LOG_FILE = Path("logs/linkdesk.log")

# Per-request chatter from the OpenAI client and its HTTP transport
QUIET_LOGGERS = ("httpx", "httpcore", "openai")


def _wants_json() -> bool:
    return (
        os.getenv("JSON_LOGS", "false").lower() == "true"
        or os.getenv("LOG_FORMAT", "text").lower() == "json"
    )


def configure_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """Route stdlib logging through structlog.

    Args:
        level: Root level; defaults to ``LOG_LEVEL`` (INFO)
        json_logs: JSON lines instead of the console renderer; defaults to
            ``JSON_LOGS=true`` or ``LOG_FORMAT=json``
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_logs is None:
        json_logs = _wants_json()
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors + [renderer],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if LOG_FILE.parent.exists():
        handlers.append(logging.FileHandler(LOG_FILE))

    logging.basicConfig(
        format="%(message)s",
        handlers=handlers,
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
