"""
structlog configuration shared by the API and the operational scripts.

Every record goes through stdlib logging so uvicorn, SQLAlchemy and our
own loggers end up in one stream: JSON in production, colored console
output everywhere else. Request-scoped fields (request_id, method, path)
are merged in from contextvars bound by RequestLoggingMiddleware.
"""

import logging
import sys
from typing import Optional

import structlog

from boxoffice.core.config import get_settings

_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "stripe": logging.WARNING,
    "passlib": logging.ERROR,
}


def setup_logging(json_logs: Optional[bool] = None, level: Optional[str] = None) -> None:
    settings = get_settings()
    if json_logs is None:
        json_logs = settings.ENVIRONMENT == "production"

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_logs:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ]
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    # Replace, not append: setup runs again for every app built in tests
    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    level_name = (level or settings.LOG_LEVEL).upper()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
