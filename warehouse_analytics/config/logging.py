"""
Logging Configuration

structlog over the stdlib root logger, so uvicorn, SQLAlchemy and
application events share one handler and one renderer (JSON in deployed
environments, console for local work).

Every event carries the app name, environment and version. Batch ids and
enum values (source kind, batch status, category) may be logged as-is;
they are rendered as plain strings.
"""

from enum import Enum
import logging
import sys
from typing import List, Optional
import uuid

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import ProcessorFormatter, add_log_level
from structlog.types import EventDict, Processor, WrappedLogger

from warehouse_analytics.config.settings import Settings, get_settings

# loggers that bypass structlog and need the shared handler
ROUTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


class AppContext:
    """Processor adding app / env / version to every event."""

    def __init__(self, settings: Settings):
        self.context = {
            "app": settings.app_name,
            "env": settings.app_env,
            "version": settings.version,
        }

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        for key, value in self.context.items():
            event_dict.setdefault(key, value)
        return event_dict


def render_domain_values(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """UUIDs become their string form, enums their value."""
    for key, value in event_dict.items():
        if isinstance(value, uuid.UUID):
            event_dict[key] = str(value)
        elif isinstance(value, Enum):
            event_dict[key] = value.value
    return event_dict


def build_processors(settings: Settings) -> List[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        TimeStamper(fmt="iso"),
        AppContext(settings),
        render_domain_values,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def configure_logging(log_level: Optional[str] = None, settings: Optional[Settings] = None) -> None:
    """
    Configure structured logging for the API and the ingestion CLI.

    Args:
        log_level: Override of LOG_LEVEL
        settings: Settings to use instead of get_settings()
    """
    settings = settings or get_settings()
    level = (log_level or settings.monitoring.log_level).upper()
    numeric_level = getattr(logging, level, logging.INFO)

    processors = build_processors(settings)
    structlog.configure(
        processors=processors + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if settings.monitoring.log_format == "json":
        renderer = JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ProcessorFormatter(processor=renderer, foreign_pre_chain=processors))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(numeric_level)

    for name in ROUTED_LOGGERS:
        routed = logging.getLogger(name)
        routed.handlers = []
        routed.propagate = True
        routed.setLevel(numeric_level)

    # POSTGRES_ECHO turns on statement logging through the same handler
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database.echo else logging.WARNING
    )

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=level,
        format=settings.monitoring.log_format,
        database=settings.database.async_url.split("://", 1)[0],
        cache_backend=settings.cache.backend,
    )
