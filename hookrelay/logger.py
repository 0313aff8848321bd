import logging
import sys

import structlog
from structlog.types import EventDict, WrappedLogger

from hookrelay.config import settings

REDACTED = "[redacted]"
SENSITIVE_KEYS = frozenset({"signature", "secret", "token", "authorization"})

# third-party loggers routed through our handler, with an optional fixed level
QUIET_LOGGERS: dict[str, int | None] = {
    "_granian": None,
    "granian.access": None,
    "fastapi": None,
    "sqlalchemy.engine": logging.WARNING,
}


def redact_sensitive(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    for key in event_dict:
        if any(marker in key.lower() for marker in SENSITIVE_KEYS):
            event_dict[key] = REDACTED
    return event_dict


def setup_logging(level: int | None = None) -> None:
    """Route structlog and stdlib logging through one stdout handler."""
    if level is None:
        level = logging.DEBUG if settings.debug else logging.INFO

    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_sensitive,
    ]

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[structlog.stdlib.add_logger_name, *shared_processors],
        processor=(
            structlog.dev.ConsoleRenderer()
            if settings.debug
            else structlog.processors.JSONRenderer()
        ),
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)

    for name, fixed_level in QUIET_LOGGERS.items():
        quiet = logging.getLogger(name)
        quiet.propagate = False
        quiet.handlers = [handler]
        quiet.setLevel(fixed_level or level)
