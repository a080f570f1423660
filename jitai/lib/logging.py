"""
Structured logging configuration for the JITAI engine.

Every engine module logs through `logging.getLogger(__name__)`; those
stdlib records and any `structlog.get_logger()` events are rendered by
one structlog ProcessorFormatter. Decision logs therefore come out as one
JSON object per line in production (easy to filter by decision source)
and as console lines in dev. Each event carries the service name.

Usage:
    from jitai.lib.logging import setup_logging

    setup_logging()                  # JITAI_DEV_MODE / LOG_LEVEL from env
    setup_logging("DEBUG", json_logs=True)
"""

import logging
import os
import sys

import structlog

SERVICE_NAME = "jitai-engine"

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite", "sqlalchemy.engine", "uvicorn.access")


def add_service_name(
    logger: logging.Logger, method_name: str, event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def setup_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """
    Configure structlog and stdlib logging for the engine.

    Args:
        level: Override for LOG_LEVEL (e.g. "DEBUG").
        json_logs: Force JSON (True) or console (False) rendering; by
            default console when JITAI_DEV_MODE=1, JSON otherwise.
    """
    if json_logs is None:
        json_logs = os.environ.get("JITAI_DEV_MODE") != "1"
    log_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_service_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    renderer: structlog.types.Processor
    if json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

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
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    for noisy_logger in NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)
