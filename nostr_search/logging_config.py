"""
Structlog configuration shared by the API server and the ingestion command.
"""

import logging
import sys
from typing import Any, Optional, TextIO

import structlog

from nostr_search.config import Settings


def configure_logging(level: str = "INFO", stream: Optional[TextIO] = None) -> None:
    """
    Configure structlog for JSON logging with ISO timestamps.

    All logs are output as JSON with consistent fields:
    - timestamp: ISO 8601 format
    - level: log level (info, warning, error, etc.)
    - event: log message
    - Additional context fields (event_id, mode, etc.)

    The ingestion command passes ``sys.stderr`` so that log lines never
    interleave with the ack records it writes to stdout.
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    structlog.configure(
        processors=shared_processors + [
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
            structlog.processors.JSONRenderer(),
        ],
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level.upper())

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def configure_sentry(settings: Settings) -> None:
    """
    Initialize Sentry error tracking if SENTRY_DSN is configured.
    """
    if not settings.SENTRY_DSN:
        return

    logger = structlog.get_logger(__name__)
    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
            ],
            traces_sample_rate=0.1,
            environment="development" if settings.DEBUG else "production",
        )
        logger.info("sentry_initialized", dsn_prefix=settings.SENTRY_DSN[:20] + "...")
    except Exception as e:
        logger.warning("sentry_init_failed", error=str(e))
