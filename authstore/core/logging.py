"""Logging setup shared by the stores.

Store modules log through ``logging.getLogger(__name__)``; security audit
events (token reuse, family revocation) go through structlog. Both end up
in the stdlib root handler once ``configure_logging`` has run.
"""

import logging

import structlog

from authstore.core.config import Settings


def configure_logging(config: Settings) -> None:
    """Configure stdlib logging and structlog once at process startup.

    Args:
        config: Settings providing ``log_level`` and ``log_format``.
    """
    level = getattr(logging, config.log_level)
    logging.basicConfig(level=level, format="%(message)s")
    logging.getLogger("authstore").setLevel(level)

    renderer: structlog.types.Processor
    if config.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
