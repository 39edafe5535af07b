import logging
import os

import structlog
from dotenv import load_dotenv

load_dotenv()

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def setup_logging(level: int | None = logging.INFO, json_logs: bool | None = None) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: The logging level to use. Defaults to INFO.
        json_logs: Render JSON lines instead of the colored console output.
            Defaults to the LOG_FORMAT environment variable ("json" or "console").
    """
    if json_logs is None:
        json_logs = os.getenv("LOG_FORMAT", "console").lower() == "json"

    # Basic configuration
    logging.basicConfig(level=level)
    logging.getLogger().setLevel(level)

    if json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
            pad_event=50,  # For better alignment of logs
        )

    # Configure processors for structlog
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


setup_logging(level=LOG_LEVELS.get(os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO))

log = structlog.get_logger("General logger")
