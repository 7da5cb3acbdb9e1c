"""
Logging configuration for the application.

Both the API server and the lookup CLI log through structlog. The server
logs to stdout; the CLI logs to stderr so its JSON result can be piped.
"""
import logging
import sys

import structlog

from tcgprice.core.config import settings

# Chatty libraries that only matter when something is wrong
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def resolve_log_level() -> int:
    """LOG_LEVEL wins; otherwise DEBUG in debug mode and INFO elsewhere."""
    if settings.log_level:
        level = logging.getLevelName(settings.log_level.upper())
        if isinstance(level, int):
            return level
    return logging.DEBUG if settings.api_debug else logging.INFO


def build_renderer(stream):
    """
    Pick the final processor.

    ``LOG_FORMAT`` forces ``json`` or ``console``. Left unset, debug mode
    gets the console renderer and everything else gets JSON lines. Colors
    are only used when the stream is a terminal.
    """
    log_format = (settings.log_format or "").lower()
    if not log_format:
        log_format = "console" if settings.api_debug else "json"

    if log_format == "console":
        isatty = getattr(stream, "isatty", None)
        return structlog.dev.ConsoleRenderer(colors=bool(isatty and isatty()))
    return structlog.processors.JSONRenderer(ensure_ascii=False)


def setup_logging(stream=None, cache_loggers: bool = True):
    """
    Configure structured logging for the application.

    Args:
        stream: Where log lines go. Defaults to stdout.
        cache_loggers: Let module loggers keep their first bound logger.
            Pass False when the stream can be swapped or closed under
            the process, as with captured test output.
    """
    stream = stream or sys.stdout
    log_level = resolve_log_level()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            build_renderer(stream),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=cache_loggers,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=stream,
        level=log_level,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
