"""
Structured logging configuration using structlog.

All logs are output as JSON with consistent context fields. Events are also
copied to the log-aggregation service through the log shipper once it has
been started.
"""
import structlog
import logging
import sys

from notifyhub.services.log_shipper import log_shipper


def configure_logging():
    """Configure structlog for JSON output with context."""

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.INFO,
    )

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            log_shipper,
            structlog.processors.JSONRenderer(default=str)
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger()


# Create logger instance
logger = configure_logging()


def get_logger(**context):
    """
    Get a logger with additional context bound.

    Usage:
        log = get_logger(request_id=request_id, template_id=template_id)
        log.info("message", extra_field=value)
    """
    return logger.bind(**context)
