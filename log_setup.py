"""structlog configuration shared by the web app and the terminal client."""

import logging
import uuid

import structlog

_configured = False


def setup_logging(level="INFO", json_output=False):
    """Configure structlog on top of stdlib logging. Safe to call repeatedly."""
    global _configured
    if _configured:
        return

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )
    _configured = True


def bind_request_context(endpoint):
    """Tag every log line of the current request with the endpoint and a short id."""
    request_id = uuid.uuid4().hex[:8]
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(endpoint=endpoint, request_id=request_id)
    return request_id


def clear_request_context():
    structlog.contextvars.clear_contextvars()


def get_logger(name="refmonster"):
    return structlog.get_logger(name)
