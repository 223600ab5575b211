"""Structured logging for the analytics service using structlog.

Every event carries the ``service`` name bound at setup, and the HTTP layer
adds ``route`` for the duration of a request through structlog.contextvars.
Decimal values in event context render as strings in JSON output.
"""

import logging

import structlog

SERVICE_NAME = "oitrader"

# Third-party loggers that are chatty at INFO
_QUIET_LOGGERS = ("ccxt", "uvicorn.access", "httpx")


def _json_renderer() -> structlog.types.Processor:
    # default=str keeps Decimal prices and rates exact in JSON output
    return structlog.processors.JSONRenderer(default=str)


def setup_logging(log_level: str = "INFO", log_format: str = "console", service: str = SERVICE_NAME) -> None:
    """Configure structlog over stdlib logging.

    Args:
        log_level: Root level name (DEBUG, INFO, ...). Unknown names fall back to INFO.
        log_format: "json" for machine-readable output, anything else renders
            for the console.
        service: Bound into the context of every event.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format.lower() == "json":
        renderer = _json_renderer()
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

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            # Records from ccxt/uvicorn pass through the same chain
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.contextvars.bind_contextvars(service=service)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
