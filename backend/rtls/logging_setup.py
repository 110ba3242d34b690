# rtls/logging_setup.py
# ------------------------------------------------------------
# structlog configuration shared by the API and the simulator.
#
# Modules log through structlog.get_logger(__name__) with
# key/value context; this wires them to stdlib logging so
# uvicorn and application logs share one output.
# ------------------------------------------------------------

import logging
import sys

import structlog


def configure_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure stdlib + structlog with a deterministic format."""
    level_value = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=level_value,
        format="%(message)s",
        stream=sys.stdout,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_format
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
