import logging
import os
import sys

import structlog


def setup_logging(level: str | None = None, debug: bool = False) -> None:
    """Configure structlog with JSON output.

    The level comes from ``level``, then ``PARLEY_LOG_LEVEL``, then ``INFO``.
    ``debug=True`` forces ``DEBUG``.
    """
    if debug:
        level_value = logging.DEBUG
    else:
        level_name = (level or os.getenv("PARLEY_LOG_LEVEL", "INFO")).upper()
        level_value = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(level=level_value, stream=sys.stdout, force=True)
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.EventRenamer("message"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_value),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
