# storefront/core/logging.py
import logging
import sys

import structlog

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _json_formatter() -> logging.Formatter:
    """stdlib records rendered as one JSON object per line."""
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
    )


def setup_logging(level: str = "INFO", json: bool = False) -> None:
    """
    Process logging for the API and the TTL job:
    - root level from LOG_LEVEL
    - one stdout handler (previous handlers dropped, so repeated calls do not duplicate lines)
    - JSON_LOG switches the line format to JSON
    """
    root = logging.getLogger()
    root.setLevel(level.upper())

    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_json_formatter() if json else logging.Formatter(_TEXT_FORMAT))
    root.addHandler(handler)

    # chatty third parties
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if level.upper() == "DEBUG" else logging.WARNING
    )
