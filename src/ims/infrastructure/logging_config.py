"""Logging setup for the CLI and any process embedding the services.

Plain text by default; one JSON object per line when ``json_output`` is
set, for log shippers.  Extra structured context can be attached with
``logger.info(..., extra={"extra_fields": {...}})``.
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import datetime, timezone

PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class StructuredFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "@timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_obj["error"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stacktrace": traceback.format_exception(*record.exc_info),
            }

        if hasattr(record, "extra_fields"):
            log_obj["custom"] = record.extra_fields

        return json.dumps(log_obj, default=str)


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Install a single stderr handler on the ``ims`` logger tree."""
    logger = logging.getLogger("ims")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers = []

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter() if json_output else logging.Formatter(PLAIN_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
