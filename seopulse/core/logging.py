"""SEOPULSE — Structured JSON Logging.

One JSON object per line on stdout. Context passed through `extra=` (site,
date, job, error kind, timings) becomes top-level keys so failed
(site, date) pairs can be filtered without parsing messages.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from seopulse.config import settings

CONTEXT_FIELDS = (
    "site_id",
    "date",
    "job_type",
    "job_id",
    "error_kind",
    "duration_ms",
    "status_code",
)


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            {key: getattr(record, key) for key in CONTEXT_FIELDS if hasattr(record, key)}
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def get_logger(name: str) -> logging.Logger:
    """Logger under the `seopulse.` namespace with the JSON handler attached once."""
    logger = logging.getLogger(f"seopulse.{name}")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
        logger.propagate = False
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return logger
