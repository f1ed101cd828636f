"""Structured JSON logging for all collector components.

Adds an ALERT level above CRITICAL. Alerts flag schema drift and
per-field failures that operators need to see; they never stop the
pipeline unless termination on alert is switched on.
"""

import logging
import json
import sys
from datetime import datetime, timezone

from ceilometer_collector.errors import AlertRaised

ALERT = logging.CRITICAL + 10
logging.addLevelName(ALERT, "ALERT")


class JSONFormatter(logging.Formatter):
    """Emit logs as structured JSON."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


class AlertPolicyHandler(logging.Handler):
    """Turn ALERT records into AlertRaised at the logging call site."""

    def __init__(self):
        super().__init__(level=ALERT)

    def emit(self, record):
        raise AlertRaised(record.getMessage())


def alert(logger: logging.Logger, msg: str, *args) -> None:
    """Log at ALERT level."""
    logger.log(ALERT, msg, *args)


def configure_logging(level="info", terminate_on_alert=False):
    """Configure structured logging for the collector."""
    root = logging.getLogger("ceilometer_collector")
    for existing in list(root.handlers):
        root.removeHandler(existing)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.addHandler(handler)
    # Added last so the record is written out before the raise.
    if terminate_on_alert:
        root.addHandler(AlertPolicyHandler())
    root.propagate = False
    return root
