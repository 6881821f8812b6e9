"""
Logging setup shared by the API process and the worker.

LOG_FORMAT=json writes one object per line for the log pipeline; LOG_FORMAT=text
is meant for a terminal. Both carry the request id of the HTTP request being
served (empty inside the worker).
"""

import json
import logging
from datetime import datetime, timezone

from ci_insights.middleware.request_context import get_request_id

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s"

# Structured fields passed through `extra=` that make it into JSON lines
EXTRA_FIELDS = ("duration_ms", "status_code", "data_source")

# httpx logs every upstream request at INFO; the client already counts them
NOISY_LOGGERS = {"httpx": logging.WARNING, "httpcore": logging.WARNING}


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        for field in EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def build_handler(log_format: str) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.addFilter(RequestIdFilter())
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    return handler


def configure_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(build_handler(log_format))
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    for name, level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)
