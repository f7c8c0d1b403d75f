"""Logging setup — plain or JSON lines, each tagged with the request's trace id."""

import json
import logging
import sys
from datetime import datetime, timezone

from app.core.config import settings
from app.core.tracing import NO_TRACE, TraceIdFilter

# Extras attached by the engine (adapters pass `bridge`), copied into JSON output
_JSON_EXTRAS = ("bridge",)


class JSONFormatter(logging.Formatter):
    """One JSON object per record: time, level, logger, trace id, message."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", NO_TRACE)
        if request_id != NO_TRACE:
            log_data["request_id"] = request_id
        for name in _JSON_EXTRAS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)
        if record.exc_info and record.exc_info[1]:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, ensure_ascii=False)


def setup_logging() -> None:
    """Install a single stdout handler on the root logger."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(TraceIdFilter())
    if settings.log_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(request_id)s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    root.addHandler(handler)

    # Third-party loggers stay at WARNING unless debugging SQL
    for name in ("httpx", "httpcore", "redis"):
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(level if settings.app_debug else logging.WARNING)
