"""Log formatting for the daemon (JSON for clusters, text for terminals)."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .config import LoggingConfig

APP_NAME = "consul-sync"

# Fields callers may attach through ``extra=``; anything else is dropped
EXTRA_FIELDS = (
    "trigger", "service", "services", "endpoints", "route", "gateway",
    "hostname", "index", "backoff_seconds", "elapsed_seconds", "status_code",
)

# Third-party loggers that chatter at INFO on every Consul long poll
QUIET_LOGGERS = ("urllib3", "requests")


def _extras(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: getattr(record, key)
        for key in EXTRA_FIELDS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line, tagged with the app name."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "app": APP_NAME,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_extras(record))
        if record.exc_info and record.exc_info[1]:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines; structured extras are appended as key=value."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = _extras(record)
        if not extras:
            return line
        # Keep a traceback, if any, on the lines after the key=value suffix
        head, sep, tail = line.partition("\n")
        suffix = " ".join(f"{k}={v}" for k, v in extras.items())
        return f"{head} {suffix}{sep}{tail}"


def configure_logging(config: LoggingConfig) -> None:
    """Install a single stderr handler on the root logger."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if config.format == "json" else TextFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
