import json
import logging
import sys
from datetime import datetime, timezone

from .config import config

_CORE_KEYS = ("ts", "level", "logger", "event", "env")
_managed: set[str] = set()


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line: event name plus the record's `context` dict."""

    def format(self, record):
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
            "env": config.ENV,
        }
        ctx = getattr(record, "context", None)
        if isinstance(ctx, dict):
            clashes = {k: v for k, v in ctx.items() if k in _CORE_KEYS}
            payload.update({k: v for k, v in ctx.items() if k not in _CORE_KEYS})
            if clashes:
                payload["context"] = clashes
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        # stderr: stdout is reserved for CLI output
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JsonLogFormatter())
        logger.addHandler(handler)
        logger.setLevel(config.LOG_LEVEL)
        logger.propagate = False
        _managed.add(name)
    return logger


def set_log_level(level: str) -> None:
    """Re-level every logger handed out by get_logger."""
    for name in _managed:
        logging.getLogger(name).setLevel(level.upper())
