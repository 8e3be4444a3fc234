from __future__ import annotations
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from insurer_consent.core.config import settings
from insurer_consent.core.correlation import get_correlation_id

# Attributes passed through `extra=` that end up in the JSON line
_EXTRA_FIELDS = (
    "method", "path", "status_code", "duration_ms",
    "consent_id", "status", "reason_code", "idempotency_key", "count",
)

_NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
}


class JsonFormatter(logging.Formatter):
    """One JSON object per line, tagged with the service name and correlation id."""

    def __init__(self, service: str) -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "service": self.service,
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        cid = get_correlation_id()
        if cid:
            payload["correlation_id"] = cid
        payload.update({key: getattr(record, key) for key in _EXTRA_FIELDS if hasattr(record, key)})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str | None = None) -> None:
    root = logging.getLogger()
    root.setLevel((level or settings.LOG_LEVEL).upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter(settings.APP_NAME))

    # Replace whatever uvicorn installed so every line goes out as JSON
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)

    for name, lib_level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(lib_level)
