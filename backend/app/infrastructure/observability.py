"""Structured Logging - one JSON object per record on the root logger.

Invariants:
    - Every record carries timestamp, level, logger and message
    - Gateway extras (tier, state, signal, error_code, ...) appear only when set
    - setup_logging() is idempotent: its own handler is replaced, not stacked

Design Decisions:
    - Stdlib logging with a custom formatter; uvicorn runs with log_config=None
      so its records reach the same handler
    - fmt="text" for local development, "json" everywhere else
"""

import json
import logging
from datetime import datetime, timezone

EXTRA_FIELDS = (
    "error_code", "path", "tier", "state", "signal", "config",
    "connection_label", "outstanding", "attempt", "table",
)
TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, record.__dict__[key]) for key in EXTRA_FIELDS
            if record.__dict__.get(key) is not None
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class _GatewayHandler(logging.StreamHandler):
    """Marks the handler installed by setup_logging."""


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    root = logging.getLogger()
    for existing in [h for h in root.handlers if isinstance(h, _GatewayHandler)]:
        root.removeHandler(existing)
    handler = _GatewayHandler()
    handler.setFormatter(
        JSONFormatter() if fmt == "json" else logging.Formatter(TEXT_FORMAT),
    )
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
