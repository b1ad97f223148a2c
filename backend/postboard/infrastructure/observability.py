"""Structured Logging: one JSON object per record, carrying post and collaborator fields.

Invariants:
    - Every record has ts, level, logger and msg keys
    - Known extras (post_id, user_id, collaborator, ...) are copied only when set
    - setup_logging can be called repeatedly; it replaces its own handler only
"""

import json
import logging
from datetime import datetime, timezone

_EXTRA_FIELDS = (
    "post_id", "user_id", "tag_id", "error_code", "attempt",
    "collaborator", "status_code", "path", "amount",
)

_TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(
            (name, getattr(record, name)) for name in _EXTRA_FIELDS
            if getattr(record, name, None) is not None
        )
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    root = logging.getLogger()
    for handler in [h for h in root.handlers if getattr(h, "_postboard", False)]:
        root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler._postboard = True
    handler.setFormatter(JSONFormatter() if fmt == "json" else logging.Formatter(_TEXT_FORMAT))
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
