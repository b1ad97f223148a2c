"""Structured logging: JSON formatter fields and idempotent setup."""

import json
import logging

from postboard.infrastructure.observability import JSONFormatter, setup_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "postboard.test", logging.INFO, __file__, 1, "post %s created", (3,), None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_core_fields():
    payload = json.loads(JSONFormatter().format(_record()))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "postboard.test"
    assert payload["msg"] == "post 3 created"
    assert payload["ts"].endswith("+00:00")


def test_json_formatter_surfaces_extras():
    payload = json.loads(JSONFormatter().format(
        _record(post_id=3, collaborator="ledger", unrelated="skip"),
    ))

    assert payload["post_id"] == 3
    assert payload["collaborator"] == "ledger"
    assert "unrelated" not in payload


def test_setup_logging_is_idempotent():
    setup_logging("DEBUG", "json")
    setup_logging("INFO", "text")

    ours = [h for h in logging.root.handlers if getattr(h, "_postboard", False)]
    assert len(ours) == 1
    assert logging.root.level == logging.INFO

    for handler in ours:
        logging.root.removeHandler(handler)
