"""Structured logging — redaction filter and JSON formatter."""

import json
import logging

from hera_core.infrastructure.observability import JSONFormatter, RedactingFilter


def _record(msg, args=(), **extra):
    record = logging.LogRecord("hera.test", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_filter_masks_emails_in_message():
    record = _record("login failed for ana@example.com")
    assert RedactingFilter().filter(record) is True
    assert "ana@example.com" not in record.getMessage()


def test_filter_masks_emails_in_args():
    record = _record("user %s", ("ana@example.com",))
    RedactingFilter().filter(record)
    assert "ana@example.com" not in record.getMessage()


def test_filter_drops_sensitive_keys_from_mapping_args():
    record = _record("claims %(user_id)s", ({"user_id": "u-1", "permissions": ["x"]},))
    RedactingFilter().filter(record)
    assert record.args == {"user_id": "u-1"}


def test_filter_redacts_extra_fields():
    record = _record("denied", reason="token for ana@example.com")
    RedactingFilter().filter(record)
    assert "ana@example.com" not in record.reason


def test_json_formatter_surfaces_known_extras():
    record = _record("Stat failed", stat_id="revenue", error_kind="Timeout", secret="x")
    payload = json.loads(JSONFormatter().format(record))
    assert payload["message"] == "Stat failed"
    assert payload["level"] == "INFO"
    assert payload["stat_id"] == "revenue"
    assert payload["error_kind"] == "Timeout"
    assert "secret" not in payload
    assert "timestamp" in payload
