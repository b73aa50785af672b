"""Tests for JSON log formatter.

Tests verify that logs are formatted correctly with:
- Required schema fields (timestamp, level, service, trace_id, principal_id, message)
- Context fields with credential redaction
- Exception information
- Source location
"""

import json
import logging
import sys
from datetime import UTC, datetime

import pytest

from libs.common.logging.formatter import REDACTED, JSONFormatter, redact


def make_record(msg: str = "order_created", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="/srv/gateway/orders.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Test suite for JSONFormatter."""

    @pytest.fixture()
    def formatter(self) -> JSONFormatter:
        return JSONFormatter(service_name="payment_gateway")

    def test_basic_log_format(self, formatter: JSONFormatter) -> None:
        record = make_record(trace_id="trace-123", principal_id="user-9")

        log_dict = json.loads(formatter.format(record))

        assert log_dict["level"] == "INFO"
        assert log_dict["service"] == "payment_gateway"
        assert log_dict["trace_id"] == "trace-123"
        assert log_dict["principal_id"] == "user-9"
        assert log_dict["message"] == "order_created"
        assert "context" not in log_dict

    def test_timestamp_format(self, formatter: JSONFormatter) -> None:
        record = make_record()
        record.created = datetime(2026, 3, 14, 9, 26, 53, 589000, tzinfo=UTC).timestamp()

        log_dict = json.loads(formatter.format(record))

        assert log_dict["timestamp"] == "2026-03-14T09:26:53.589Z"

    def test_missing_correlation_fields_are_null(self, formatter: JSONFormatter) -> None:
        log_dict = json.loads(formatter.format(make_record()))
        assert log_dict["trace_id"] is None
        assert log_dict["principal_id"] is None

    def test_explicit_context(self, formatter: JSONFormatter) -> None:
        record = make_record(context={"order_id": "k3j9x0a1bc", "amount": "250.00"})

        log_dict = json.loads(formatter.format(record))

        assert log_dict["context"] == {"order_id": "k3j9x0a1bc", "amount": "250.00"}

    def test_extra_fields_collected_when_no_context(self, formatter: JSONFormatter) -> None:
        record = make_record(merchant_id="m1")

        log_dict = json.loads(formatter.format(record))

        assert log_dict["context"] == {"merchant_id": "m1"}

    def test_context_is_redacted(self, formatter: JSONFormatter) -> None:
        record = make_record(context={"handle": "alice", "password": "hunter2"})

        log_dict = json.loads(formatter.format(record))

        assert log_dict["context"] == {"handle": "alice", "password": REDACTED}

    def test_context_disabled(self) -> None:
        formatter = JSONFormatter(service_name="payment_gateway", include_context=False)
        log_dict = json.loads(formatter.format(make_record(context={"order_id": "x"})))
        assert "context" not in log_dict

    def test_exception_info(self, formatter: JSONFormatter) -> None:
        try:
            raise ValueError("bad amount")
        except ValueError:
            record = make_record()
            record.exc_info = sys.exc_info()

        log_dict = json.loads(formatter.format(record))

        assert log_dict["exception"]["type"] == "ValueError"
        assert log_dict["exception"]["message"] == "bad amount"
        assert "Traceback" in log_dict["exception"]["traceback"]

    def test_source_location(self, formatter: JSONFormatter) -> None:
        log_dict = json.loads(formatter.format(make_record()))
        assert log_dict["source"]["file"] == "/srv/gateway/orders.py"
        assert log_dict["source"]["line"] == 42

    def test_non_serialisable_values_use_str(self, formatter: JSONFormatter) -> None:
        when = datetime(2026, 1, 1, tzinfo=UTC)
        log_dict = json.loads(formatter.format(make_record(context={"at": when})))
        assert log_dict["context"]["at"] == str(when)


class TestRedact:
    def test_sensitive_fragments(self) -> None:
        cleaned = redact(
            {
                "secret": "s",
                "new_password": "p",
                "Authorization": "Bearer x",
                "access_token": "t",
                "order_id": "k3j9x0a1bc",
            }
        )
        assert cleaned == {
            "secret": REDACTED,
            "new_password": REDACTED,
            "Authorization": REDACTED,
            "access_token": REDACTED,
            "order_id": "k3j9x0a1bc",
        }

    def test_nested(self) -> None:
        original = {"request": {"handle": "bob", "password_hash": "h"}}
        cleaned = redact(original)
        assert cleaned == {"request": {"handle": "bob", "password_hash": REDACTED}}
        assert original["request"]["password_hash"] == "h"
