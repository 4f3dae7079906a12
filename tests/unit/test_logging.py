from __future__ import annotations

import json
import logging

from txn_producer.utils.logging import _json_formatter, configure_logging

EXPECTED_ROWS = 10
EXPECTED_BUFFER_SIZE = 1000


def _record(msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_json_formatter_promotes_standard_extra_fields() -> None:
    record = _record()
    record.rows = EXPECTED_ROWS
    record.sink = "csv"

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.logger"
    assert payload["message"] == "hello"
    assert payload["rows"] == EXPECTED_ROWS
    assert payload["sink"] == "csv"


def test_json_formatter_supports_nested_extra_field() -> None:
    record = _record()
    record.extra = {"buffer_size": EXPECTED_BUFFER_SIZE}

    payload = json.loads(_json_formatter(record))

    assert payload["buffer_size"] == EXPECTED_BUFFER_SIZE


def test_json_formatter_renders_non_serializable_values_as_strings() -> None:
    record = _record()
    record.sinks = {"csv": {"written": 3}}
    record.path = object()

    payload = json.loads(_json_formatter(record))

    assert payload["sinks"] == {"csv": {"written": 3}}
    assert isinstance(payload["path"], str)


def test_json_formatter_includes_exception_text() -> None:
    try:
        raise ValueError("boom")
    except ValueError:
        import sys

        record = logging.LogRecord(
            name="test.logger",
            level=logging.ERROR,
            pathname=__file__,
            lineno=1,
            msg="failed",
            args=(),
            exc_info=sys.exc_info(),
        )

    payload = json.loads(_json_formatter(record))

    assert "ValueError: boom" in payload["exc_info"]


def test_configure_logging_sets_root_level() -> None:
    configure_logging(level="warning", json_logs=False)
    assert logging.getLogger().level == logging.WARNING
    configure_logging(level="INFO", json_logs=True)
    assert logging.getLogger().level == logging.INFO
