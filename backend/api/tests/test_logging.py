import json
import logging
import sys

from contentflow.logging_setup import JSONFormatter


def _record(exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        "contentflow.authz", logging.WARNING, __file__, 1, "denied %s", ("user-x",), exc_info
    )


def test_json_formatter_emits_one_object() -> None:
    line = JSONFormatter().format(_record())

    entry = json.loads(line)
    assert entry["level"] == "WARNING"
    assert entry["logger"] == "contentflow.authz"
    assert entry["message"] == "denied user-x"
    assert "exception" not in entry


def test_json_formatter_includes_traceback() -> None:
    try:
        raise RuntimeError("store down")
    except RuntimeError:
        entry = json.loads(JSONFormatter().format(_record(sys.exc_info())))

    assert "RuntimeError: store down" in entry["exception"]
