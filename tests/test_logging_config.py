import json
import logging
import sys

from chatvault.logging_config import StructuredFormatter, setup_logging


def _record(**extra):
    record = logging.LogRecord(
        "chatvault.ingestion.service", logging.INFO, __file__, 1, "stored %s", ("c1",), None
    )
    record.__dict__.update(extra)
    return record


def test_structured_formatter_emits_json_with_extras():
    payload = json.loads(StructuredFormatter().format(_record(conversation_id="c1", duration_ms=12)))

    assert payload["level"] == "INFO"
    assert payload["module"] == "chatvault.ingestion.service"
    assert payload["message"] == "stored c1"
    assert payload["conversation_id"] == "c1"
    assert payload["duration_ms"] == 12
    assert "exception" not in payload


def test_structured_formatter_includes_traceback():
    try:
        raise ValueError("bad markup")
    except ValueError:
        record = _record()
        record.exc_info = sys.exc_info()

    payload = json.loads(StructuredFormatter().format(record))

    assert "ValueError: bad markup" in payload["exception"]


def test_setup_logging_installs_single_handler():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging("debug", "json")
        setup_logging("warning", "json")

        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)
        assert root.level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
