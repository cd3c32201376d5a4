"""Tests for structured logging."""

import logging

from context_engine.core.logging import StructuredFormatter, get_logger, log_event


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="context_engine.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="cache miss",
        args=(),
        exc_info=None,
        func="lookup",
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formats_event_and_context():
    line = StructuredFormatter().format(
        make_record(event="embedding_cache.miss", context={"scope": "org-1", "model": "m"})
    )

    assert "level=INFO" in line
    assert "logger=context_engine.test" in line
    assert "event=embedding_cache.miss" in line
    assert 'message="cache miss"' in line
    assert line.endswith("scope=org-1 model=m")


def test_plain_record_has_no_event():
    line = StructuredFormatter().format(make_record())

    assert "event=" not in line
    assert "function=lookup" in line


def test_get_logger_configures_once():
    logger = get_logger("context_engine.test_once")
    again = get_logger("context_engine.test_once")

    assert logger is again
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, StructuredFormatter)


def test_log_event_passes_fields(caplog):
    logger = get_logger("context_engine.test_event")

    with caplog.at_level(logging.INFO, logger="context_engine.test_event"):
        log_event(logger, logging.INFO, "rebuild.scheduled", entity_id="f1")

    record = caplog.records[-1]
    assert record.event == "rebuild.scheduled"
    assert record.context == {"entity_id": "f1"}
    assert record.getMessage() == "rebuild.scheduled"
