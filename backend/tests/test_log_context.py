from __future__ import annotations

import logging

from app.monitoring.log_context import ContextFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("parley.realtime.registry", logging.WARNING, __file__, 1, "queue full", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_context_fields_are_appended():
    formatter = ContextFormatter("%(levelname)s %(message)s")

    line = formatter.format(_record(user_id="7", connection_id="abc", chat_id=None))

    assert line == "WARNING queue full [user_id=7 connection_id=abc]"


def test_records_without_context_are_unchanged():
    formatter = ContextFormatter("%(message)s")

    assert formatter.format(_record()) == "queue full"
