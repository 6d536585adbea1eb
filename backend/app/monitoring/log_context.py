"""Log formatting that surfaces the structured ``extra`` fields used by the realtime layer."""

from __future__ import annotations

import logging

CONTEXT_FIELDS = ("user_id", "connection_id", "chat_id", "type")


class ContextFormatter(logging.Formatter):
    """Append ``key=value`` pairs for any known context attribute set on the record."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = [
            f"{name}={getattr(record, name)}"
            for name in CONTEXT_FIELDS
            if getattr(record, name, None) not in (None, "")
        ]
        if not context:
            return message
        head, sep, tail = message.partition("\n")
        return f"{head} [{' '.join(context)}]{sep}{tail}"
