"""JSON log output for flows.

Engine modules log through module loggers and attach their context with
`extra=`. `JsonFormatter` lifts the flow context keys (`flow`, `task`,
`attempt`, `action`, `state`) to the top level of each line so that one flow's
history can be filtered directly; any other fields go under `extra`.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any, TextIO

FLOW_CONTEXT_KEYS: tuple[str, ...] = ("flow", "task", "attempt", "action", "state")

ENGINE_LOGGER = "async_flow.flow"

_STANDARD_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {
    "message",
    "asctime",
    "taskName",
}


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _STANDARD_RECORD_ATTRS and not key.startswith("_")
    }


class JsonFormatter(logging.Formatter):
    """One JSON object per record. Values JSON cannot encode are written as `repr()`."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (record)
        fields = _record_fields(record)
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in FLOW_CONTEXT_KEYS:
            if key in fields:
                payload[key] = fields.pop(key)
        if fields:
            payload["extra"] = fields
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=repr)


def configure_logging(
    level: str,
    *,
    stream: TextIO | None = None,
    engine_level: int = logging.INFO,
) -> None:
    """Write every record to `stream` (stdout by default) as a JSON line.

    Existing root handlers are replaced. The engine logs each state change
    at DEBUG, so its loggers are held at `engine_level` unless the root level
    is higher.
    """

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream=stream or sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
    root.setLevel(level.upper())

    logging.getLogger(ENGINE_LOGGER).setLevel(max(root.level, engine_level))
