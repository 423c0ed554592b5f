"""Structured JSON events describing build and apply runs.

Each event is a single log record on ``p3patch.telemetry`` whose message is a
compact JSON object: ``event``, a UTC ``timestamp`` and the caller's fields.
Route that logger to a file handler to collect a machine-readable run log.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Any

TELEMETRY_LOGGER = logging.getLogger("p3patch.telemetry")


def _json_default(value: Any) -> Any:
    # str-based enums (Classification, EditOp) already encode as their value.
    if isinstance(value, PurePath):
        return value.as_posix()
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    return str(value)


def emit_event(event: str, **fields: Any) -> None:
    if not TELEMETRY_LOGGER.isEnabledFor(logging.INFO):
        return
    record = {"event": event, "timestamp": datetime.now(timezone.utc).isoformat(), **fields}
    TELEMETRY_LOGGER.info(json.dumps(record, separators=(",", ":"), default=_json_default))
