"""sipin_status.events

Decoded representation of one SIP lifecycle event (a CloudEvent JSON
envelope).  ``data`` is kept as the raw decoded JSON value; its shape
depends entirely on ``type``.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sipin_status.shared import EventDecodeError

# Envelope key -> attribute name
REQUIRED_STR_FIELDS = {
    "type": "type",
    "source": "source",
    "correlation_id": "correlation_id",
    "content_type": "content_type",
    "datacontenttype": "datacontenttype",
    "outcome": "outcome",
    "specversion": "specversion",
    "id": "id",
    "subject": "subject",
}

# Fractional seconds of any precision; fromisoformat wants 3 or 6 digits
_FRACTION_RE = re.compile(r"(?<=:\d\d)\.(\d+)")


@dataclass(frozen=True)
class CloudEvent:
    type: str
    source: str
    correlation_id: str
    content_type: str
    time: datetime
    datacontenttype: str
    outcome: str
    specversion: str
    id: str
    subject: str
    data: Any = None


def parse_event_time(value: Any) -> datetime:
    """Parse an RFC 3339 timestamp; naive timestamps are rejected."""
    if not isinstance(value, str) or not value:
        raise EventDecodeError(f"time: expected RFC 3339 string, got {value!r}")
    raw = value.strip()
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    raw = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), raw, count=1)
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise EventDecodeError(f"time: invalid timestamp {value!r}") from exc
    if parsed.tzinfo is None:
        raise EventDecodeError(f"time: timestamp {value!r} has no UTC offset")
    return parsed


def decode_event(payload: bytes | str) -> CloudEvent:
    """Decode one message payload into a CloudEvent.

    Raises:
        EventDecodeError: payload is not JSON, not an object, or misses
            (or mistypes) an envelope field.
    """
    try:
        doc = json.loads(payload)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise EventDecodeError(f"invalid JSON: {exc}") from exc
    if not isinstance(doc, dict):
        raise EventDecodeError(f"expected a JSON object, got {type(doc).__name__}")

    values: dict[str, Any] = {}
    for key, attr in REQUIRED_STR_FIELDS.items():
        value = doc.get(key)
        if not isinstance(value, str):
            raise EventDecodeError(f"{key}: missing or not a string")
        values[attr] = value

    return CloudEvent(
        time=parse_event_time(doc.get("time")),
        data=doc.get("data"),
        **values,
    )
