"""Unit tests for CloudEvent decoding."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from sipin_status.events import decode_event, parse_event_time
from sipin_status.shared import EventDecodeError

from sip_fixtures import envelope


class TestParseEventTime:
    def test_zulu_suffix(self):
        assert parse_event_time("2024-03-01T10:00:00.000Z") == datetime(
            2024, 3, 1, 10, 0, tzinfo=timezone.utc
        )

    def test_explicit_offset(self):
        parsed = parse_event_time("2024-03-01T12:00:00+02:00")
        assert parsed.utcoffset() == timedelta(hours=2)
        assert parsed == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value, micros", [
        ("2024-03-01T10:00:00.1Z", 100000),
        ("2024-03-01T10:00:00.12Z", 120000),
        ("2024-03-01T10:00:00.1234+00:00", 123400),
        ("2024-03-01T10:00:00.123456789Z", 123456),
    ])
    def test_any_fraction_precision(self, value, micros):
        assert parse_event_time(value) == datetime(
            2024, 3, 1, 10, 0, 0, micros, tzinfo=timezone.utc
        )

    def test_naive_rejected(self):
        with pytest.raises(EventDecodeError, match="offset"):
            parse_event_time("2024-03-01T10:00:00")

    @pytest.mark.parametrize("value", [None, "", "yesterday", 1709287200])
    def test_invalid(self, value):
        with pytest.raises(EventDecodeError):
            parse_event_time(value)


class TestDecodeEvent:
    def test_full_envelope(self):
        doc = envelope("be.meemoo.sipin.bag.unzip", data={"outcome": "ok"})
        event = decode_event(json.dumps(doc).encode())
        assert event.type == "be.meemoo.sipin.bag.unzip"
        assert event.correlation_id == "corr-1"
        assert event.subject == "bag-001.bag.zip"
        assert event.specversion == "1.0"
        assert event.data == {"outcome": "ok"}
        assert event.time.tzinfo is not None

    def test_accepts_str_payload(self):
        event = decode_event(json.dumps(envelope("x")))
        assert event.type == "x"

    def test_missing_data_is_none(self):
        doc = envelope("x")
        del doc["data"]
        assert decode_event(json.dumps(doc)).data is None

    def test_invalid_json(self):
        with pytest.raises(EventDecodeError, match="invalid JSON"):
            decode_event(b"{not json")

    def test_invalid_utf8(self):
        with pytest.raises(EventDecodeError):
            decode_event(b"\xff\xfe\xfa")

    def test_not_an_object(self):
        with pytest.raises(EventDecodeError, match="JSON object"):
            decode_event(b"[1, 2]")

    @pytest.mark.parametrize("key", ["type", "correlation_id", "subject", "specversion"])
    def test_missing_required_field(self, key):
        doc = envelope("x")
        del doc[key]
        with pytest.raises(EventDecodeError, match=key):
            decode_event(json.dumps(doc))

    def test_non_string_field(self):
        doc = envelope("x", correlation_id=123)
        with pytest.raises(EventDecodeError, match="correlation_id"):
            decode_event(json.dumps(doc))
