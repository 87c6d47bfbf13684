"""Fixtures shared by unit and integration tests."""

from __future__ import annotations

import json
from typing import Any

import pytest

from sip_fixtures import envelope
from sipin_status.events import CloudEvent, decode_event


@pytest.fixture
def make_payload():
    def _make(event_type: str, **kwargs: Any) -> bytes:
        return json.dumps(envelope(event_type, **kwargs)).encode("utf-8")
    return _make


@pytest.fixture
def make_event(make_payload):
    def _make(event_type: str, **kwargs: Any) -> CloudEvent:
        return decode_event(make_payload(event_type, **kwargs))
    return _make
