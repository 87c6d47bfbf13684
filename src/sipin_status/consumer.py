"""sipin_status.consumer

Sequential event consumer.

Processing order per message:
  1.  Decode the CloudEvent envelope          → reject + skip on failure
  2.  Build the operation from the registry   → unknown type: warn + skip
                                                missing field: reject + skip
  3.  Apply it in its own transaction         → store error: warn (+ stop if fatal)
  4.  Report anomalies from the row count
  5.  Acknowledge the message

A message is acknowledged only after step 3 has finished, so a crash or
a lost database connection leaves it eligible for redelivery.  In
dry-run mode every change is rolled back and nothing is acknowledged.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import psycopg

from sipin_status.anomalies import (
    Anomaly,
    report_outcome,
    report_store_error,
    report_unknown_type,
)
from sipin_status.config import TopicSelection
from sipin_status.events import CloudEvent, decode_event
from sipin_status.gateway import apply_operation
from sipin_status.shared import (
    ConsumerCounters,
    EventDecodeError,
    FieldExtractionError,
    RejectWriter,
    StoreError,
    reject_row,
)
from sipin_status.transitions import SipOperation, build_operation

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

@dataclass
class ConsumerContext:
    """Everything a handler needs; built once at startup, closed on shutdown."""

    conn: psycopg.Connection
    rejects: RejectWriter
    counters: ConsumerCounters = field(default_factory=ConsumerCounters)
    dry_run: bool = False

    @classmethod
    def connect(cls, db_dsn: str, rejects_path: Path, dry_run: bool = False) -> "ConsumerContext":
        conn = psycopg.connect(db_dsn, autocommit=False)
        return cls(conn=conn, rejects=RejectWriter(rejects_path), dry_run=dry_run)

    def close(self) -> None:
        try:
            self.rejects.close()
        finally:
            self.conn.close()

    def __enter__(self) -> "ConsumerContext":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Per-event handling
# ---------------------------------------------------------------------------

@dataclass
class EventOutcome:
    event: CloudEvent
    operation: SipOperation | None = None
    rows: int | None = None
    anomaly: Anomaly | None = None
    reject_reason: str | None = None


def handle_event(ctx: ConsumerContext, event: CloudEvent) -> EventOutcome:
    """Apply one decoded event.

    Raises:
        StoreError: only when fatal (the database connection is lost).
    """
    log.info("insert into DB: %s, correlation_id: %s", event.type, event.correlation_id)
    try:
        op = build_operation(event)
    except FieldExtractionError as exc:
        ctx.counters.extraction_errors += 1
        log.warning(
            "Rejected event %s (correlation_id %s): %s",
            event.type, event.correlation_id, exc,
        )
        return EventOutcome(event, reject_reason=f"extraction_error: {exc}")

    if op is None:
        return EventOutcome(event, anomaly=report_unknown_type(event, ctx.counters))

    try:
        rows = apply_operation(ctx.conn, op, dry_run=ctx.dry_run)
    except StoreError as exc:
        anomaly = report_store_error(event, exc, ctx.counters)
        if exc.fatal:
            raise
        return EventOutcome(event, op, anomaly=anomaly, reject_reason=f"store_error: {exc}")

    return EventOutcome(event, op, rows=rows, anomaly=report_outcome(op, rows, ctx.counters))


def process_message(
    ctx: ConsumerContext,
    payload: bytes,
    topic: str | None = None,
    message_id: str | None = None,
) -> bool:
    """Decode and handle one raw message. Returns True if it may be acknowledged."""
    counters = ctx.counters
    counters.messages_received += 1
    log.debug("got %d messages", counters.messages_received)

    try:
        event = decode_event(payload)
    except EventDecodeError as exc:
        counters.decode_errors += 1
        log.error("could not deserialize message %s from %s: %s", message_id, topic, exc)
        ctx.rejects.write(reject_row(payload, topic, message_id), f"decode_error: {exc}")
        return not ctx.dry_run

    counters.events_decoded += 1
    log.debug("%r", event)

    outcome = handle_event(ctx, event)
    if outcome.reject_reason:
        ctx.rejects.write(reject_row(payload, topic, message_id), outcome.reject_reason)
    return not ctx.dry_run


# ---------------------------------------------------------------------------
# Message source
# ---------------------------------------------------------------------------

class MessageSource(Protocol):
    def receive(self, timeout_millis: int) -> Any:
        """Return the next message, or None if none arrived in time."""
        ...

    def acknowledge(self, message: Any) -> None:
        ...

    def close(self) -> None:
        ...


class PulsarSource:
    """Exclusive Pulsar subscription over a topic list or topic pattern."""

    def __init__(
        self,
        service_url: str,
        selection: TopicSelection,
        subscription_name: str,
        consumer_name: str,
        user: str | None = None,
        password: str | None = None,
    ) -> None:
        import pulsar  # type: ignore[import-untyped]

        authentication = None
        if user and password:
            authentication = pulsar.AuthenticationBasic(user, password)
        self._client = pulsar.Client(service_url, authentication=authentication)
        try:
            topic: Any = (
                re.compile(selection.pattern) if selection.pattern else list(selection.topics)
            )
            self._timeout_error = pulsar.Timeout
            self._consumer = self._client.subscribe(
                topic,
                subscription_name,
                consumer_type=pulsar.ConsumerType.Exclusive,
                consumer_name=consumer_name,
            )
        except Exception:
            self._client.close()
            raise

    def receive(self, timeout_millis: int) -> Any:
        try:
            return self._consumer.receive(timeout_millis=timeout_millis)
        except self._timeout_error:
            return None

    def acknowledge(self, message: Any) -> None:
        self._consumer.acknowledge(message)

    def close(self) -> None:
        try:
            self._consumer.close()
        finally:
            self._client.close()

    def __enter__(self) -> "PulsarSource":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def run_consumer(
    ctx: ConsumerContext,
    source: MessageSource,
    max_messages: int | None = None,
    receive_timeout_millis: int = 1000,
) -> int:
    """Consume until ``max_messages`` have been handled (forever if None).

    Returns the number of messages handled.  A fatal StoreError propagates
    with the current message left unacknowledged.
    """
    handled = 0
    while max_messages is None or handled < max_messages:
        message = source.receive(receive_timeout_millis)
        if message is None:
            continue
        may_ack = process_message(
            ctx,
            message.data(),
            topic=message.topic_name(),
            message_id=str(message.message_id()),
        )
        if may_ack:
            source.acknowledge(message)
            ctx.counters.messages_acked += 1
        handled += 1
    return handled
