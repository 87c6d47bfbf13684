"""sipin_status.anomalies

Turns operation outcomes into diagnostics.  Nothing here touches the
database or asks for a retry: each function logs one warning, bumps the
matching counter and returns the Anomaly it reported (or None).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from sipin_status.events import CloudEvent
from sipin_status.shared import ConsumerCounters, StoreError
from sipin_status.transitions import OperationKind, SipOperation

log = logging.getLogger(__name__)


class AnomalyKind(str, Enum):
    MISSING_PREDECESSOR = "missing_predecessor"
    AMBIGUOUS_CORRELATION = "ambiguous_correlation"
    DUPLICATE_CREATE = "duplicate_create"
    UNKNOWN_EVENT_TYPE = "unknown_event_type"
    STORE_ERROR = "store_error"


@dataclass(frozen=True)
class Anomaly:
    kind: AnomalyKind
    event_type: str
    correlation_id: str
    detail: str = ""


def _emit(anomaly: Anomaly, message: str, counters: ConsumerCounters | None) -> Anomaly:
    log.warning(message, extra={"anomaly": anomaly.kind.value})
    if counters is not None:
        counters.add_warning(f"{anomaly.kind.value}: {anomaly.correlation_id}")
    return anomaly


def report_outcome(
    op: SipOperation,
    rows: int,
    counters: ConsumerCounters | None = None,
) -> Anomaly | None:
    """Classify the affected row count of an applied operation."""
    if op.kind is OperationKind.CREATE:
        if rows == 0:
            if counters is not None:
                counters.duplicate_create += 1
            return _emit(
                Anomaly(AnomalyKind.DUPLICATE_CREATE, op.event_type, op.correlation_id),
                f"No row created for event {op.event_type}! "
                f"correlation_id {op.correlation_id} already present?",
                counters,
            )
        log.debug("Rows created for event %s: %d", op.event_type, rows)
        if counters is not None:
            counters.sips_created += rows
        return None

    if rows == 0:
        if counters is not None:
            counters.missing_predecessor += 1
        return _emit(
            Anomaly(AnomalyKind.MISSING_PREDECESSOR, op.event_type, op.correlation_id),
            f"No rows updated for event {op.event_type}! "
            f"correlation_id {op.correlation_id} not present?",
            counters,
        )
    if rows > 1:
        if counters is not None:
            counters.ambiguous_correlation += 1
        return _emit(
            Anomaly(
                AnomalyKind.AMBIGUOUS_CORRELATION, op.event_type, op.correlation_id,
                detail=f"{rows} rows",
            ),
            f"Rows updated for event {op.event_type}: {rows}. "
            f"More than one record with correlation_id {op.correlation_id}",
            counters,
        )
    log.debug("Rows updated for event %s: %d", op.event_type, rows)
    if counters is not None:
        counters.sips_updated += 1
    return None


def report_unknown_type(
    event: CloudEvent,
    counters: ConsumerCounters | None = None,
) -> Anomaly:
    if counters is not None:
        counters.events_ignored_unknown_type += 1
    return _emit(
        Anomaly(AnomalyKind.UNKNOWN_EVENT_TYPE, event.type, event.correlation_id),
        f"Unknown event type: {event.type!r}",
        counters,
    )


def report_store_error(
    event: CloudEvent,
    exc: StoreError,
    counters: ConsumerCounters | None = None,
) -> Anomaly:
    if counters is not None:
        counters.store_errors += 1
    return _emit(
        Anomaly(AnomalyKind.STORE_ERROR, event.type, event.correlation_id, detail=str(exc)),
        f"Problem persisting event {event.type} "
        f"(correlation_id {event.correlation_id}): {exc}",
        counters,
    )
