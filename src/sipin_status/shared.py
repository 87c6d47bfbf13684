"""sipin_status.shared

Shared pieces used across the consumer: exception types, the reject
writer, run counters, and report-writing support.
"""

from __future__ import annotations

import csv
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class EventDecodeError(ValueError):
    """Raised when a message payload is not a valid CloudEvent envelope."""


class FieldExtractionError(ValueError):
    """Raised when a field required by a transition is absent from the payload."""

    def __init__(self, field_name: str, reason: str) -> None:
        super().__init__(f"{field_name}: {reason}")
        self.field_name = field_name
        self.reason = reason


class StoreError(Exception):
    """Raised when the database rejects or fails to execute an operation.

    ``fatal`` is True for operational errors (the connection is gone, a
    statement or lock timeout, a server shutdown), in which case the
    consumer must stop without acknowledging the message.
    """

    def __init__(self, message: str, fatal: bool = False) -> None:
        super().__init__(message)
        self.fatal = fatal


class ConfigError(ValueError):
    """Raised when topic or connection configuration is invalid."""


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

class RejectWriter:
    """Lazy-open CSV writer for rejected messages.

    Appends to an existing file so rejects from earlier runs are kept; the
    header is written only when the file is new or empty.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._writer = None

    def write(self, row: dict[str, str], reason: str) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            is_new = not self._path.exists() or self._path.stat().st_size == 0
            self._fh = open(self._path, "a", newline="", encoding="utf-8")
            fieldnames = list(row.keys()) + ["_reject_reason"]
            self._writer = csv.DictWriter(
                self._fh, fieldnames=fieldnames, extrasaction="ignore"
            )
            if is_new:
                self._writer.writeheader()
        out = dict(row)
        out["_reject_reason"] = reason
        self._writer.writerow(out)
        self._fh.flush()

    def close(self) -> None:
        if self._fh:
            self._fh.close()
            self._fh = None


def reject_row(payload: bytes, topic: str | None, message_id: str | None) -> dict[str, str]:
    """Build the fixed-shape reject row for one message."""
    return {
        "topic": topic or "",
        "message_id": message_id or "",
        "payload": payload.decode("utf-8", errors="replace"),
    }


# ---------------------------------------------------------------------------
# ConsumerCounters
# ---------------------------------------------------------------------------

WARNINGS_KEPT = 50


@dataclass
class ConsumerCounters:
    messages_received: int = 0
    messages_acked: int = 0
    events_decoded: int = 0
    decode_errors: int = 0
    extraction_errors: int = 0
    events_ignored_unknown_type: int = 0
    sips_created: int = 0
    sips_updated: int = 0
    # Anomalies
    missing_predecessor: int = 0
    ambiguous_correlation: int = 0
    duplicate_create: int = 0
    store_errors: int = 0
    warnings: list[str] = field(default_factory=list)

    def add_warning(self, warning: str) -> None:
        if len(self.warnings) < WARNINGS_KEPT:
            self.warnings.append(warning)

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in self.__dict__.items() if k != "warnings"}
        d["warnings"] = self.warnings[:WARNINGS_KEPT]
        return d


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    dry_run: bool,
    settings: dict[str, Any],
    counters: ConsumerCounters,
    report_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "started_at": started_at,
        "finished_at": datetime.now(timezone.utc).isoformat(),
        "dry_run": dry_run,
        **settings,
        "counters": counters.to_dict(),
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
