"""sipin_status.gateway

Executes SipOperations against the ``sipin_sips`` table.

One event is one transaction: the statement runs, then the caller's
``dry_run`` flag decides between COMMIT and ROLLBACK.  There is no retry
and no batching.  Every psycopg error is re-raised as StoreError; it is
marked fatal for operational errors (lost connection, statement or lock
timeout, server shutdown), which the consumer must not acknowledge.

Both statements are safe to re-apply: creates are insert-if-absent and
updates write absolute values.  Creates do not rely on a unique
constraint on correlation_id being present.
"""

from __future__ import annotations

from typing import Any

import psycopg

from sipin_status.shared import StoreError
from sipin_status.transitions import OperationKind, SipOperation

SIP_TABLE = "sipin_sips"

SIP_COLUMNS = frozenset({
    "correlation_id",
    "bag_name",
    "cp_id",
    "local_id",
    "md5_hash_essence_manifest",
    "md5_hash_essence_sidecar",
    "essence_filename",
    "essence_filesize",
    "ingest_host",
    "ingest_bucket",
    "ingest_path_or_key",
    "bag_filesize",
    "pid",
    "sip_profile",
    "first_event_date",
    "last_event_type",
    "last_event_date",
    "status",
})


def _checked_assignments(op: SipOperation) -> dict[str, Any]:
    values = op.assignments()
    unknown = set(values) - SIP_COLUMNS
    if unknown:
        raise ValueError(f"unknown {SIP_TABLE} columns: {sorted(unknown)}")
    return values


def insert_sip(conn: psycopg.Connection, op: SipOperation) -> int:
    """INSERT the row for a create-class event.

    Returns the number of rows inserted: 0 means a row with this
    correlation_id already exists.
    """
    values = _checked_assignments(op)
    columns = ["correlation_id", *values]
    placeholders = ", ".join(["%s"] * len(columns))
    cur = conn.execute(
        f"""
        INSERT INTO {SIP_TABLE} ({", ".join(columns)})
        SELECT {placeholders}
        WHERE NOT EXISTS (
            SELECT 1 FROM {SIP_TABLE} WHERE correlation_id = %s
        )
        """,
        (op.correlation_id, *values.values(), op.correlation_id),
    )
    return cur.rowcount


def update_sip(conn: psycopg.Connection, op: SipOperation) -> int:
    """UPDATE the row(s) matching the event's correlation_id; returns rowcount."""
    values = _checked_assignments(op)
    set_clause = ", ".join(f"{column} = %s" for column in values)
    cur = conn.execute(
        f"UPDATE {SIP_TABLE} SET {set_clause} WHERE correlation_id = %s",
        (*values.values(), op.correlation_id),
    )
    return cur.rowcount


def _is_connection_lost(conn: psycopg.Connection) -> bool:
    return bool(conn.closed or conn.broken)


def _is_fatal(conn: psycopg.Connection, exc: psycopg.Error) -> bool:
    return isinstance(exc, psycopg.OperationalError) or _is_connection_lost(conn)


def apply_operation(
    conn: psycopg.Connection,
    op: SipOperation,
    dry_run: bool = False,
) -> int:
    """Run ``op`` in its own transaction and return the affected row count.

    Raises:
        StoreError: on any database error; ``fatal`` for operational errors
            or a lost connection.
    """
    try:
        if op.kind is OperationKind.CREATE:
            rows = insert_sip(conn, op)
        else:
            rows = update_sip(conn, op)
        if dry_run:
            conn.rollback()
        else:
            conn.commit()
        return rows
    except psycopg.Error as exc:
        fatal = _is_fatal(conn, exc)
        if not _is_connection_lost(conn):
            try:
                conn.rollback()
            except psycopg.Error:
                fatal = True
        raise StoreError(
            f"{op.kind.value} {op.correlation_id} failed: {exc}", fatal=fatal
        ) from exc
