"""sipin_status.transitions

Status transition table: maps an event type to the persistence operation
it causes on the ``sipin_sips`` row of its workflow.

Every entry in TRANSITIONS names a canonical event type plus the legacy
or alternative topic names that mean the same thing.  All aliases of an
entry produce identical operations: ``last_event_type`` is always the
canonical type, never the literal string from the envelope.

Create-class entries insert the row (first event of a workflow);
update-class entries locate it by correlation_id.  Unknown types map to
no operation at all.

Usage:
    op = build_operation(event)
    if op is None:
        ...  # unknown event type, nothing to persist
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from sipin_status.events import CloudEvent
from sipin_status.extract import (
    base_pid,
    filename_from_path,
    lookup,
    lookup_int,
    lookup_str,
    require_str,
)


class SipStatus(str, Enum):
    S3_OBJECT_CREATED = "S3_OBJECT_CREATED"
    SIP_CREATED = "SIP_CREATED"
    BAG_TRANSFERRED_TO_SIPIN = "BAG_TRANSFERRED_TO_SIPIN"
    BAG_UNZIPPED = "BAG_UNZIPPED"
    BAG_VALIDATED = "BAG_VALIDATED"
    SIP_VALIDATED = "SIP_VALIDATED"
    AIP_CREATED = "AIP_CREATED"
    MH_SIP_CREATED = "MH-SIP_CREATED"
    AIP_DELIVERED_TO_MAM = "AIP_DELIVERED_TO_MAM"


class OperationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"


@dataclass(frozen=True)
class SipOperation:
    """One persistence operation derived from one event."""

    kind: OperationKind
    correlation_id: str
    status: SipStatus
    event_type: str
    event_time: datetime
    fields: dict[str, Any] = field(default_factory=dict)

    def assignments(self) -> dict[str, Any]:
        """Column values written by this operation (excluding correlation_id).

        Event-specific fields first, then the columns every event rewrites.
        ``first_event_date`` is only part of a create.
        """
        values = dict(self.fields)
        if self.kind is OperationKind.CREATE:
            values["first_event_date"] = self.event_time
        values["last_event_type"] = self.event_type
        values["last_event_date"] = self.event_time
        values["status"] = self.status.value
        return values


def _no_fields(event: CloudEvent) -> dict[str, Any]:
    return {}


@dataclass(frozen=True)
class TransitionSpec:
    event_type: str
    kind: OperationKind
    status: SipStatus
    aliases: tuple[str, ...] = ()
    extract: Callable[[CloudEvent], dict[str, Any]] = _no_fields

    @property
    def type_names(self) -> tuple[str, ...]:
        return (self.event_type, *self.aliases)


# ---------------------------------------------------------------------------
# Per-event field extraction
# ---------------------------------------------------------------------------

_S3_RECORD = ("s3_message", "Records", 0, "s3")


def _s3_object_fields(event: CloudEvent) -> dict[str, Any]:
    return {
        "bag_name": event.subject,
        "ingest_host": lookup_str(event.data, _S3_RECORD + ("domain", "s3-endpoint")),
        "ingest_bucket": lookup_str(event.data, _S3_RECORD + ("bucket", "name")),
        "ingest_path_or_key": lookup_str(event.data, _S3_RECORD + ("object", "key")),
    }


def _sip_create_fields(event: CloudEvent) -> dict[str, Any]:
    data = event.data
    # path is required: the bag name is derived from it
    path = lookup(data, ("path",))
    return {
        "bag_name": filename_from_path(path),
        "cp_id": lookup_str(data, ("cp_id",)),
        "local_id": lookup_str(data, ("local_id",)),
        "md5_hash_essence_manifest": lookup_str(data, ("md5_hash_essence_manifest",)),
        "md5_hash_essence_sidecar": lookup_str(data, ("md5_hash_essence_sidecar",)),
        "essence_filename": lookup_str(data, ("essence_filename",)),
        "essence_filesize": lookup_int(data, ("essence_filesize",)),
        "ingest_host": lookup_str(data, ("host",)),
        "ingest_path_or_key": path,
        "bag_filesize": lookup_int(data, ("bag_filesize",)),
    }


def _aip_create_fields(event: CloudEvent) -> dict[str, Any]:
    return {
        "cp_id": lookup_str(event.data, ("cp_id",)),
        "pid": base_pid(require_str(event.data, ("pid",))),
    }


def _mh_sip_create_fields(event: CloudEvent) -> dict[str, Any]:
    fields = _aip_create_fields(event)
    fields["sip_profile"] = lookup_str(event.data, ("sip_profile",))
    return fields


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------

TRANSITIONS: tuple[TransitionSpec, ...] = (
    # SIP uploaded to S3
    TransitionSpec(
        "persistent://public/sipin/s3.object.create",
        OperationKind.CREATE, SipStatus.S3_OBJECT_CREATED,
        extract=_s3_object_fields,
    ),
    # Legacy: SIP created on FTP
    TransitionSpec(
        "be.meemoo.sipin.sip.create",
        OperationKind.CREATE, SipStatus.SIP_CREATED,
        extract=_sip_create_fields,
    ),
    TransitionSpec(
        "persistent://public/default/be.meemoo.sipin.bag.transfer",
        OperationKind.UPDATE, SipStatus.BAG_TRANSFERRED_TO_SIPIN,
        aliases=("be.meemoo.sipin.bag.transfer",),
    ),
    TransitionSpec(
        "persistent://public/sipin/bag.unzip",
        OperationKind.UPDATE, SipStatus.BAG_UNZIPPED,
        aliases=("be.meemoo.sipin.bag.unzip",),
    ),
    TransitionSpec(
        "persistent://public/sipin/bag.validate",
        OperationKind.UPDATE, SipStatus.BAG_VALIDATED,
        aliases=("be.meemoo.sipin.bag.validate",),
    ),
    TransitionSpec(
        "be.meemoo.sipin.sip.validate",
        OperationKind.UPDATE, SipStatus.SIP_VALIDATED,
    ),
    # Legacy AIP (mh-sip) create
    TransitionSpec(
        "be.meemoo.sipin.aip.create",
        OperationKind.UPDATE, SipStatus.AIP_CREATED,
        extract=_aip_create_fields,
    ),
    TransitionSpec(
        "persistent://public/sipin/mh-sip.create",
        OperationKind.UPDATE, SipStatus.MH_SIP_CREATED,
        extract=_mh_sip_create_fields,
    ),
    TransitionSpec(
        "be.meemoo.sipin.aip.transfer",
        OperationKind.UPDATE, SipStatus.AIP_DELIVERED_TO_MAM,
    ),
)


def build_registry(specs: tuple[TransitionSpec, ...]) -> dict[str, TransitionSpec]:
    """Index specs by every type name they answer to.

    Raises:
        ValueError: if two specs claim the same type name.
    """
    registry: dict[str, TransitionSpec] = {}
    for spec in specs:
        for name in spec.type_names:
            if name in registry:
                raise ValueError(
                    f"event type {name!r} mapped by both "
                    f"{registry[name].event_type!r} and {spec.event_type!r}"
                )
            registry[name] = spec
    return registry


REGISTRY: dict[str, TransitionSpec] = build_registry(TRANSITIONS)


def resolve_transition(event_type: str) -> TransitionSpec | None:
    return REGISTRY.get(event_type)


def build_operation(event: CloudEvent) -> SipOperation | None:
    """Return the operation for ``event``, or None for unknown event types.

    Raises:
        FieldExtractionError: a field the transition requires is missing.
    """
    spec = resolve_transition(event.type)
    if spec is None:
        return None
    return SipOperation(
        kind=spec.kind,
        correlation_id=event.correlation_id,
        status=spec.status,
        event_type=spec.event_type,
        event_time=event.time,
        fields=spec.extract(event),
    )
