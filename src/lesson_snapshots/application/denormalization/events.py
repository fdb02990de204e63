"""Denormalization – change events and audit records.

An :class:`Event` reports one create/update/delete against a single
Revision, Slide or Track. Payloads keep the field names used on the wire
(``id``, ``revisionId``, ``slideId``, ``mediaUrl`` …) so that projected
views can hand them back to clients unchanged.
"""

from __future__ import annotations

import copy
import dataclasses
from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Any

from lesson_snapshots.application.denormalization.errors import MalformedEventError
from lesson_snapshots.kernel.time import utc_now


class EntityKind(str, Enum):
    """The three levels of the content hierarchy."""

    REVISION = "revision"
    SLIDE = "slide"
    TRACK = "track"

    @property
    def parent_field(self) -> str | None:
        """Payload field that references the parent entity, if any."""
        return _PARENT_FIELDS[self]

    @classmethod
    def parse(cls, raw: Any) -> "EntityKind":
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw).lower())
        except ValueError:
            raise MalformedEventError(
                f"Unknown entity kind {raw!r}",
                errors=[{"field": "entity", "value": raw}],
            ) from None


_PARENT_FIELDS: dict[EntityKind, str | None] = {
    EntityKind.REVISION: None,
    EntityKind.SLIDE: "revisionId",
    EntityKind.TRACK: "slideId",
}


class EventKind(str, Enum):
    """Event kinds the fold understands."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"

    @classmethod
    def parse(cls, raw: str) -> "EventKind | None":
        """Return the matching kind, or ``None`` for an unknown one."""
        try:
            return cls(raw)
        except ValueError:
            return None


@dataclasses.dataclass(frozen=True)
class Actor:
    """Who reported the change."""

    email: str

    def to_document(self) -> dict[str, Any]:
        return {"email": self.email}


@dataclasses.dataclass(frozen=True)
class Event:
    """One reported change against a domain entity.

    ``kind`` is kept as the raw string so that kinds outside
    :class:`EventKind` survive into the audit log; :attr:`known_kind`
    tells the fold whether it can act on it.
    """

    entity: EntityKind
    kind: str
    payload: Mapping[str, Any]
    actor: Actor | None = None
    occurred_at: datetime = dataclasses.field(default_factory=utc_now)

    @property
    def domain_id(self) -> str:
        return self.payload["id"]

    @property
    def parent_id(self) -> str | None:
        field = self.entity.parent_field
        return self.payload[field] if field is not None else None

    @property
    def known_kind(self) -> EventKind | None:
        return EventKind.parse(self.kind)

    def validate(self) -> None:
        """Check structural well-formedness; raise :class:`MalformedEventError`."""
        errors: list[dict[str, Any]] = []
        if not isinstance(self.kind, str) or not self.kind:
            errors.append({"field": "event", "reason": "must be a non-empty string"})
        if not isinstance(self.payload, Mapping):
            errors.append({"field": "object", "reason": "must be a mapping"})
        else:
            if not _is_id(self.payload.get("id")):
                errors.append({"field": "object.id", "reason": "missing domain id"})
            parent_field = self.entity.parent_field
            if parent_field is not None and not _is_id(self.payload.get(parent_field)):
                errors.append(
                    {"field": f"object.{parent_field}", "reason": "missing parent reference"}
                )
        if errors:
            raise MalformedEventError(
                f"Malformed {self.entity.value} event",
                errors=errors,
                detail={"entity": self.entity.value},
            )

    def to_document(self) -> dict[str, Any]:
        return {
            "entity": self.entity.value,
            "event_kind": self.kind,
            "payload": copy.deepcopy(dict(self.payload)),
            "actor": self.actor.to_document() if self.actor else None,
            "occurred_at": self.occurred_at,
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "Event":
        actor = doc.get("actor")
        return cls(
            entity=EntityKind(doc["entity"]),
            kind=doc["event_kind"],
            payload=doc.get("payload", {}),
            actor=Actor(actor["email"]) if actor else None,
            occurred_at=doc.get("occurred_at") or utc_now(),
        )


def parse_event(raw: Mapping[str, Any]) -> Event:
    """Build an :class:`Event` from its wire shape.

    The wire shape is ``{"entity", "event", "logTime", "object",
    "blameUser": {"email"}}``. The result is validated before it is
    returned.
    """
    if not isinstance(raw, Mapping):
        raise MalformedEventError("Event must be a mapping")
    blame = raw.get("blameUser")
    occurred_at = raw.get("logTime")
    if isinstance(occurred_at, str):
        try:
            occurred_at = datetime.fromisoformat(occurred_at)
        except ValueError:
            raise MalformedEventError(
                "Event logTime is not an ISO-8601 timestamp",
                errors=[{"field": "logTime", "value": occurred_at}],
            ) from None
    event = Event(
        entity=EntityKind.parse(raw.get("entity")),
        kind=raw.get("event", ""),
        payload=raw.get("object"),  # type: ignore[arg-type]
        actor=Actor(blame["email"]) if isinstance(blame, Mapping) and blame.get("email") else None,
        occurred_at=occurred_at or utc_now(),
    )
    event.validate()
    return event


@dataclasses.dataclass(frozen=True)
class AuditRecord:
    """An :class:`Event` as persisted in one of the audit logs."""

    record_id: str
    event: Event
    recorded_at: datetime

    @property
    def domain_id(self) -> str:
        return self.event.domain_id

    def to_document(self) -> dict[str, Any]:
        return {
            "_id": self.record_id,
            "domain_id": self.event.domain_id,
            "recorded_at": self.recorded_at,
            # audit logs share the snapshot stores' ordering field
            "created_at": self.recorded_at,
            **self.event.to_document(),
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "AuditRecord":
        return cls(
            record_id=doc["_id"],
            event=Event.from_document(doc),
            recorded_at=doc["recorded_at"],
        )


def _is_id(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


__all__ = ["Actor", "AuditRecord", "EntityKind", "Event", "EventKind", "parse_event"]
