"""Denormalization – immutable snapshot versions.

A :class:`Snapshot` is one materialised state of a Revision or Slide,
with its current children embedded. Every change produces a new snapshot
whose ``previous`` points at the version it was folded from, so the
versions of one domain id form a singly-linked list.
"""

from __future__ import annotations

import copy
import dataclasses
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from lesson_snapshots.application.denormalization.events import Actor, AuditRecord, EntityKind


@dataclasses.dataclass(frozen=True)
class EmbeddedChild:
    """One element of a snapshot's embedded child collection.

    Slides embedded in a Revision snapshot carry their own Tracks in
    ``children``; Tracks never have children.
    """

    domain_id: str
    event_kind: str
    payload: dict[str, Any]
    record_id: str
    children: tuple["EmbeddedChild", ...] = ()

    @classmethod
    def from_record(cls, record: AuditRecord) -> "EmbeddedChild":
        return cls(
            domain_id=record.domain_id,
            event_kind=record.event.kind,
            payload=copy.deepcopy(dict(record.event.payload)),
            record_id=record.record_id,
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "domain_id": self.domain_id,
            "event_kind": self.event_kind,
            "payload": copy.deepcopy(self.payload),
            "record_id": self.record_id,
            "children": [child.to_document() for child in self.children],
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "EmbeddedChild":
        return cls(
            domain_id=doc["domain_id"],
            event_kind=doc["event_kind"],
            payload=dict(doc.get("payload") or {}),
            record_id=doc["record_id"],
            children=tuple(cls.from_document(c) for c in doc.get("children") or ()),
        )


@dataclasses.dataclass(frozen=True)
class Snapshot:
    """One persisted version of a Revision or Slide."""

    version_id: str
    entity: EntityKind
    domain_id: str
    event_kind: str
    payload: dict[str, Any]
    previous: str | None
    created_at: datetime
    children: tuple[EmbeddedChild, ...] = ()
    actor: Actor | None = None
    record_id: str | None = None
    """Audit record of the event that produced this version."""

    def to_document(self) -> dict[str, Any]:
        return {
            "_id": self.version_id,
            "entity": self.entity.value,
            "domain_id": self.domain_id,
            "event_kind": self.event_kind,
            "payload": copy.deepcopy(self.payload),
            "previous": self.previous,
            "created_at": self.created_at,
            "children": [child.to_document() for child in self.children],
            "actor": self.actor.to_document() if self.actor else None,
            "record_id": self.record_id,
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "Snapshot":
        actor = doc.get("actor")
        return cls(
            version_id=doc["_id"],
            entity=EntityKind(doc["entity"]),
            domain_id=doc["domain_id"],
            event_kind=doc["event_kind"],
            payload=dict(doc.get("payload") or {}),
            previous=doc.get("previous"),
            created_at=doc["created_at"],
            children=tuple(EmbeddedChild.from_document(c) for c in doc.get("children") or ()),
            actor=Actor(actor["email"]) if actor else None,
            record_id=doc.get("record_id"),
        )


@dataclasses.dataclass(frozen=True)
class ChainedSnapshot:
    """A snapshot with a bounded number of its ancestors resolved."""

    snapshot: Snapshot
    previous: "ChainedSnapshot | None" = None

    @property
    def depth(self) -> int:
        """Number of resolved ancestors below this node."""
        depth = 0
        node = self.previous
        while node is not None:
            depth += 1
            node = node.previous
        return depth


__all__ = ["ChainedSnapshot", "EmbeddedChild", "Snapshot"]
