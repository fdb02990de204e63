"""Denormalization – folding child events into embedded collections.

The fold rule, applied by child domain id:

* ``created`` appends the child (a second ``created`` for an id already
  present is merged into that entry in place, so ids stay unique and the
  entry keeps its own embedded children);
* ``updated`` merges the incoming payload into the existing entry;
* ``deleted`` removes the entry;
* any other kind leaves the collection untouched and is reported.

Functions here are pure: they return new tuples and never modify the
collections they are given.
"""

from __future__ import annotations

import dataclasses
from enum import Enum

from lesson_snapshots.application.denormalization.events import AuditRecord, EntityKind, EventKind
from lesson_snapshots.application.denormalization.merge import merge_payload
from lesson_snapshots.application.denormalization.snapshot import EmbeddedChild


class FoldOutcome(str, Enum):
    """What a fold did to the embedded collection."""

    APPLIED = "applied"
    UNKNOWN_EVENT_KIND = "unknown_event_kind"
    MISSING_CHILD = "missing_child"
    """Update or delete of a child id that is not in the collection."""
    MISSING_PARENT_ENTRY = "missing_parent_entry"
    """Track event whose Slide is not embedded in the Revision."""

    @property
    def is_noop(self) -> bool:
        return self is not FoldOutcome.APPLIED


@dataclasses.dataclass(frozen=True)
class SlideChange:
    """A Slide event to fold into a Revision's Slide collection."""

    record: AuditRecord

    @property
    def slide_id(self) -> str:
        return self.record.domain_id


@dataclasses.dataclass(frozen=True)
class TrackChange:
    """A Track event to fold, through its Slide, into a Revision."""

    record: AuditRecord

    @property
    def slide_id(self) -> str:
        return self.record.event.payload["slideId"]

    @property
    def track_id(self) -> str:
        return self.record.domain_id


ChildChange = SlideChange | TrackChange


def fold_children(
    entity: EntityKind,
    children: tuple[EmbeddedChild, ...],
    record: AuditRecord,
) -> tuple[tuple[EmbeddedChild, ...], FoldOutcome]:
    """Fold one *entity*-kind event into *children*."""
    kind = record.event.known_kind
    if kind is None:
        return children, FoldOutcome.UNKNOWN_EVENT_KIND

    child_id = record.domain_id
    index = next((i for i, c in enumerate(children) if c.domain_id == child_id), None)

    if kind is EventKind.CREATED:
        entry = EmbeddedChild.from_record(record)
        if index is None:
            return children + (entry,), FoldOutcome.APPLIED
        # redelivered `created`: fold like the entity's own snapshot does (merge),
        # keeping the Tracks already embedded under a Slide
        existing = children[index]
        entry = dataclasses.replace(
            entry,
            payload=merge_payload(entity, existing.payload, record.event.payload),
            children=existing.children,
        )
        return _replace_at(children, index, entry), FoldOutcome.APPLIED

    if index is None:
        return children, FoldOutcome.MISSING_CHILD

    if kind is EventKind.UPDATED:
        existing = children[index]
        updated = dataclasses.replace(
            existing,
            payload=merge_payload(entity, existing.payload, record.event.payload),
            event_kind=record.event.kind,
            record_id=record.record_id,
        )
        return _replace_at(children, index, updated), FoldOutcome.APPLIED

    # EventKind.DELETED
    return children[:index] + children[index + 1 :], FoldOutcome.APPLIED


def fold_change(
    slides: tuple[EmbeddedChild, ...],
    change: ChildChange,
) -> tuple[tuple[EmbeddedChild, ...], FoldOutcome]:
    """Fold a Slide or Track change into a Revision's embedded Slides."""
    if isinstance(change, SlideChange):
        return fold_children(EntityKind.SLIDE, slides, change.record)

    if isinstance(change, TrackChange):
        index = next((i for i, s in enumerate(slides) if s.domain_id == change.slide_id), None)
        if index is None:
            return slides, FoldOutcome.MISSING_PARENT_ENTRY
        slide = slides[index]
        tracks, outcome = fold_children(EntityKind.TRACK, slide.children, change.record)
        if outcome.is_noop:
            return slides, outcome
        return _replace_at(slides, index, dataclasses.replace(slide, children=tracks)), outcome

    raise TypeError(f"Unsupported child change: {type(change).__name__}")


def _replace_at(
    items: tuple[EmbeddedChild, ...], index: int, item: EmbeddedChild
) -> tuple[EmbeddedChild, ...]:
    return items[:index] + (item,) + items[index + 1 :]


__all__ = [
    "ChildChange",
    "FoldOutcome",
    "SlideChange",
    "TrackChange",
    "fold_change",
    "fold_children",
]
