"""Denormalization – projection of snapshots into client views.

Views drop everything clients have no use for (version ids, ``previous``
ids, audit record ids, actors, store timestamps) and nest the domain
payload under ``lessonRevision`` / ``lessonSlide``. An ancestor, when
requested, is rendered in the same view shape and never carries its own
ancestor.

Shapes::

    revision view  {"event", "lessonRevision": {"version", "status", "id",
                    "createdAt", "slides": [nested slide view, ...]},
                    "previous"?: revision view}
    nested slide   {"event", "lessonSlide": <slide payload>}
    slide view     {"event", "lessonSlide": {<slide payload>, "tracks":
                    [<track payload>, ...]}, "previous"?: slide view}
"""

from __future__ import annotations

import copy
from datetime import datetime
from typing import Any

from lesson_snapshots.application.denormalization.events import EntityKind
from lesson_snapshots.application.denormalization.snapshot import (
    ChainedSnapshot,
    EmbeddedChild,
    Snapshot,
)


def project_revision(chained: ChainedSnapshot, with_ancestor: bool = True) -> dict[str, Any]:
    """Render a Revision snapshot (and at most one ancestor) as a view."""
    view = _revision_view(chained.snapshot)
    if with_ancestor and chained.previous is not None:
        view["previous"] = _revision_view(chained.previous.snapshot)
    return view


def project_slide(chained: ChainedSnapshot, with_ancestor: bool = True) -> dict[str, Any]:
    """Render a Slide snapshot (and at most one ancestor) as a view."""
    view = _slide_view(chained.snapshot)
    if with_ancestor and chained.previous is not None:
        view["previous"] = _slide_view(chained.previous.snapshot)
    return view


class ProjectionTransformer:
    """Dispatches a chained snapshot to the projection for its entity kind."""

    def project(self, chained: ChainedSnapshot, with_ancestor: bool = True) -> dict[str, Any]:
        entity = chained.snapshot.entity
        if entity is EntityKind.REVISION:
            return project_revision(chained, with_ancestor)
        if entity is EntityKind.SLIDE:
            return project_slide(chained, with_ancestor)
        raise ValueError(f"No projection for {entity.value} snapshots")


def format_version(payload: dict[str, Any]) -> str:
    """Compose ``"<major>.<minor>.<patch>"``; missing parts render as ``0``."""
    parts = (payload.get(key) for key in ("major", "minor", "patch"))
    return ".".join(str(part if part is not None else 0) for part in parts)


def _revision_view(snapshot: Snapshot) -> dict[str, Any]:
    payload = snapshot.payload
    created_at = payload.get("createdAt")
    return {
        "event": snapshot.event_kind,
        "lessonRevision": {
            "version": format_version(payload),
            "status": payload.get("status"),
            "id": str(payload.get("id", snapshot.domain_id)),
            "createdAt": created_at.isoformat() if isinstance(created_at, datetime) else created_at,
            "slides": [_nested_slide_view(slide) for slide in snapshot.children],
        },
    }


def _nested_slide_view(slide: EmbeddedChild) -> dict[str, Any]:
    return {
        "event": slide.event_kind,
        "lessonSlide": copy.deepcopy(slide.payload),
    }


def _slide_view(snapshot: Snapshot) -> dict[str, Any]:
    return {
        "event": snapshot.event_kind,
        "lessonSlide": {
            **copy.deepcopy(snapshot.payload),
            "tracks": [copy.deepcopy(track.payload) for track in snapshot.children],
        },
    }


__all__ = ["ProjectionTransformer", "format_version", "project_revision", "project_slide"]
