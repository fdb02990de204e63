"""Denormalization – error types raised by the engine."""

from __future__ import annotations

from typing import Any

from lesson_snapshots.kernel.errors import (
    ConflictError,
    DomainError,
    InvariantViolationError,
    NotFoundError,
    ValidationError,
)


class MalformedEventError(ValidationError):
    """The event lacks its domain id or a required parent reference.

    Raised before anything is written to the audit log.
    """

    default_code = "malformed_event"


class ParentNotFoundError(NotFoundError):
    """A Slide or Track event points at a parent that has no snapshot yet."""

    default_code = "parent_not_found"

    def __init__(self, parent_kind: str, parent_id: Any, *, child_id: Any = None) -> None:
        super().__init__(
            f"{parent_kind} snapshot",
            parent_id,
            detail={"parent_kind": parent_kind, "parent_id": parent_id, "child_id": child_id},
        )
        self.parent_kind = parent_kind
        self.parent_id = parent_id
        self.child_id = child_id


class UnknownEventKindError(DomainError):
    """The event kind is not one of created/updated/deleted.

    Only raised when the engine is configured to reject such events;
    otherwise they are folded as reported no-ops.
    """

    default_code = "unknown_event_kind"

    def __init__(self, event_kind: str, *, entity: str, domain_id: Any = None) -> None:
        super().__init__(
            f"Unknown event kind {event_kind!r} for {entity}",
            detail={"event_kind": event_kind, "entity": entity, "domain_id": domain_id},
        )
        self.event_kind = event_kind


class WriteConflictError(ConflictError):
    """Another writer already extended the snapshot this fold started from."""

    default_code = "write_conflict"

    def __init__(self, collection: str, domain_id: str, previous: str | None) -> None:
        super().__init__(
            f"Snapshot '{domain_id}' in '{collection}' was already extended from "
            f"version {previous!r}",
            detail={"collection": collection, "domain_id": domain_id, "previous": previous},
        )
        self.collection = collection
        self.domain_id = domain_id
        self.previous = previous


class ChainIntegrityError(InvariantViolationError):
    """A version chain cycles or points at a version that does not exist."""

    default_code = "chain_integrity"


__all__ = [
    "ChainIntegrityError",
    "MalformedEventError",
    "ParentNotFoundError",
    "UnknownEventKindError",
    "WriteConflictError",
]
