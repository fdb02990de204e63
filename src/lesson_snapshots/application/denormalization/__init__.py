"""Application – versioned denormalization of Revision → Slide → Track events."""

from lesson_snapshots.application.denormalization.audit_log import AuditLog
from lesson_snapshots.application.denormalization.builders import (
    BuildResult,
    RevisionSnapshotBuilder,
    SlideSnapshotBuilder,
)
from lesson_snapshots.application.denormalization.chain import VersionChain
from lesson_snapshots.application.denormalization.engine import DenormalizationEngine, FoldResult
from lesson_snapshots.application.denormalization.errors import (
    ChainIntegrityError,
    MalformedEventError,
    ParentNotFoundError,
    UnknownEventKindError,
    WriteConflictError,
)
from lesson_snapshots.application.denormalization.events import (
    Actor,
    AuditRecord,
    EntityKind,
    Event,
    EventKind,
    parse_event,
)
from lesson_snapshots.application.denormalization.fold import (
    ChildChange,
    FoldOutcome,
    SlideChange,
    TrackChange,
    fold_change,
    fold_children,
)
from lesson_snapshots.application.denormalization.locks import WriterLocks
from lesson_snapshots.application.denormalization.merge import merge_payload
from lesson_snapshots.application.denormalization.projection import (
    ProjectionTransformer,
    project_revision,
    project_slide,
)
from lesson_snapshots.application.denormalization.resolver import VersionResolver
from lesson_snapshots.application.denormalization.snapshot import (
    ChainedSnapshot,
    EmbeddedChild,
    Snapshot,
)
from lesson_snapshots.application.denormalization.store import (
    Collection,
    DocumentStore,
    InMemoryDocumentStore,
)

__all__ = [
    "Actor",
    "AuditLog",
    "AuditRecord",
    "BuildResult",
    "ChainIntegrityError",
    "ChainedSnapshot",
    "ChildChange",
    "Collection",
    "DenormalizationEngine",
    "DocumentStore",
    "EmbeddedChild",
    "EntityKind",
    "Event",
    "EventKind",
    "FoldOutcome",
    "FoldResult",
    "InMemoryDocumentStore",
    "MalformedEventError",
    "ParentNotFoundError",
    "ProjectionTransformer",
    "RevisionSnapshotBuilder",
    "SlideChange",
    "SlideSnapshotBuilder",
    "Snapshot",
    "TrackChange",
    "UnknownEventKindError",
    "VersionChain",
    "VersionResolver",
    "WriteConflictError",
    "WriterLocks",
    "fold_change",
    "fold_children",
    "merge_payload",
    "parse_event",
    "project_revision",
    "project_slide",
]
