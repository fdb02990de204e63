"""Testing generators – event builders and hypothesis strategies."""
from lesson_snapshots.testing.generators.events import (
    EventBuilder,
    RevisionEventBuilder,
    SlideEventBuilder,
    TrackEventBuilder,
)
from lesson_snapshots.testing.generators.strategies import EVENT_KINDS, track_event_sequences

__all__ = [
    "EVENT_KINDS",
    "EventBuilder",
    "RevisionEventBuilder",
    "SlideEventBuilder",
    "TrackEventBuilder",
    "track_event_sequences",
]
