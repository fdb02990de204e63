"""Config settings – EngineSettings."""
from __future__ import annotations

import dataclasses
import logging
from typing import ClassVar

from lesson_snapshots.config.settings.base import Settings
from lesson_snapshots.config.validation import InvalidSettingValueError


@dataclasses.dataclass
class EngineSettings(Settings):
    """Settings for the denormalization engine and its MongoDB store.

    Read from ``LESSON_SNAPSHOTS_*`` environment variables, e.g.
    ``LESSON_SNAPSHOTS_MAX_WRITE_RETRIES=8``.
    """

    _prefix: ClassVar[str] = "LESSON_SNAPSHOTS"

    mongo_uri: str = "mongodb://localhost:27017"
    database: str = "lesson_snapshots"
    mongo_transactions: bool = True
    """Run each event's writes in one MongoDB transaction (needs a replica set)."""
    max_write_retries: int = 5
    retry_max_wait: float = 1.0
    strict_parents: bool = True
    """Reject Slide/Track events whose Revision has no snapshot yet."""
    reject_unknown_event_kinds: bool = False
    log_level: str = "INFO"
    log_json: bool = True

    def _validate(self) -> None:
        if self.max_write_retries < 1:
            raise InvalidSettingValueError(
                "max_write_retries", self.max_write_retries, "must be at least 1"
            )
        if self.retry_max_wait < 0:
            raise InvalidSettingValueError(
                "retry_max_wait", self.retry_max_wait, "must not be negative"
            )
        if self.log_level.upper() not in logging.getLevelNamesMapping():
            raise InvalidSettingValueError("log_level", self.log_level, "unknown log level")
        if not self.database:
            raise InvalidSettingValueError("database", self.database, "must not be empty")


__all__ = ["EngineSettings"]
