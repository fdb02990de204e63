"""Identifier value object for engine-generated ids.

Domain ids (the ``id`` a Revision, Slide or Track carries in its payload)
are assigned by whoever emits the events and stay plain strings. Every
id the engine mints itself, for snapshot versions and audit records, is
a :class:`VersionId`.
"""

from __future__ import annotations

import dataclasses

import uuid_utils

from lesson_snapshots.kernel.errors.domain import ValidationError


@dataclasses.dataclass(frozen=True, slots=True)
class VersionId:
    """Engine-generated id of a snapshot version or audit record.

    Backed by UUID v7, so ids generated later sort after ids generated
    earlier within one process.

    Examples::

        vid = VersionId.generate()
        vid = VersionId("0190f3c2-...")
    """

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not self.value:
            raise ValidationError("VersionId must be a non-empty string")

    def __str__(self) -> str:
        return self.value

    @classmethod
    def generate(cls) -> "VersionId":
        """Return a new time-ordered ``VersionId``."""
        return cls(str(uuid_utils.uuid7()))


__all__ = ["VersionId"]
