"""Kernel types – identifier value objects."""
from lesson_snapshots.kernel.types.ids import VersionId

__all__ = ["VersionId"]
