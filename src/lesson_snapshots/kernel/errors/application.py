"""Application-layer errors."""

from __future__ import annotations

from lesson_snapshots.kernel.errors.base import BaseError


class ApplicationError(BaseError):
    """The engine is assembled or configured wrongly; the data itself is fine."""

    default_code = "application_error"


__all__ = ["ApplicationError"]
