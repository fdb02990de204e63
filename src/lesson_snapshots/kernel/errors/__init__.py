"""Kernel error hierarchy – public re-export surface.

Hierarchy::

    BaseError
    ├── DomainError          (domain.py)
    │   ├── InvariantViolationError
    │   ├── ValidationError
    │   ├── NotFoundError
    │   └── ConflictError
    └── ApplicationError     (application.py)

Engine-specific errors (malformed events, missing parents, write
conflicts) live in :mod:`lesson_snapshots.application.denormalization.errors`
and subclass the domain errors above.
"""

from lesson_snapshots.kernel.errors.application import ApplicationError
from lesson_snapshots.kernel.errors.base import BaseError
from lesson_snapshots.kernel.errors.domain import (
    ConflictError,
    DomainError,
    InvariantViolationError,
    NotFoundError,
    ValidationError,
)

__all__ = [
    "ApplicationError",
    "BaseError",
    "ConflictError",
    "DomainError",
    "InvariantViolationError",
    "NotFoundError",
    "ValidationError",
]
