"""Kernel – framework-agnostic building blocks (errors, clock, ids)."""

from lesson_snapshots.kernel.errors import (
    ApplicationError,
    BaseError,
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
