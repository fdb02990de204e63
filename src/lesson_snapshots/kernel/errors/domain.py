"""Domain errors: bad events, missing entities, inconsistent chains, lost races."""

from __future__ import annotations

from typing import Any

from lesson_snapshots.kernel.errors.base import BaseError


class DomainError(BaseError):
    """An event or a stored snapshot breaks a rule of the content model."""

    default_code = "domain_error"


class ValidationError(DomainError):
    """Input is not structurally usable; ``errors`` has one entry per failed field."""

    default_code = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        errors: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.errors: list[dict[str, Any]] = list(errors or [])

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "errors": self.errors}

    def log_fields(self) -> dict[str, Any]:
        return {**super().log_fields(), "errors": self.errors}


class NotFoundError(DomainError):
    default_code = "not_found"

    def __init__(self, resource: str, identifier: Any = None, **kwargs: Any) -> None:
        if identifier is None:
            message = f"{resource} not found"
        else:
            message = f"{resource} '{identifier}' not found"
        super().__init__(message, **kwargs)
        self.resource = resource
        self.identifier = identifier


class ConflictError(DomainError):
    """Another writer changed the same data first."""

    default_code = "conflict"


class InvariantViolationError(DomainError):
    """Stored data is internally inconsistent (e.g. a broken version chain)."""

    default_code = "invariant_violation"


__all__ = [
    "ConflictError",
    "DomainError",
    "InvariantViolationError",
    "NotFoundError",
    "ValidationError",
]
