"""Observability – SensitiveFieldsFilter.

Actor e-mails travel with every event (``blameUser`` on the wire,
``actor_email`` in log fields), and event payloads may carry nested
lists of question objects. The filter walks mappings and sequences alike
and masks the value of every key named in ``sensitive_fields``.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any

DEFAULT_SENSITIVE_FIELDS: frozenset[str] = frozenset(
    {"email", "actor_email", "blameuser", "password", "secret", "token", "mongo_uri"}
)


class SensitiveFieldsFilter:
    """Mask sensitive values; also usable directly as a structlog processor."""

    REDACTED = "[REDACTED]"

    def __init__(self, sensitive_fields: frozenset[str] | None = None) -> None:
        fields = sensitive_fields or DEFAULT_SENSITIVE_FIELDS
        self._fields = frozenset(f.lower() for f in fields)

    def is_sensitive(self, key: Any) -> bool:
        return isinstance(key, str) and key.lower() in self._fields

    def redact(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Mask top-level keys only."""
        return {k: self.REDACTED if self.is_sensitive(k) else v for k, v in data.items()}

    def redact_deep(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Mask keys at any depth, descending into nested mappings, lists and tuples."""
        return {k: self.REDACTED if self.is_sensitive(k) else self._walk(v) for k, v in data.items()}

    def _walk(self, value: Any) -> Any:
        if isinstance(value, Mapping):
            return self.redact_deep(value)
        if isinstance(value, list | tuple):
            return type(value)(self._walk(item) for item in value)
        return value

    def __call__(self, logger: Any, method_name: str, event_dict: Any) -> Any:  # noqa: ARG002
        return self.redact_deep(event_dict)


__all__ = ["DEFAULT_SENSITIVE_FIELDS", "SensitiveFieldsFilter"]
