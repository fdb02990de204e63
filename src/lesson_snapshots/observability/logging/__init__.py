"""Observability – structured logging helpers."""
from lesson_snapshots.observability.logging.factory import JsonLoggerFactory, configure_logging
from lesson_snapshots.observability.logging.filters import DEFAULT_SENSITIVE_FIELDS, SensitiveFieldsFilter
from lesson_snapshots.observability.logging.processors import get_logger

__all__ = [
    "DEFAULT_SENSITIVE_FIELDS",
    "JsonLoggerFactory",
    "SensitiveFieldsFilter",
    "configure_logging",
    "get_logger",
]
