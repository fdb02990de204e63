"""Observability – JsonLoggerFactory."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import structlog

from lesson_snapshots.observability.logging.filters import SensitiveFieldsFilter

if TYPE_CHECKING:
    from lesson_snapshots.config.settings import EngineSettings


class JsonLoggerFactory:
    """Route structlog through stdlib logging with one JSON (or console) handler.

    Context bound by :func:`event_context` is merged before redaction, so
    an e-mail bound as context is masked like one passed inline.
    """

    @staticmethod
    def processors(sensitive_fields: frozenset[str] | None = None) -> list[Any]:
        return [
            structlog.contextvars.merge_contextvars,
            SensitiveFieldsFilter(sensitive_fields),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
        ]

    @classmethod
    def configure(
        cls,
        level: int = logging.INFO,
        sensitive_fields: frozenset[str] | None = None,
        json: bool = True,
    ) -> None:
        structlog.configure(
            processors=[
                *cls.processors(sensitive_fields),
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )
        renderer: Any = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()
        handler = logging.StreamHandler()
        handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            )
        )
        root = logging.getLogger()
        root.handlers.clear()
        root.addHandler(handler)
        root.setLevel(level)


def configure_logging(settings: "EngineSettings") -> None:
    """Apply the logging section of *settings*."""
    JsonLoggerFactory.configure(
        level=logging.getLevelNamesMapping()[settings.log_level.upper()],
        json=settings.log_json,
    )


__all__ = ["JsonLoggerFactory", "configure_logging"]
