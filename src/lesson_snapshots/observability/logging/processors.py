"""Observability – get_logger helper and event-context binding."""
from __future__ import annotations

from typing import Any

import structlog


def get_logger(name: str | None = None, **initial_values: Any) -> Any:
    """Return a bound structlog logger.

    Parameters
    ----------
    name:
        Logger name (typically ``__name__`` of the calling module).
    **initial_values:
        Key-value pairs to bind on the returned logger.
    """
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger


def event_context(**values: Any) -> Any:
    """Bind *values* into structlog contextvars for the ``with`` block.

    Every log line emitted while one event is being folded carries the
    entity kind, domain id and event kind without each call site
    repeating them::

        with event_context(entity="track", domain_id="t-1", event_kind="created"):
            ...
    """
    return structlog.contextvars.bound_contextvars(**values)


__all__ = ["event_context", "get_logger"]
