"""Root error class for the lesson-snapshots error hierarchy."""

from __future__ import annotations

import json
from typing import Any


class BaseError(Exception):
    """Root of every error the engine raises on purpose.

    ``code`` is a stable slug for callers and log queries. ``detail`` holds
    the ids involved in the failure (entity kind, domain id, version id)
    so a log line or API response can point at the offending data.
    """

    default_code: str = "base_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        detail: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.detail: dict[str, Any] = dict(detail or {})
        if cause is not None:
            self.__cause__ = cause

    @property
    def cause(self) -> BaseException | None:
        return self.__cause__

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "detail": dict(self.detail),
        }
        if self.__cause__ is not None:
            payload["cause"] = repr(self.__cause__)
        return payload

    def log_fields(self) -> dict[str, Any]:
        """Flat key/values for a structlog call.

        ::

            logger.warning("event.rejected", **err.log_fields())
        """
        return {"error_code": self.code, "error": self.message, **self.detail}

    def __str__(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


__all__ = ["BaseError"]
