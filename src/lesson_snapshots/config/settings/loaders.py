"""Config settings – loaders reading ``<PREFIX>_<FIELD>`` variables.

Both loaders resolve a settings dataclass from a flat ``str -> str``
mapping. :class:`EnvSettingsLoader` reads ``os.environ``;
:class:`DotenvSettingsLoader` layers a ``.env`` file over it without
touching the process environment.
"""
from __future__ import annotations

import abc
import dataclasses
import os
import typing
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from dotenv import dotenv_values

from lesson_snapshots.config.settings.base import Settings
from lesson_snapshots.config.validation import (
    ConfigError,
    InvalidSettingValueError,
    MissingRequiredSettingError,
)

T = TypeVar("T", bound=Settings)

_BOOLEANS = {"1": True, "true": True, "yes": True, "on": True,
             "0": False, "false": False, "no": False, "off": False}


def _parse_bool(raw: str) -> bool:
    try:
        return _BOOLEANS[raw.strip().lower()]
    except KeyError:
        raise ValueError("expected a boolean") from None


_PARSERS: dict[type, Callable[[str], Any]] = {
    bool: _parse_bool,
    int: int,
    float: float,
    str: str,
}


def settings_from_mapping(settings_class: type[T], source: Mapping[str, str | None]) -> T:
    """Build *settings_class* from the variables in *source*.

    Fields without a variable keep their defaults. Raises
    :class:`MissingRequiredSettingError` for a field with neither, and
    :class:`InvalidSettingValueError` for a value that does not parse.
    """
    hints = typing.get_type_hints(settings_class)
    values: dict[str, Any] = {}
    for field in dataclasses.fields(settings_class):  # type: ignore[arg-type]
        key = settings_class.env_key(field.name)
        raw = source.get(key)
        if raw is None:
            if field.default is dataclasses.MISSING and field.default_factory is dataclasses.MISSING:
                raise MissingRequiredSettingError(key)
            continue
        parse = _PARSERS.get(hints.get(field.name, str), str)
        try:
            values[field.name] = parse(raw)
        except ValueError as exc:
            raise InvalidSettingValueError(key, raw, str(exc)) from exc

    try:
        return settings_class(**values)
    except ConfigError:
        raise
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Cannot build {settings_class.__name__}: {exc}", cause=exc) from exc


class SettingsLoader(abc.ABC):
    """Port: resolve a settings dataclass from some external source."""

    @abc.abstractmethod
    def load(self, settings_class: type[T]) -> T: ...


class EnvSettingsLoader(SettingsLoader):
    def load(self, settings_class: type[T]) -> T:
        return settings_from_mapping(settings_class, os.environ)


class DotenvSettingsLoader(SettingsLoader):
    """Variables from *env_file* merged with ``os.environ``.

    The environment wins unless *override* is set. A missing file
    contributes nothing.
    """

    def __init__(self, env_file: str = ".env", override: bool = False) -> None:
        self._env_file = env_file
        self._override = override

    def load(self, settings_class: type[T]) -> T:
        from_file = {k: v for k, v in dotenv_values(self._env_file).items() if v is not None}
        layers = (os.environ, from_file) if self._override else (from_file, os.environ)
        return settings_from_mapping(settings_class, {**layers[0], **layers[1]})


__all__ = ["DotenvSettingsLoader", "EnvSettingsLoader", "SettingsLoader", "settings_from_mapping"]
