"""Observability – metric instrument ports.

The engine only ever needs two instrument shapes: counters labelled by
``entity`` (and ``reason`` for no-op folds) and one latency histogram.
Backends implement :class:`Metrics`; nothing in the package depends on a
concrete exporter.
"""
from __future__ import annotations

import abc
from collections.abc import Mapping

Labels = Mapping[str, str]


class Counter(abc.ABC):
    @abc.abstractmethod
    def add(self, value: float = 1.0, labels: Labels | None = None) -> None: ...


class Histogram(abc.ABC):
    @abc.abstractmethod
    def record(self, value: float, labels: Labels | None = None) -> None: ...


class Metrics(abc.ABC):
    """Port: hands out instruments by name.

    Asking twice for the same *name* must yield an instrument that
    accumulates into the same series.
    """

    @abc.abstractmethod
    def counter(self, name: str, description: str = "", unit: str = "") -> Counter: ...

    @abc.abstractmethod
    def histogram(self, name: str, description: str = "", unit: str = "ms") -> Histogram: ...


__all__ = ["Counter", "Histogram", "Labels", "Metrics"]
