"""Denormalization – field-enumerated payload merge.

Update events carry only the fields that changed. Merging them into the
stored payload follows one precedence rule for every entity kind:

* a field present in the incoming payload wins; an explicit ``None``
  clears the stored value, an *absent* field keeps it;
* nested objects merge recursively under the same rule;
* lists are replaced wholesale.

Each kind declares which of its fields are scalars, nested objects or
lists. Fields a kind does not declare are still carried, classified by
the shape of the values on both sides.
"""

from __future__ import annotations

import copy
import dataclasses
from collections.abc import Mapping
from typing import Any

from lesson_snapshots.application.denormalization.events import EntityKind


@dataclasses.dataclass(frozen=True)
class MergeFields:
    """How each known field of one entity kind is merged."""

    scalars: frozenset[str] = frozenset()
    nested: frozenset[str] = frozenset()
    lists: frozenset[str] = frozenset()


MERGE_FIELDS: dict[EntityKind, MergeFields] = {
    EntityKind.REVISION: MergeFields(
        scalars=frozenset({"id", "status", "major", "minor", "patch", "createdAt"}),
    ),
    EntityKind.SLIDE: MergeFields(
        scalars=frozenset({"id", "revisionId", "position", "type", "mediaUrl", "createdAt"}),
    ),
    EntityKind.TRACK: MergeFields(
        scalars=frozenset({"id", "slideId", "type", "seconds"}),
        nested=frozenset({"setting"}),
        lists=frozenset({"questions", "tags"}),
    ),
}


def merge_payload(
    entity: EntityKind,
    prior: Mapping[str, Any],
    incoming: Mapping[str, Any],
) -> dict[str, Any]:
    """Return a new payload with *incoming* merged over *prior*.

    Neither argument is modified and the result shares no mutable state
    with either of them.
    """
    fields = MERGE_FIELDS[entity]
    merged: dict[str, Any] = copy.deepcopy(dict(prior))
    for key, value in incoming.items():
        if key in fields.scalars or key in fields.lists:
            merged[key] = copy.deepcopy(value)
        elif key in fields.nested:
            merged[key] = _merge_value(merged.get(key), value)
        elif isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _merge_value(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _merge_value(prior: Any, incoming: Any) -> Any:
    if isinstance(prior, Mapping) and isinstance(incoming, Mapping):
        result = copy.deepcopy(dict(prior))
        for key, value in incoming.items():
            result[key] = _merge_value(result.get(key), value)
        return result
    return copy.deepcopy(incoming)


__all__ = ["MERGE_FIELDS", "MergeFields", "merge_payload"]
