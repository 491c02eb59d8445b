"""Deterministic change and merge policy.

This module intentionally contains *no* cache bookkeeping.  It answers three
questions for the cache and the update coordinator: did a value change, what
is the result of merging a partial change over an entity, and which id does
an entity carry.
"""

from __future__ import annotations

import copy
import dataclasses
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydantic import BaseModel


class ChangeDetection(StrEnum):
    IDENTITY = "identity"
    VALUE = "value"


def value_changed(previous: Any, current: Any, mode: ChangeDetection) -> bool:
    """Return ``True`` when subscribers should hear about *current*."""
    if previous is current:
        return False
    if mode == ChangeDetection.IDENTITY:
        return True
    # Absent vs present is always a change, even for falsy entities.
    if previous is None or current is None:
        return True
    return bool(previous != current)


def change_to_patch(change: Mapping[str, Any] | BaseModel) -> dict[str, Any]:
    """Normalize a partial change into a plain dict of set fields."""
    if isinstance(change, BaseModel):
        return change.model_dump(exclude_unset=True)
    return dict(change)


def merge_change(current: Any, change: Mapping[str, Any] | BaseModel) -> Any:
    """Merge *change* over *current* and return a new entity.

    Keys in the change overwrite; nothing is merged recursively.  The
    current entity is never mutated so cached references stay stable.
    """
    patch = change_to_patch(change)
    if isinstance(current, BaseModel):
        merged = current.model_dump()
        merged.update(copy.deepcopy(patch))
        return type(current).model_validate(merged)
    if isinstance(current, Mapping):
        return {**current, **copy.deepcopy(patch)}
    if dataclasses.is_dataclass(current) and not isinstance(current, type):
        return dataclasses.replace(current, **patch)
    raise TypeError(f"Cannot merge a change into {type(current).__name__}")


def entity_id_of(entity: Any) -> str | None:
    """Best-effort id lookup (``entity.id`` or ``entity["id"]``)."""
    if entity is None:
        return None
    if isinstance(entity, Mapping):
        value = entity.get("id")
    else:
        value = getattr(entity, "id", None)
    return value if isinstance(value, str) and value else None


def enabled_first(entity: Any) -> int:
    """Sort key placing enabled entities before disabled ones."""
    if isinstance(entity, Mapping):
        enabled = entity.get("enabled", False)
    else:
        enabled = getattr(entity, "enabled", False)
    return 0 if enabled else 1
