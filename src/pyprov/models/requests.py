"""Validated request objects for service calls.

These models are internal helpers used to validate arguments before any
cache or gateway work happens.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class _EntityRequest(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    entity_id: str

    @field_validator("entity_id")
    @classmethod
    def _normalize_entity_id(cls, value: str) -> str:
        entity_id = value.strip()
        if not entity_id:
            raise ValueError("entity_id must be non-empty")
        return entity_id


class EntityLoad(_EntityRequest):
    pass


class EntityUpdate(_EntityRequest):
    change: dict[str, Any] = Field(default_factory=dict)
    optimistic: bool = True

    @model_validator(mode="after")
    def _reject_id_change(self) -> EntityUpdate:
        new_id = self.change.get("id")
        if new_id is not None and new_id != self.entity_id:
            raise ValueError("change may not alter the entity id")
        return self


def is_valid_entity_id(entity_id: Any) -> bool:
    """Return ``True`` for non-blank string ids (the only ids that reach the gateway)."""
    return isinstance(entity_id, str) and bool(entity_id.strip())
