"""Cache change events.

Every transition the cache applies is described by a :class:`ChangeEvent`
and handed to the service-level ``on_change`` hook.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ChangeSource(StrEnum):
    LOAD = "load"
    OPTIMISTIC = "optimistic"
    RECONCILE = "reconcile"
    ROLLBACK = "rollback"
    INVALIDATE = "invalidate"
    DEFAULT = "default"


class ChangeEvent(BaseModel):
    """A cache transition that changed what readers observe."""

    model_config = ConfigDict(frozen=True)

    entity_id: str | None = Field(default=None, description="Entity id; None for the default slot")
    source: ChangeSource
    generation: int
    optimistic: bool = False
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_default(self) -> bool:
        return self.entity_id is None
