"""Dict-backed gateway.

Useful for tests, demos and as the reference behavior for other adapters:
writes merge with the same rule the service uses for optimistic values, so
a successful write reconciles to a value equal to the optimistic guess.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pyprov.exceptions import EntityNotFoundError, PersistenceError
from pyprov.state.policy import entity_id_of, merge_change

_logger = logging.getLogger(__name__)


class InMemoryGateway:
    """In-process store of entities keyed by their ``id``."""

    def __init__(
        self,
        entities: Iterable[Any] = (),
        *,
        default_id: str | None = None,
        latency: float = 0.0,
    ) -> None:
        self._entities: dict[str, Any] = {}
        self._default_id = default_id
        self._latency = latency
        self.calls: dict[str, int] = {}
        for entity in entities:
            self.seed(entity)

    def seed(self, entity: Any) -> None:
        entity_id = entity_id_of(entity)
        if entity_id is None:
            raise ValueError("entity has no id")
        self._entities[entity_id] = entity

    def set_default_id(self, entity_id: str | None) -> None:
        self._default_id = entity_id

    def stored(self, entity_id: str) -> Any | None:
        """Synchronous peek at the stored value (not part of the gateway protocol)."""
        return self._entities.get(entity_id)

    def _record_call(self, operation: str) -> None:
        self.calls[operation] = self.calls.get(operation, 0) + 1

    async def _io(self) -> None:
        # Always yield once so callers observe a real suspension point.
        await asyncio.sleep(self._latency)

    async def fetch_entity(self, entity_id: str) -> Any | None:
        self._record_call("fetch_entity")
        await self._io()
        return self._entities.get(entity_id)

    async def fetch_default_entity(self) -> Any:
        self._record_call("fetch_default_entity")
        await self._io()
        if self._default_id is None or self._default_id not in self._entities:
            raise PersistenceError("No default entity configured", operation="fetch_default_entity")
        return self._entities[self._default_id]

    async def write_entity(self, entity_id: str, change: Mapping[str, Any]) -> Any:
        self._record_call("write_entity")
        await self._io()
        current = self._entities.get(entity_id)
        if current is None:
            raise EntityNotFoundError(entity_id)
        updated = merge_change(current, change)
        self._entities[entity_id] = updated
        _logger.debug("stored %s", entity_id)
        return updated

    async def list_entities(self) -> list[Any]:
        self._record_call("list_entities")
        await self._io()
        return list(self._entities.values())
