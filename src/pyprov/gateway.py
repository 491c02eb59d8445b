"""Persistence gateway boundary.

The service never talks to storage directly.  Anything that satisfies
:class:`PersistenceGateway` can back it: the bundled adapters in
:mod:`pyprov.gateways`, a database layer, or a test double.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class PersistenceGateway(Protocol):
    """Structural async interface to durable storage.

    The gateway gives no ordering guarantee across concurrent calls; the
    service is responsible for any per-id serialization it needs.
    """

    async def fetch_entity(self, entity_id: str) -> Any | None:
        """Return the stored entity, or ``None`` when the id does not exist."""
        ...

    async def fetch_default_entity(self) -> Any:
        """Return the default entity; raise when none was ever configured."""
        ...

    async def write_entity(self, entity_id: str, change: Mapping[str, Any]) -> Any:
        """Apply *change* and return the authoritative post-write entity."""
        ...

    async def list_entities(self) -> Sequence[Any]:
        ...
