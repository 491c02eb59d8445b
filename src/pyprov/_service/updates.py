"""Internal optimistic update operations for :class:`pyprov.service.ProviderService`.

An update is applied to the cache (and announced) before the gateway sees
it, then reconciled with the gateway's authoritative value or rolled back.
Writes to the same id may overlap; each resolves last-writer-wins in
gateway completion order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from pyprov._redact import redact_for_log
from pyprov._service.reads import load
from pyprov.exceptions import PersistenceError, PyprovError
from pyprov.models.requests import EntityUpdate
from pyprov.state.cache import EntityCache, PendingWrite
from pyprov.state.events import ChangeSource
from pyprov.state.policy import change_to_patch, merge_change

if TYPE_CHECKING:
    from pyprov.service import ProviderService

_logger = logging.getLogger(__name__)


async def update(
    service: ProviderService,
    entity_id: str,
    change: Mapping[str, Any] | BaseModel,
    *,
    optimistic: bool = True,
) -> Any:
    """Apply *change* optimistically, persist it, then reconcile or roll back.

    Returns the gateway's authoritative value.  Raises
    :class:`~pyprov.exceptions.EntityNotFoundError` when the id is unknown
    to the store and :class:`~pyprov.exceptions.PersistenceError` when the
    write is rejected (after the rollback has been applied).
    """
    request = EntityUpdate(entity_id=entity_id, change=change_to_patch(change), optimistic=optimistic)
    entity_id = request.entity_id
    patch = request.change
    cache = service._cache

    if service._config.log_payloads:
        _logger.debug("update %s change=%s", entity_id, redact_for_log(patch))
    else:
        _logger.debug("update %s fields=%s", entity_id, sorted(patch))

    current = cache.get(entity_id)
    if current is None:
        current = await load(service, entity_id)
        # Other work may have run while loading; build on the newest value.
        latest = cache.get(entity_id)
        if latest is not None:
            current = latest

    write: PendingWrite | None = None
    if request.optimistic:
        entry = cache.entry(entity_id)
        prior = entry.confirmed if entry is not None and entry.confirmed is not None else current
        optimistic_value = merge_change(current, patch)
        write = PendingWrite(
            entity_id=entity_id,
            change=patch,
            optimistic_value=optimistic_value,
            prior_confirmed=prior,
        )
        cache.begin_write(write)
        # Subscribers hear about the optimistic value before the first await.
        cache.put(entity_id, optimistic_value, optimistic=True, source=ChangeSource.OPTIMISTIC)

    task = service._track(asyncio.ensure_future(_commit(service, entity_id, patch, write)))
    # Shielded: once issued, a write always resolves into the cache.
    return await asyncio.shield(task)


async def _commit(
    service: ProviderService,
    entity_id: str,
    patch: dict[str, Any],
    write: PendingWrite | None,
) -> Any:
    cache = service._cache
    try:
        try:
            result = await service._gateway.write_entity(entity_id, patch)
            if result is None:
                raise PersistenceError(
                    f"Gateway returned no value for {entity_id}",
                    operation="write_entity",
                    entity_id=entity_id,
                )
        except asyncio.CancelledError:
            _rollback(cache, entity_id, write)
            raise
        except PyprovError as exc:
            _logger.debug("write %s rejected: %s", entity_id, exc)
            _rollback(cache, entity_id, write)
            raise
        except Exception as exc:
            _logger.debug("write %s failed", entity_id, exc_info=True)
            _rollback(cache, entity_id, write)
            raise PersistenceError(
                f"Failed to persist {entity_id}: {exc}",
                operation="write_entity",
                entity_id=entity_id,
            ) from exc

        cache.put(entity_id, result, optimistic=False, source=ChangeSource.RECONCILE)
        service._loads.ready(entity_id)
        return result
    finally:
        if write is not None:
            cache.end_write(write)


def _rollback(cache: EntityCache, entity_id: str, write: PendingWrite | None) -> None:
    """Undo *write*: the latest confirmed value with every other pending change re-applied.

    Sibling writes still in flight keep their optimistic effect, so the entry
    stays optimistic until the last of them resolves.
    """
    if write is None:
        return
    cache.end_write(write)
    entry = cache.entry(entity_id)
    target = entry.confirmed if entry is not None and entry.confirmed is not None else write.prior_confirmed
    remaining = cache.pending(entity_id)
    for sibling in remaining:
        target = merge_change(target, sibling.change)
    cache.put(entity_id, target, optimistic=bool(remaining), source=ChangeSource.ROLLBACK)
