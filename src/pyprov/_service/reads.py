"""Internal read operations for :class:`pyprov.service.ProviderService`.

These functions keep `service.py` small without changing the public API.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from pyprov.exceptions import EntityNotFoundError, PersistenceError, PyprovError
from pyprov.models.requests import EntityLoad
from pyprov.state.events import ChangeSource
from pyprov.state.policy import enabled_first, entity_id_of

if TYPE_CHECKING:
    from pyprov.service import ProviderService

_logger = logging.getLogger(__name__)


async def load(service: ProviderService, entity_id: str) -> Any:
    """Return the cached entity, fetching it once if absent.

    Concurrent loads of the same id share one gateway read.
    """
    request = EntityLoad(entity_id=entity_id)
    cache = service._cache
    tracker = service._loads

    cached = cache.get(request.entity_id)
    if cached is not None:
        return cached

    task = tracker.in_flight(request.entity_id)
    if task is None:
        task = service._track(asyncio.ensure_future(_fetch(service, request.entity_id)))
        tracker.start(request.entity_id, task)
    # Shielded: a cancelled caller must not cancel the shared gateway read.
    return await asyncio.shield(task)


async def _fetch(service: ProviderService, entity_id: str) -> Any:
    cache = service._cache
    tracker = service._loads

    _logger.debug("fetch_entity %s", entity_id)
    try:
        value = await service._gateway.fetch_entity(entity_id)
    except PyprovError as exc:
        tracker.fail(entity_id, exc)
        raise
    except Exception as exc:
        error = PersistenceError(
            f"Failed to load {entity_id}: {exc}",
            operation="fetch_entity",
            entity_id=entity_id,
        )
        tracker.fail(entity_id, error)
        raise error from exc

    if value is None:
        not_found = EntityNotFoundError(entity_id)
        tracker.fail(entity_id, not_found)
        raise not_found

    # An optimistic write (or reconciliation) may have populated the entry
    # while the read was in flight; that value is newer than ours.
    existing = cache.get(entity_id)
    if existing is not None:
        tracker.ready(entity_id)
        return existing

    cache.put(entity_id, value, optimistic=False, source=ChangeSource.LOAD)
    tracker.ready(entity_id)
    return value


async def initialize(service: ProviderService) -> None:
    """Populate the default slot exactly once.

    Concurrent callers await the same in-flight read.  A failure leaves the
    slot empty, rejects every waiter with the same error and allows retry.
    """
    if service._cache.default_ready:
        return

    task = service._init_task
    if task is None:
        task = service._track(asyncio.ensure_future(_initialize(service)))
        service._init_task = task
    await asyncio.shield(task)


async def _initialize(service: ProviderService) -> None:
    cache = service._cache

    _logger.debug("fetch_default_entity")
    try:
        value = await service._gateway.fetch_default_entity()
        if value is None:
            raise PersistenceError("Gateway returned no default entity", operation="fetch_default_entity")
    except PyprovError:
        service._init_task = None
        raise
    except Exception as exc:
        service._init_task = None
        raise PersistenceError(
            f"Failed to load default entity: {exc}",
            operation="fetch_default_entity",
        ) from exc

    # A load or write may have settled the regular entry while the read was
    # in flight; that value is newer than ours.
    default_id = entity_id_of(value)
    existing = cache.get(default_id) if default_id is not None else None
    cache.set_default(existing if existing is not None else value, source=ChangeSource.DEFAULT)

    if default_id is not None and existing is None:
        cache.put(default_id, value, optimistic=False, source=ChangeSource.LOAD)
        service._loads.ready(default_id)
    _logger.debug("default entity ready: %s", default_id)


async def list_entities(
    service: ProviderService,
    *,
    sort_key: Callable[[Any], Any] | None = None,
) -> list[Any]:
    """Fetch every entity, sorted enabled-first unless *sort_key* is given.

    The sort is stable, so the gateway's order is kept within each group.
    Listing does not touch the cache.
    """
    try:
        entities = list(await service._gateway.list_entities())
    except PyprovError:
        raise
    except Exception as exc:
        raise PersistenceError(f"Failed to list entities: {exc}", operation="list_entities") from exc
    return sorted(entities, key=sort_key or enabled_first)


def schedule_load(
    service: ProviderService,
    entity_id: str,
    loop: asyncio.AbstractEventLoop,
) -> asyncio.Task[Any] | None:
    """Start a background load for an absent entity (fire and forget).

    Failures are logged and recorded in the loading state only.
    """
    if service._cache.get(entity_id) is not None or service._loads.is_loading(entity_id):
        return None

    async def _background() -> Any:
        try:
            return await load(service, entity_id)
        except PyprovError as exc:
            _logger.warning("Failed to load %s: %s", entity_id, exc)
            return None

    return service._track(loop.create_task(_background()))
