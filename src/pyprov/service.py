"""High-level async service for reactive provider access."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from pydantic import BaseModel

from pyprov._service import reads as _reads
from pyprov._service import updates as _updates
from pyprov.config import ProvConfig
from pyprov.gateway import PersistenceGateway
from pyprov.models.requests import is_valid_entity_id
from pyprov.state.cache import EntityCache, PendingWrite
from pyprov.state.events import ChangeEvent
from pyprov.state.loading import LoadState, LoadTracker
from pyprov.state.subscriptions import Callback, Subscription, SubscriptionRegistry, inert_subscription

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProviderService:
    """Reactive, optimistically-updated view over a persistence gateway.

    Usage::

        async with ProviderService(gateway) as service:
            await service.initialize()
            sub = service.watch("openai", on_openai_changed)
            await service.update("openai", {"enabled": True})
            sub.unsubscribe()

    Snapshot reads are synchronous and return the cached reference.  All
    state lives on the instance; create one per application (or per test).
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        config: ProvConfig | None = None,
        *,
        on_change: Callable[[ChangeEvent], None] | None = None,
    ) -> None:
        self._config = config or ProvConfig()
        self._gateway = gateway
        self._registry = SubscriptionRegistry()
        self._loads = LoadTracker()
        self._cache = EntityCache(
            self._registry,
            change_detection=self._config.change_detection,
            max_entries=self._config.max_entries,
            on_change=on_change,
            on_evict=self._loads.forget,
        )
        self._init_task: asyncio.Future[None] | None = None
        self._tasks: set[asyncio.Future[Any]] = set()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ProviderService:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Wait for outstanding gateway work, then drop all state.

        Gateway calls are never cancelled; their results are applied before
        the cache and subscriptions are cleared.
        """
        if self._tasks:
            _logger.debug("closing with %d outstanding task(s)", len(self._tasks))
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._registry.clear()
        self._cache.reset()
        self._loads.clear()
        self._init_task = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> ProvConfig:
        return self._config

    @property
    def gateway(self) -> PersistenceGateway:
        return self._gateway

    @property
    def cache(self) -> EntityCache:
        return self._cache

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Snapshots and subscriptions
    # ------------------------------------------------------------------

    def get_snapshot(self, entity_id: str) -> Any | None:
        """Current cached value, or ``None`` when absent (never blocks)."""
        if not is_valid_entity_id(entity_id):
            return None
        return self._cache.get(entity_id.strip())

    def subscribe(self, entity_id: str, callback: Callback) -> Subscription:
        if not is_valid_entity_id(entity_id):
            return inert_subscription(entity_id)
        return self._registry.subscribe(entity_id.strip(), callback)

    def watch(self, entity_id: str, callback: Callback) -> Subscription:
        """Subscribe and lazily load the entity in the background if absent.

        Must be called from a running event loop; raises ``RuntimeError``
        before registering anything otherwise.
        """
        if not is_valid_entity_id(entity_id):
            return inert_subscription(entity_id)
        loop = asyncio.get_running_loop()
        entity_id = entity_id.strip()
        sub = self._registry.subscribe(entity_id, callback)
        _reads.schedule_load(self, entity_id, loop)
        return sub

    def get_default_snapshot(self) -> Any | None:
        """The default entity, or ``None`` before a successful :meth:`initialize`."""
        return self._cache.peek_default()

    def get_default(self) -> Any:
        """The default entity; raises ``UninitializedDefaultError`` if not initialized."""
        return self._cache.get_default()

    def subscribe_default(self, callback: Callback) -> Subscription:
        return self._registry.subscribe_default(callback)

    # ------------------------------------------------------------------
    # Loading state
    # ------------------------------------------------------------------

    def load_state(self, entity_id: str) -> LoadState:
        if not is_valid_entity_id(entity_id):
            return LoadState.UNINITIALIZED
        entity_id = entity_id.strip()
        if entity_id in self._cache:
            return LoadState.READY
        return self._loads.state(entity_id)

    def load_error(self, entity_id: str) -> BaseException | None:
        if not is_valid_entity_id(entity_id):
            return None
        return self._loads.error(entity_id.strip())

    def is_loading(self, entity_id: str) -> bool:
        """``True`` while the entity is absent and a load is in flight."""
        if not is_valid_entity_id(entity_id):
            return False
        entity_id = entity_id.strip()
        return entity_id not in self._cache and self._loads.is_loading(entity_id)

    def pending_writes(self, entity_id: str) -> list[PendingWrite]:
        if not is_valid_entity_id(entity_id):
            return []
        return self._cache.pending(entity_id.strip())

    # ------------------------------------------------------------------
    # Async operations
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        await _reads.initialize(self)

    async def load(self, entity_id: str) -> Any:
        return await _reads.load(self, entity_id)

    async def update(
        self,
        entity_id: str,
        change: Mapping[str, Any] | BaseModel,
        *,
        optimistic: bool = True,
    ) -> Any:
        return await _updates.update(self, entity_id, change, optimistic=optimistic)

    async def list_entities(self, *, sort_key: Callable[[Any], Any] | None = None) -> list[Any]:
        return await _reads.list_entities(self, sort_key=sort_key)

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def invalidate(self, entity_id: str) -> bool:
        """Drop a regular entry so the next read reloads it.  Default slot is kept."""
        entity_id = entity_id.strip()
        self._loads.forget(entity_id)
        return self._cache.invalidate(entity_id)

    def invalidate_all(self) -> list[str]:
        dropped = self._cache.invalidate_all()
        for entity_id in dropped:
            self._loads.forget(entity_id)
        return dropped

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _track(self, task: asyncio.Future[T]) -> asyncio.Future[T]:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
