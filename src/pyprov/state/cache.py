"""Deterministic in-memory entity cache.

This is the only component allowed to change what snapshot readers see.
Every put decides (through :mod:`pyprov.state.policy`) whether the value
actually changed and, only then, notifies the subscription registry.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pyprov.exceptions import UninitializedDefaultError
from pyprov.state.events import ChangeEvent, ChangeSource
from pyprov.state.policy import ChangeDetection, entity_id_of, value_changed
from pyprov.state.subscriptions import SubscriptionRegistry

_logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CacheEntry:
    """Latest known value for one entity."""

    value: Any = None
    generation: int = 0
    optimistic: bool = False
    confirmed: Any = None
    """Last value confirmed by the gateway (rollback target)."""


@dataclass(slots=True)
class PendingWrite:
    """An optimistic mutation whose gateway write has not resolved yet."""

    entity_id: str
    change: dict[str, Any]
    optimistic_value: Any
    prior_confirmed: Any
    started_at: float = field(default_factory=time.monotonic)


class EntityCache:
    """Keyed store of the latest value per entity id plus a default slot.

    Reads never block and return the cached reference itself, so unrelated
    re-reads are identical (``is``) and consumers can compare cheaply.
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        *,
        change_detection: ChangeDetection = ChangeDetection.VALUE,
        max_entries: int = 0,
        on_change: Callable[[ChangeEvent], None] | None = None,
        on_evict: Callable[[str], None] | None = None,
    ) -> None:
        self._registry = registry
        self._mode = change_detection
        self._max_entries = max_entries
        self._on_change = on_change
        self._on_evict = on_evict
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._pending: dict[str, list[PendingWrite]] = {}
        self._default: CacheEntry | None = None
        self._default_id: str | None = None

    # ------------------------------------------------------------------
    # Regular entries
    # ------------------------------------------------------------------

    def get(self, entity_id: str) -> Any | None:
        entry = self._entries.get(entity_id)
        if entry is None:
            return None
        self._entries.move_to_end(entity_id)
        return entry.value

    def entry(self, entity_id: str) -> CacheEntry | None:
        return self._entries.get(entity_id)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def ids(self) -> list[str]:
        return list(self._entries)

    def put(self, entity_id: str, value: Any, *, optimistic: bool, source: ChangeSource) -> bool:
        """Replace the entry for *entity_id*; return whether subscribers were notified."""
        if value is None:
            raise ValueError("Cannot cache None; use invalidate() to drop an entry")

        entry = self._entries.get(entity_id)
        if entry is None:
            entry = CacheEntry()
            self._entries[entity_id] = entry
        changed = value_changed(entry.value, value, self._mode)
        if changed:
            entry.value = value
        entry.generation += 1
        entry.optimistic = optimistic
        if not optimistic:
            entry.confirmed = entry.value
        self._entries.move_to_end(entity_id)

        _logger.debug(
            "put %s gen=%d source=%s optimistic=%s changed=%s",
            entity_id,
            entry.generation,
            source,
            optimistic,
            changed,
        )

        default_slot: CacheEntry | None = None
        if self._default is not None and entity_id == self._default_id:
            default_slot = self._store_default(entry.value)

        self._evict(keep=entity_id)

        if changed:
            self._emit(
                ChangeEvent(
                    entity_id=entity_id,
                    source=source,
                    generation=entry.generation,
                    optimistic=optimistic,
                )
            )
            self._registry.notify(entity_id)
        if default_slot is not None:
            self._announce_default(default_slot, source)
        return changed

    def invalidate(self, entity_id: str) -> bool:
        """Drop one regular entry.  The default slot is never touched."""
        entry = self._entries.pop(entity_id, None)
        if entry is None:
            return False
        _logger.debug("invalidate %s gen=%d", entity_id, entry.generation)
        self._emit(ChangeEvent(entity_id=entity_id, source=ChangeSource.INVALIDATE, generation=entry.generation + 1))
        self._registry.notify(entity_id)
        return True

    def invalidate_all(self) -> list[str]:
        dropped = list(self._entries)
        for entity_id in dropped:
            self.invalidate(entity_id)
        return dropped

    # ------------------------------------------------------------------
    # Pending writes
    # ------------------------------------------------------------------

    def begin_write(self, write: PendingWrite) -> None:
        self._pending.setdefault(write.entity_id, []).append(write)

    def end_write(self, write: PendingWrite) -> None:
        remaining = [w for w in self._pending.get(write.entity_id, ()) if w is not write]
        if remaining:
            self._pending[write.entity_id] = remaining
        else:
            self._pending.pop(write.entity_id, None)

    def pending(self, entity_id: str) -> list[PendingWrite]:
        return list(self._pending.get(entity_id, ()))

    # ------------------------------------------------------------------
    # Default slot
    # ------------------------------------------------------------------

    @property
    def default_ready(self) -> bool:
        return self._default is not None

    @property
    def default_id(self) -> str | None:
        return self._default_id

    def get_default(self) -> Any:
        if self._default is None:
            raise UninitializedDefaultError("Default entity not initialized; call initialize() first")
        return self._default.value

    def peek_default(self) -> Any | None:
        return self._default.value if self._default is not None else None

    def set_default(self, value: Any, *, source: ChangeSource = ChangeSource.DEFAULT) -> bool:
        if value is None:
            raise ValueError("Default entity cannot be None")
        slot = self._store_default(value)
        if slot is not None:
            self._announce_default(slot, source)
        return slot is not None

    def _store_default(self, value: Any) -> CacheEntry | None:
        """Write the default slot; return it when readers should hear about the change."""
        slot = self._default
        if slot is None:
            slot = CacheEntry()
            self._default = slot
        changed = value_changed(slot.value, value, self._mode)
        if changed:
            slot.value = value
        slot.generation += 1
        slot.confirmed = slot.value
        self._default_id = entity_id_of(slot.value)
        return slot if changed else None

    def _announce_default(self, slot: CacheEntry, source: ChangeSource) -> None:
        _logger.debug("default slot -> %s gen=%d", self._default_id, slot.generation)
        self._emit(ChangeEvent(entity_id=None, source=source, generation=slot.generation))
        self._registry.notify_default()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _evict(self, *, keep: str) -> None:
        if self._max_entries <= 0 or len(self._entries) <= self._max_entries:
            return
        for entity_id in list(self._entries):
            if len(self._entries) <= self._max_entries:
                break
            entry = self._entries[entity_id]
            if (
                entity_id == keep
                or entry.optimistic
                or entity_id in self._pending
                or self._registry.has_subscribers(entity_id)
            ):
                continue
            del self._entries[entity_id]
            _logger.debug("evicted %s gen=%d", entity_id, entry.generation)
            if self._on_evict is not None:
                self._on_evict(entity_id)

    def _emit(self, event: ChangeEvent) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(event)
        except Exception:
            _logger.warning("on_change hook failed for %s", event.entity_id, exc_info=True)

    def reset(self) -> None:
        """Drop every entry and the default slot without notifying (teardown)."""
        self._entries.clear()
        self._pending.clear()
        self._default = None
        self._default_id = None
