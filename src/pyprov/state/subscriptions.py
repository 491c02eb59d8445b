"""Per-entity subscription registry.

Callbacks take no arguments; subscribers read the new state back through a
snapshot call.  Dispatch iterates over the registrations that existed when
the pass started, so a callback may subscribe or unsubscribe (itself or
others) without affecting the pass in progress.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

_logger = logging.getLogger(__name__)

Callback = Callable[[], None]


@dataclass(slots=True, eq=False)
class Subscription:
    """Handle for one registration.

    Calling the handle (or :meth:`unsubscribe`) removes exactly this
    registration.  Further calls are no-ops.
    """

    entity_id: str | None
    callback: Callback
    _registry: SubscriptionRegistry | None = field(default=None, repr=False)
    active: bool = True

    @property
    def is_default(self) -> bool:
        return self.entity_id is None

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        registry = self._registry
        self._registry = None
        if registry is not None:
            registry._remove(self)

    def __call__(self) -> None:
        self.unsubscribe()


def inert_subscription(entity_id: str | None = None) -> Subscription:
    """Return an already-closed handle (used for ids that can never load)."""
    return Subscription(entity_id=entity_id, callback=lambda: None, active=False)


class SubscriptionRegistry:
    """Multiplexed callback lists keyed by entity id, plus a default channel."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscription]] = {}
        self._default: list[Subscription] = []

    def subscribe(self, entity_id: str, callback: Callback) -> Subscription:
        sub = Subscription(entity_id=entity_id, callback=callback, _registry=self)
        # Copy-on-write: an in-flight dispatch keeps iterating its own list.
        self._subscribers[entity_id] = [*self._subscribers.get(entity_id, ()), sub]
        return sub

    def subscribe_default(self, callback: Callback) -> Subscription:
        sub = Subscription(entity_id=None, callback=callback, _registry=self)
        self._default = [*self._default, sub]
        return sub

    def _remove(self, sub: Subscription) -> None:
        if sub.entity_id is None:
            self._default = [s for s in self._default if s is not sub]
            return
        remaining = [s for s in self._subscribers.get(sub.entity_id, ()) if s is not sub]
        if remaining:
            self._subscribers[sub.entity_id] = remaining
        else:
            self._subscribers.pop(sub.entity_id, None)

    def notify(self, entity_id: str) -> int:
        """Invoke every callback registered for *entity_id*; return how many ran."""
        return self._dispatch(self._subscribers.get(entity_id, ()), entity_id)

    def notify_default(self) -> int:
        return self._dispatch(self._default, None)

    def _dispatch(self, snapshot: tuple[Subscription, ...] | list[Subscription], entity_id: str | None) -> int:
        called = 0
        for sub in tuple(snapshot):
            called += 1
            try:
                sub.callback()
            except Exception:
                _logger.warning(
                    "Subscriber callback failed for %s",
                    entity_id if entity_id is not None else "<default>",
                    exc_info=True,
                )
        return called

    def has_subscribers(self, entity_id: str) -> bool:
        return bool(self._subscribers.get(entity_id))

    def count(self, entity_id: str | None) -> int:
        if entity_id is None:
            return len(self._default)
        return len(self._subscribers.get(entity_id, ()))

    def clear(self) -> None:
        """Deactivate and drop every registration."""
        for subs in (*self._subscribers.values(), self._default):
            for sub in subs:
                sub.active = False
                sub._registry = None
        self._subscribers.clear()
        self._default = []
