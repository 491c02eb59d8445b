"""Per-entity loading state machine.

``uninitialized -> loading -> ready | error``; ``error -> loading`` again on
the next read attempt.  Errors are remembered for inspection only: a failed
load never puts anything in the cache.
"""

from __future__ import annotations

import asyncio
from enum import StrEnum
from typing import Any


class LoadState(StrEnum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class LoadTracker:
    """Tracks in-flight loads (one per id) and the last outcome per id."""

    def __init__(self) -> None:
        self._states: dict[str, LoadState] = {}
        self._errors: dict[str, BaseException] = {}
        self._in_flight: dict[str, asyncio.Future[Any]] = {}

    def state(self, entity_id: str) -> LoadState:
        return self._states.get(entity_id, LoadState.UNINITIALIZED)

    def error(self, entity_id: str) -> BaseException | None:
        return self._errors.get(entity_id)

    def in_flight(self, entity_id: str) -> asyncio.Future[Any] | None:
        return self._in_flight.get(entity_id)

    def is_loading(self, entity_id: str) -> bool:
        return entity_id in self._in_flight

    def start(self, entity_id: str, task: asyncio.Future[Any]) -> None:
        self._in_flight[entity_id] = task
        self._states[entity_id] = LoadState.LOADING
        self._errors.pop(entity_id, None)

        def _done(finished: asyncio.Future[Any]) -> None:
            if self._in_flight.get(entity_id) is finished:
                del self._in_flight[entity_id]

        task.add_done_callback(_done)

    def ready(self, entity_id: str) -> None:
        self._states[entity_id] = LoadState.READY
        self._errors.pop(entity_id, None)

    def fail(self, entity_id: str, error: BaseException) -> None:
        self._states[entity_id] = LoadState.ERROR
        self._errors[entity_id] = error

    def forget(self, entity_id: str) -> None:
        self._states.pop(entity_id, None)
        self._errors.pop(entity_id, None)

    def clear(self) -> None:
        self._states.clear()
        self._errors.clear()
        self._in_flight.clear()
