from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import pytest

from pyprov.config import ProvConfig
from pyprov.exceptions import EntityNotFoundError, PersistenceError
from pyprov.models.provider import Provider
from pyprov.service import ProviderService
from pyprov.state.policy import merge_change


@dataclass
class HeldWrite:
    entity_id: str
    change: dict[str, Any]
    future: asyncio.Future[Any]


@dataclass
class FakeGateway:
    """Gateway double whose completions the test controls.

    With ``hold_writes`` every ``write_entity`` call parks on a future that
    the test resolves through :meth:`release` / :meth:`reject`, in any order.
    """

    entities: dict[str, Any] = field(default_factory=dict)
    default_id: str | None = None
    calls: dict[str, int] = field(default_factory=dict)
    hold_writes: bool = False
    held: list[HeldWrite] = field(default_factory=list)
    fetch_gate: asyncio.Event | None = None
    fetch_error: BaseException | None = None
    default_gate: asyncio.Event | None = None
    default_error: BaseException | None = None
    list_error: BaseException | None = None

    def _record_call(self, operation: str) -> None:
        self.calls[operation] = self.calls.get(operation, 0) + 1

    def count(self, operation: str) -> int:
        return self.calls.get(operation, 0)

    async def fetch_entity(self, entity_id: str) -> Any | None:
        self._record_call("fetch_entity")
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        else:
            await asyncio.sleep(0)
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.entities.get(entity_id)

    async def fetch_default_entity(self) -> Any:
        self._record_call("fetch_default_entity")
        if self.default_gate is not None:
            await self.default_gate.wait()
        else:
            await asyncio.sleep(0)
        if self.default_error is not None:
            raise self.default_error
        if self.default_id is None:
            raise PersistenceError("no default", operation="fetch_default_entity")
        return self.entities[self.default_id]

    async def write_entity(self, entity_id: str, change: Mapping[str, Any]) -> Any:
        self._record_call("write_entity")
        if self.hold_writes:
            future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
            self.held.append(HeldWrite(entity_id=entity_id, change=dict(change), future=future))
            return await future
        await asyncio.sleep(0)
        current = self.entities.get(entity_id)
        if current is None:
            raise EntityNotFoundError(entity_id)
        updated = merge_change(current, change)
        self.entities[entity_id] = updated
        return updated

    async def list_entities(self) -> list[Any]:
        self._record_call("list_entities")
        await asyncio.sleep(0)
        if self.list_error is not None:
            raise self.list_error
        return list(self.entities.values())

    def release(self, index: int, value: Any | None = None) -> Any:
        """Complete a held write; by default with the merged stored value."""
        held = self.held[index]
        if value is None:
            value = merge_change(self.entities[held.entity_id], held.change)
        self.entities[held.entity_id] = value
        held.future.set_result(value)
        return value

    def reject(self, index: int, error: BaseException) -> None:
        self.held[index].future.set_exception(error)


async def settle() -> None:
    """Let every ready callback and task step run."""
    for _ in range(5):
        await asyncio.sleep(0)


async def drain(service: ProviderService) -> None:
    while service._tasks:  # noqa: SLF001
        await asyncio.gather(*list(service._tasks), return_exceptions=True)  # noqa: SLF001


@pytest.fixture
def provider() -> Provider:
    return Provider(id="p1", name="OpenAI", type="openai", api_key="sk-test", enabled=False)


@pytest.fixture
def gateway(provider: Provider) -> FakeGateway:
    other = Provider(id="p2", name="Anthropic", type="anthropic", enabled=True)
    return FakeGateway(entities={"p1": provider, "p2": other}, default_id="p2")


@pytest.fixture
def config() -> ProvConfig:
    return ProvConfig()


@pytest.fixture
def service(gateway: FakeGateway, config: ProvConfig) -> ProviderService:
    return ProviderService(gateway, config)
