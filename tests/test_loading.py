from __future__ import annotations

import asyncio
import logging

import pytest
from conftest import FakeGateway, drain, settle

from pyprov.config import ProvConfig
from pyprov.exceptions import EntityNotFoundError, PersistenceError
from pyprov.models.provider import Provider
from pyprov.service import ProviderService
from pyprov.state.loading import LoadState


@pytest.mark.asyncio
async def test_load_state_moves_from_uninitialized_to_ready(
    service: ProviderService, gateway: FakeGateway
) -> None:
    gateway.fetch_gate = asyncio.Event()
    assert service.load_state("p1") == LoadState.UNINITIALIZED

    task = asyncio.create_task(service.load("p1"))
    await settle()
    assert service.load_state("p1") == LoadState.LOADING
    assert service.is_loading("p1") is True

    gateway.fetch_gate.set()
    value = await task

    assert value is gateway.entities["p1"]
    assert service.load_state("p1") == LoadState.READY
    assert service.is_loading("p1") is False


@pytest.mark.asyncio
async def test_missing_entity_ends_in_error_and_can_be_retried(
    service: ProviderService, gateway: FakeGateway
) -> None:
    with pytest.raises(EntityNotFoundError):
        await service.load("p3")

    assert service.load_state("p3") == LoadState.ERROR
    assert isinstance(service.load_error("p3"), EntityNotFoundError)
    assert service.get_snapshot("p3") is None

    gateway.entities["p3"] = Provider(id="p3", name="Gemini", type="gemini")
    value = await service.load("p3")

    assert value.name == "Gemini"
    assert service.load_state("p3") == LoadState.READY
    assert service.load_error("p3") is None


@pytest.mark.asyncio
async def test_gateway_failure_is_wrapped_and_not_cached(service: ProviderService, gateway: FakeGateway) -> None:
    gateway.fetch_error = ConnectionError("offline")

    with pytest.raises(PersistenceError) as exc_info:
        await service.load("p1")

    assert exc_info.value.operation == "fetch_entity"
    assert service.get_snapshot("p1") is None
    assert service.load_state("p1") == LoadState.ERROR


@pytest.mark.asyncio
async def test_concurrent_loads_share_one_gateway_read(service: ProviderService, gateway: FakeGateway) -> None:
    gateway.fetch_gate = asyncio.Event()

    tasks = [asyncio.create_task(service.load("p1")) for _ in range(4)]
    await settle()
    gateway.fetch_gate.set()
    values = await asyncio.gather(*tasks)

    assert gateway.count("fetch_entity") == 1
    assert all(value is values[0] for value in values)


@pytest.mark.asyncio
async def test_cached_entity_is_returned_without_gateway_call(
    service: ProviderService, gateway: FakeGateway
) -> None:
    first = await service.load("p1")
    second = await service.load("p1")

    assert first is second
    assert gateway.count("fetch_entity") == 1


@pytest.mark.asyncio
async def test_watch_loads_absent_entity_and_notifies(service: ProviderService, gateway: FakeGateway) -> None:
    calls: list[int] = []

    sub = service.watch("p1", lambda: calls.append(1))
    assert service.get_snapshot("p1") is None
    await drain(service)

    assert calls == [1]
    assert service.get_snapshot("p1") is gateway.entities["p1"]
    assert sub.active is True

    service.watch("p1", lambda: None)
    await drain(service)
    assert gateway.count("fetch_entity") == 1


@pytest.mark.asyncio
async def test_watch_failure_is_logged_and_surfaced_as_error_state(
    service: ProviderService, caplog: pytest.LogCaptureFixture
) -> None:
    calls: list[int] = []

    with caplog.at_level(logging.WARNING, logger="pyprov._service.reads"):
        service.watch("ghost", lambda: calls.append(1))
        await drain(service)

    assert calls == []
    assert service.load_state("ghost") == LoadState.ERROR
    assert "Failed to load ghost" in caplog.text


@pytest.mark.asyncio
async def test_blank_ids_never_reach_the_gateway(service: ProviderService, gateway: FakeGateway) -> None:
    assert service.get_snapshot("") is None
    assert service.get_snapshot("   ") is None
    assert service.subscribe("", lambda: None).active is False
    assert service.watch("  ", lambda: None).active is False
    assert service.load_state("") == LoadState.UNINITIALIZED
    assert service.is_loading("") is False

    with pytest.raises(ValueError):
        await service.load("")
    await drain(service)
    assert gateway.count("fetch_entity") == 0


@pytest.mark.asyncio
async def test_list_entities_sorts_enabled_first(service: ProviderService, gateway: FakeGateway) -> None:
    gateway.entities["p3"] = Provider(id="p3", name="Gemini", enabled=True)
    gateway.entities["p4"] = Provider(id="p4", name="Ollama", enabled=False)

    providers = await service.list_entities()

    assert [p.id for p in providers] == ["p2", "p3", "p1", "p4"]
    # Listing leaves the cache alone.
    assert service.get_snapshot("p2") is None


@pytest.mark.asyncio
async def test_list_entities_with_custom_sort_key(service: ProviderService) -> None:
    providers = await service.list_entities(sort_key=lambda p: p.name)
    assert [p.name for p in providers] == ["Anthropic", "OpenAI"]


@pytest.mark.asyncio
async def test_list_entities_failure_is_wrapped(service: ProviderService, gateway: FakeGateway) -> None:
    gateway.list_error = TimeoutError("slow")
    with pytest.raises(PersistenceError):
        await service.list_entities()


@pytest.mark.asyncio
async def test_invalidate_forces_reload(service: ProviderService, gateway: FakeGateway) -> None:
    await service.load("p1")
    calls: list[int] = []
    service.subscribe("p1", lambda: calls.append(1))

    assert service.invalidate("p1") is True
    assert calls == [1]
    assert service.load_state("p1") == LoadState.UNINITIALIZED

    await service.load("p1")
    assert gateway.count("fetch_entity") == 2
    assert calls == [1, 1]


@pytest.mark.asyncio
async def test_aclose_waits_for_outstanding_writes(gateway: FakeGateway) -> None:
    async with ProviderService(gateway) as service:
        await service.load("p1")
        gateway.hold_writes = True
        task = asyncio.create_task(service.update("p1", {"enabled": True}))
        await settle()
        closing = asyncio.create_task(service.aclose())
        await settle()
        assert not closing.done()

        gateway.release(0)
        await closing
        await task

    assert gateway.entities["p1"].enabled is True
    assert service.get_snapshot("p1") is None
    assert service.registry.count("p1") == 0


@pytest.mark.asyncio
async def test_evicted_entity_is_no_longer_reported_ready(gateway: FakeGateway) -> None:
    service = ProviderService(gateway, ProvConfig(max_entries=1))

    await service.load("p1")
    await service.load("p2")

    assert service.get_snapshot("p1") is None
    assert service.load_state("p1") == LoadState.UNINITIALIZED
    assert service.load_state("p2") == LoadState.READY

    await service.load("p1")
    assert gateway.count("fetch_entity") == 3


def test_accessors_tolerate_invalid_ids(service: ProviderService) -> None:
    for bad in ("", "   ", None, 42):
        assert service.load_error(bad) is None  # type: ignore[arg-type]
        assert service.pending_writes(bad) == []  # type: ignore[arg-type]
        assert service.load_state(bad) == LoadState.UNINITIALIZED  # type: ignore[arg-type]
        assert service.get_snapshot(bad) is None  # type: ignore[arg-type]


def test_watch_outside_event_loop_registers_nothing(service: ProviderService) -> None:
    with pytest.raises(RuntimeError):
        service.watch("p1", lambda: None)

    assert service.registry.count("p1") == 0
