"""Tests for BaseConnection lifecycle, using the in-memory transport."""

from __future__ import annotations

import asyncio

import pytest

from neji_messaging.channel import IRawChannel
from neji_messaging.connection import ConnectionState
from neji_messaging.exceptions import ConfigurationError, TransportError
from neji_messaging.memory import InMemoryBroker, InMemoryConnection


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_connect_emits_connected_with_first_url() -> None:
    conn = InMemoryConnection(["amqp://a", "amqp://b"])
    seen: list[str] = []
    conn.on("connected", seen.append)
    assert conn.state is ConnectionState.CREATED
    await conn.connect()
    assert conn.state is ConnectionState.CONNECTED
    assert seen == ["amqp://a"]
    assert conn.active_url == "amqp://a"


@pytest.mark.asyncio
async def test_failover_skips_unreachable() -> None:
    conn = InMemoryConnection(["amqp://a", "amqp://b"], unreachable=["amqp://a"])
    await conn.connect()
    assert conn.active_url == "amqp://b"


@pytest.mark.asyncio
async def test_all_unreachable_emits_disconnected() -> None:
    conn = InMemoryConnection(["amqp://a"], unreachable=["amqp://a"])
    causes: list[BaseException | None] = []
    conn.on("disconnected", causes.append)
    await conn.connect()
    assert conn.state is ConnectionState.DISCONNECTED
    assert isinstance(causes[0], TransportError)


@pytest.mark.asyncio
async def test_connect_without_urls_raises() -> None:
    with pytest.raises(ConfigurationError):
        await InMemoryConnection([]).connect()


@pytest.mark.asyncio
async def test_channel_request_queued_until_connected() -> None:
    broker = InMemoryBroker()
    conn = InMemoryConnection(["amqp://a"], broker=broker, auto_connect=False)

    async def declare(raw: IRawChannel) -> None:
        await raw.declare_queue("q")

    await conn.connect()
    assert conn.state is ConnectionState.CONNECTING
    wrapper = conn.create_channel("c", [declare])
    await _settle()
    assert wrapper.is_pending
    assert broker.queues == {}

    conn.simulate_connect()
    await wrapper.wait_ready(timeout=1)
    assert broker.queues == {"q": True}


@pytest.mark.asyncio
async def test_close_fails_pending_channels() -> None:
    conn = InMemoryConnection(["amqp://a"], auto_connect=False)
    await conn.connect()
    wrapper = conn.create_channel("c")
    waiter = asyncio.ensure_future(wrapper.wait_ready())
    await conn.close()
    with pytest.raises(TransportError):
        await waiter
    assert conn.is_closed


@pytest.mark.asyncio
async def test_channel_on_closed_connection_is_failed() -> None:
    conn = InMemoryConnection(["amqp://a"])
    await conn.close()
    wrapper = conn.create_channel("c")
    assert wrapper.is_closed
    with pytest.raises(TransportError):
        await wrapper.wait_ready()


@pytest.mark.asyncio
async def test_channel_open_failure_fails_wrapper() -> None:
    conn = InMemoryConnection(["amqp://a"])
    conn.fail_channel_open = RuntimeError("channel refused")
    await conn.connect()
    wrapper = conn.create_channel("c")
    with pytest.raises(TransportError, match="channel refused"):
        await wrapper.wait_ready(timeout=1)


@pytest.mark.asyncio
async def test_setup_failure_closes_opened_raw_channel() -> None:
    conn = InMemoryConnection(["amqp://a"])
    await conn.connect()

    async def refuse(raw: IRawChannel) -> None:
        raise TransportError("declare refused")

    wrapper = conn.create_channel("c", [refuse])
    with pytest.raises(TransportError, match="declare refused"):
        await wrapper.wait_ready(timeout=1)
    assert wrapper.is_closed
    assert len(conn.raw_channels) == 1
    assert conn.raw_channels[0].is_closed


@pytest.mark.asyncio
async def test_closed_channels_are_pruned() -> None:
    conn = InMemoryConnection(["amqp://a"])
    conn.fail_channel_open = RuntimeError("channel refused")
    await conn.connect()
    failed = [conn.create_channel(f"c{n}") for n in range(3)]
    await _settle()
    assert all(w.is_closed for w in failed)

    conn.fail_channel_open = None
    live = conn.create_channel("live")
    await live.wait_ready(timeout=1)
    assert conn._channels == [live]


@pytest.mark.asyncio
async def test_reconnect_does_not_reopen_attached_channels() -> None:
    conn = InMemoryConnection(["amqp://a"])
    await conn.connect()
    wrapper = conn.create_channel("c")
    await wrapper.wait_ready(timeout=1)
    conn.simulate_disconnect()
    conn.simulate_connect()
    await _settle()
    assert len(conn.raw_channels) == 1


@pytest.mark.asyncio
async def test_abort_fails_channels_synchronously() -> None:
    conn = InMemoryConnection(["amqp://a"], auto_connect=False)
    await conn.connect()
    wrapper = conn.create_channel("c")
    task = conn.abort()
    assert wrapper.is_closed
    assert task is not None
    await task
    assert conn.abort() is None


@pytest.mark.asyncio
async def test_unknown_event_rejected() -> None:
    conn = InMemoryConnection(["amqp://a"])
    with pytest.raises(ValueError, match="Unknown connection event"):
        conn.on("reconnected", lambda *_: None)


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_others() -> None:
    conn = InMemoryConnection(["amqp://a"])
    seen: list[str] = []

    def broken(url: str) -> None:
        raise RuntimeError("listener bug")

    conn.on("connected", broken)
    conn.on("connected", seen.append)
    await conn.connect()
    assert seen == ["amqp://a"]


@pytest.mark.asyncio
async def test_health_check() -> None:
    conn = InMemoryConnection(["amqp://a"], auto_connect=False)
    assert await conn.health_check() is False
    await conn.connect()
    conn.simulate_connect()
    assert await conn.health_check() is True
