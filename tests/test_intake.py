"""Tests for MessageIntakeHandler acknowledgement rules."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock

import pytest

from neji_messaging.envelope import DeliveryContext
from neji_messaging.intake import MessageIntakeHandler
from neji_messaging.manager import ConnectionManager
from neji_messaging.registry import ChannelEntry, ConsumerRegistry

if TYPE_CHECKING:
    from collections.abc import Callable

    from neji_messaging.memory import InMemoryBroker, InMemoryConnection


@pytest.fixture
def manager(connection_factory: Callable[..., InMemoryConnection]) -> ConnectionManager:
    return ConnectionManager(connection_factory=connection_factory)


async def _consumer(
    manager: ConnectionManager,
    registry: ConsumerRegistry,
    queue_name: str = "jobs",
) -> tuple[InMemoryConnection, ChannelEntry]:
    connection = await manager.initialize(["amqp://a"])
    entry = registry.ensure_consumer(queue_name)
    await entry.channel.wait_ready(timeout=1)
    return connection, entry  # type: ignore[return-value]


@pytest.mark.asyncio
async def test_accepted_delivery_is_acked_once(
    manager: ConnectionManager,
    memory_broker: InMemoryBroker,
) -> None:
    registry = ConsumerRegistry(manager)
    handover = MagicMock(return_value=True)
    MessageIntakeHandler(registry, handover)
    connection, _ = await _consumer(manager, registry)

    message = await connection.deliver("jobs", b'{"caid": "c1"}')

    handover.assert_called_once()
    context = handover.call_args.args[0]
    assert isinstance(context, DeliveryContext)
    assert context.payload == {"caid": "c1"}
    assert context.acknowledged is True
    assert memory_broker.acked == [message.delivery_tag]


@pytest.mark.asyncio
async def test_async_handover_is_awaited(
    manager: ConnectionManager,
    memory_broker: InMemoryBroker,
) -> None:
    registry = ConsumerRegistry(manager)
    handover = AsyncMock(return_value=True)
    MessageIntakeHandler(registry, handover)
    connection, _ = await _consumer(manager, registry)

    message = await connection.deliver("jobs", b"{}")

    handover.assert_awaited_once()
    assert memory_broker.acked == [message.delivery_tag]


@pytest.mark.asyncio
@pytest.mark.parametrize("verdict", [False, None, 1])
async def test_rejected_delivery_is_not_acked(
    manager: ConnectionManager,
    memory_broker: InMemoryBroker,
    verdict: object,
) -> None:
    registry = ConsumerRegistry(manager)
    MessageIntakeHandler(registry, MagicMock(return_value=verdict))
    connection, _ = await _consumer(manager, registry)
    await connection.deliver("jobs", b"{}")
    assert memory_broker.acked == []


@pytest.mark.asyncio
async def test_handover_exception_leaves_delivery_unacked(
    manager: ConnectionManager,
    memory_broker: InMemoryBroker,
    caplog: pytest.LogCaptureFixture,
) -> None:
    registry = ConsumerRegistry(manager)
    MessageIntakeHandler(registry, MagicMock(side_effect=RuntimeError("boom")))
    connection, _ = await _consumer(manager, registry)
    await connection.deliver("jobs", b"{}")
    assert memory_broker.acked == []
    assert "Handover failed" in caplog.text


@pytest.mark.asyncio
async def test_unknown_routing_key_is_routing_error(
    manager: ConnectionManager,
    memory_broker: InMemoryBroker,
    caplog: pytest.LogCaptureFixture,
) -> None:
    registry = ConsumerRegistry(manager)
    handover = MagicMock(return_value=True)
    MessageIntakeHandler(registry, handover)
    connection, _ = await _consumer(manager, registry)

    await connection.deliver("jobs", b"{}", routing_key="elsewhere")

    handover.assert_not_called()
    assert memory_broker.acked == []
    assert "no consumer registered" in caplog.text


@pytest.mark.asyncio
async def test_delivery_from_replaced_channel_is_not_acked(
    manager: ConnectionManager,
    memory_broker: InMemoryBroker,
    caplog: pytest.LogCaptureFixture,
) -> None:
    registry = ConsumerRegistry(manager)
    handover = MagicMock(return_value=True)
    intake = MessageIntakeHandler(registry, handover)
    await _consumer(manager, registry)
    stale = DeliveryContext(
        queue_key="jobs",
        routing_key="jobs",
        delivery_tag=99,
        payload={},
        channel=MagicMock(),
    )

    await intake.on_message(stale)

    handover.assert_not_called()
    assert memory_broker.acked == []
    assert "channel was replaced" in caplog.text


@pytest.mark.asyncio
async def test_channel_closed_during_handover_is_not_acked(
    manager: ConnectionManager,
    memory_broker: InMemoryBroker,
    caplog: pytest.LogCaptureFixture,
) -> None:
    registry = ConsumerRegistry(manager)

    async def handover(context: DeliveryContext) -> bool:
        await manager.close()
        return True

    MessageIntakeHandler(registry, handover)
    connection, _ = await _consumer(manager, registry)
    await connection.deliver("jobs", b"{}")

    assert memory_broker.acked == []
    assert "channel closed before acknowledgement" in caplog.text


@pytest.mark.asyncio
async def test_already_acknowledged_delivery_is_not_acked_twice(
    manager: ConnectionManager,
    caplog: pytest.LogCaptureFixture,
) -> None:
    registry = ConsumerRegistry(manager)
    intake = MessageIntakeHandler(registry, MagicMock(return_value=True))
    _, entry = await _consumer(manager, registry)
    entry.channel.ack = AsyncMock()  # type: ignore[method-assign]
    context = DeliveryContext(
        queue_key="jobs",
        routing_key="jobs",
        delivery_tag=5,
        payload={},
        channel=entry.channel,
        acknowledged=True,
    )

    await intake.on_message(context)

    entry.channel.ack.assert_not_called()
    assert "already acknowledged" in caplog.text


@pytest.mark.asyncio
async def test_ack_failure_is_logged(
    manager: ConnectionManager,
    caplog: pytest.LogCaptureFixture,
) -> None:
    registry = ConsumerRegistry(manager)
    intake = MessageIntakeHandler(registry, MagicMock(return_value=True))
    _, entry = await _consumer(manager, registry)
    context = DeliveryContext(
        queue_key="jobs",
        routing_key="jobs",
        delivery_tag=404,
        payload={},
        channel=entry.channel,
        raw=MagicMock(delivery_tag=404),
    )

    await intake.on_message(context)

    assert "Failed to acknowledge delivery 404" in caplog.text
