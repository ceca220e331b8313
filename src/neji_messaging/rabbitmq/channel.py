"""AioPikaChannel: IRawChannel over an aio-pika channel with publisher confirms."""

from __future__ import annotations

from typing import TYPE_CHECKING

import aio_pika

from ..channel import InboundMessage

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from aio_pika.abc import AbstractChannel, AbstractIncomingMessage, AbstractQueue


class AioPikaChannel:
    """Adapt one aio-pika channel to the ``IRawChannel`` port.

    Publishes go through the default exchange with the queue name as routing
    key; consumers use manual acknowledgement.
    """

    def __init__(self, channel: AbstractChannel) -> None:
        self._channel = channel
        self._queues: dict[str, AbstractQueue] = {}

    @property
    def is_closed(self) -> bool:
        return bool(self._channel.is_closed)

    async def declare_queue(self, queue_name: str, *, durable: bool = True) -> None:
        self._queues[queue_name] = await self._channel.declare_queue(
            queue_name,
            durable=durable,
        )

    async def set_qos(self, prefetch_count: int) -> None:
        await self._channel.set_qos(prefetch_count=prefetch_count)

    async def consume(
        self,
        queue_name: str,
        callback: Callable[[InboundMessage], Awaitable[None]],
    ) -> None:
        queue = self._queues.get(queue_name)
        if queue is None:
            queue = await self._channel.declare_queue(queue_name, passive=True)
            self._queues[queue_name] = queue

        async def on_message(raw: AbstractIncomingMessage) -> None:
            await callback(
                InboundMessage(
                    routing_key=raw.routing_key or queue_name,
                    delivery_tag=raw.delivery_tag or 0,
                    body=raw.body,
                    redelivered=bool(raw.redelivered),
                    raw=raw,
                )
            )

        await queue.consume(on_message, no_ack=False)

    async def publish(
        self,
        queue_name: str,
        body: bytes,
        *,
        persistent: bool = True,
    ) -> None:
        delivery_mode = (
            aio_pika.DeliveryMode.PERSISTENT
            if persistent
            else aio_pika.DeliveryMode.NOT_PERSISTENT
        )
        await self._channel.default_exchange.publish(
            aio_pika.Message(
                body=body,
                content_type="application/json",
                delivery_mode=delivery_mode,
            ),
            routing_key=queue_name,
        )

    async def ack(self, message: InboundMessage) -> None:
        await message.raw.ack()

    async def close(self) -> None:
        if not self._channel.is_closed:
            await self._channel.close()
