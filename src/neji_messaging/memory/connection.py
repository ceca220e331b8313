"""In-memory transport for tests: simulated broker, failover and deliveries."""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING, Any

from ..channel import InboundMessage
from ..connection import BaseConnection, ConnectionState
from ..exceptions import ConfigurationError, TransportError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence


class InMemoryBroker:
    """Shared broker state: declared queues, published bodies and acks."""

    def __init__(self) -> None:
        self.queues: dict[str, bool] = {}
        self.published: list[tuple[str, bytes, bool]] = []
        self.acked: list[int] = []
        self.consumers: dict[str, InMemoryChannel] = {}
        self.fail_publish: BaseException | None = None
        self._tags = itertools.count(1)

    def next_tag(self) -> int:
        return next(self._tags)

    def published_to(self, queue_name: str) -> list[bytes]:
        """Return the bodies published to *queue_name*, in order."""
        return [body for q, body, _ in self.published if q == queue_name]


class InMemoryChannel:
    """``IRawChannel`` over an ``InMemoryBroker``."""

    def __init__(self, broker: InMemoryBroker) -> None:
        self._broker = broker
        self._closed = False
        self.prefetch_count: int | None = None
        self.callbacks: dict[str, Callable[[InboundMessage], Awaitable[None]]] = {}
        self.unacked: dict[int, InboundMessage] = {}

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise TransportError("Channel is closed")

    async def declare_queue(self, queue_name: str, *, durable: bool = True) -> None:
        self._check_open()
        self._broker.queues[queue_name] = durable

    async def set_qos(self, prefetch_count: int) -> None:
        self._check_open()
        self.prefetch_count = prefetch_count

    async def consume(
        self,
        queue_name: str,
        callback: Callable[[InboundMessage], Awaitable[None]],
    ) -> None:
        self._check_open()
        self.callbacks[queue_name] = callback
        self._broker.consumers[queue_name] = self

    async def publish(
        self,
        queue_name: str,
        body: bytes,
        *,
        persistent: bool = True,
    ) -> None:
        self._check_open()
        if self._broker.fail_publish is not None:
            raise self._broker.fail_publish
        self._broker.published.append((queue_name, body, persistent))

    async def ack(self, message: InboundMessage) -> None:
        self._check_open()
        if self.unacked.pop(message.delivery_tag, None) is None:
            raise TransportError(f"Unknown delivery tag {message.delivery_tag}")
        self._broker.acked.append(message.delivery_tag)

    async def close(self) -> None:
        self._closed = True
        self.unacked.clear()


class InMemoryConnection(BaseConnection):
    """Connection handle over an ``InMemoryBroker``.

    URLs listed in ``unreachable`` are skipped during ``connect()``. With
    ``auto_connect=False`` the handle stays in CONNECTING until
    ``simulate_connect()`` is called.
    """

    def __init__(
        self,
        urls: Sequence[str],
        *,
        broker: InMemoryBroker | None = None,
        unreachable: Sequence[str] = (),
        auto_connect: bool = True,
        **_: Any,
    ) -> None:
        super().__init__(urls)
        self.broker = broker or InMemoryBroker()
        self.unreachable = set(unreachable)
        self.auto_connect = auto_connect
        self.raw_channels: list[InMemoryChannel] = []
        self.fail_channel_open: BaseException | None = None

    async def connect(self) -> None:
        if not self.urls:
            raise ConfigurationError("No active broker endpoints configured")
        if self.state in (ConnectionState.CONNECTED, ConnectionState.CLOSED):
            return
        self.state = ConnectionState.CONNECTING
        if self.auto_connect:
            self.simulate_connect()

    async def _open_raw_channel(self) -> InMemoryChannel:
        if not self.is_connected:
            raise TransportError("Not connected")
        if self.fail_channel_open is not None:
            raise self.fail_channel_open
        channel = InMemoryChannel(self.broker)
        self.raw_channels.append(channel)
        return channel

    async def _close_transport(self) -> None:
        for channel in self.raw_channels:
            await channel.close()

    def simulate_connect(self) -> None:
        """Connect to the first reachable URL, or report a disconnect."""
        for url in self.urls:
            if url not in self.unreachable:
                self._mark_connected(url)
                return
        self._mark_disconnected(TransportError("No broker endpoint reachable"))

    def simulate_disconnect(self, cause: BaseException | None = None) -> None:
        """Drop the session: raw channels close, then ``disconnected`` fires."""
        for channel in self.raw_channels:
            channel._closed = True
        self._mark_disconnected(cause or TransportError("Connection lost"))

    async def deliver(
        self,
        queue_name: str,
        payload: bytes,
        *,
        routing_key: str | None = None,
        redelivered: bool = False,
    ) -> InboundMessage:
        """Deliver *payload* to the consumer of *queue_name* and await its callback."""
        channel = self.broker.consumers.get(queue_name)
        if channel is None or channel.is_closed:
            raise TransportError(f"No open consumer for {queue_name!r}")
        message = InboundMessage(
            routing_key=routing_key if routing_key is not None else queue_name,
            delivery_tag=self.broker.next_tag(),
            body=payload,
            redelivered=redelivered,
        )
        channel.unacked[message.delivery_tag] = message
        await channel.callbacks[queue_name](message)
        return message
