"""ConsumerRegistry: one consumer channel per sanitized queue name."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .envelope import DeliveryContext
from .exceptions import ConfigurationError, MessagingSerializationError
from .naming import sanitize_queue_name
from .serialization import PayloadSerializer
from .settings import PREFETCH_LIMIT

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterator

    from .channel import ChannelWrapper, InboundMessage, IRawChannel
    from .manager import ConnectionManager

_logger = logging.getLogger("neji_messaging.registry")


class ChannelKind(str, enum.Enum):
    CONSUMER = "consumer"
    PUBLISHER = "publisher"


@dataclass
class ChannelEntry:
    """A registered channel and the queue it is bound to."""

    queue_key: str
    queue_name: str
    kind: ChannelKind
    channel: ChannelWrapper = field(repr=False)
    prefetch_limit: int = PREFETCH_LIMIT
    durable: bool = True

    @property
    def is_stale(self) -> bool:
        return self.channel.is_closed


class ConsumerRegistry:
    """Maps sanitized queue keys to consumer channels.

    Each channel declares its queue, holds at most one unacknowledged
    delivery and hands every delivery to the delivery handler (normally
    ``MessageIntakeHandler.on_message``).

    Two queue names with the same key are handled per ``collision``:
    ``"alias"`` returns the existing entry, ``"reject"`` raises
    ``ConfigurationError``.
    """

    def __init__(
        self,
        manager: ConnectionManager,
        *,
        durable: bool = True,
        collision: str = "alias",
        serializer: PayloadSerializer | None = None,
        logger: logging.Logger | logging.LoggerAdapter[Any] | None = None,
    ) -> None:
        if collision not in ("alias", "reject"):
            raise ValueError(f"Unknown collision policy {collision!r}")
        self._manager = manager
        self._durable = durable
        self._collision = collision
        self._serializer = serializer or PayloadSerializer()
        self._logger = logger or _logger
        self._entries: dict[str, ChannelEntry] = {}
        self._on_delivery: Callable[[DeliveryContext], Awaitable[None]] | None = None

    def set_delivery_handler(
        self,
        handler: Callable[[DeliveryContext], Awaitable[None]],
    ) -> None:
        self._on_delivery = handler

    def __contains__(self, queue_name: object) -> bool:
        return isinstance(queue_name, str) and self.lookup(queue_name) is not None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ChannelEntry]:
        return iter(list(self._entries.values()))

    def lookup(self, routing_key: str) -> ChannelEntry | None:
        """Return the entry for the sanitized *routing_key*, if any."""
        return self._entries.get(sanitize_queue_name(routing_key))

    def ensure_consumer(self, queue_name: str) -> ChannelEntry:
        """Return the live consumer entry for *queue_name*, creating it if needed.

        Never blocks: if the connection is not up yet the channel opens on
        the next ``connected`` event.
        """
        key = sanitize_queue_name(queue_name)
        entry = self._entries.get(key)
        if entry is not None:
            if entry.queue_name != queue_name:
                if self._collision == "reject":
                    raise ConfigurationError(
                        f"Queue {queue_name!r} collides with {entry.queue_name!r} "
                        f"on key {key!r}"
                    )
                self._logger.warning(
                    "Queue %r aliases registered queue %r (key %r)",
                    queue_name,
                    entry.queue_name,
                    key,
                )
            if not entry.is_stale:
                return entry
            self._logger.debug("Replacing stale consumer channel for %r", key)
            queue_name = entry.queue_name

        # Deliveries must carry the wrapper they arrived on, not whatever
        # entry holds the key when they are processed.
        origin: list[ChannelWrapper] = []
        channel = self._manager.connection.create_channel(
            f"consumer:{key}",
            [self._setup_for(queue_name, origin)],
        )
        origin.append(channel)
        entry = ChannelEntry(
            queue_key=key,
            queue_name=queue_name,
            kind=ChannelKind.CONSUMER,
            channel=channel,
            durable=self._durable,
        )
        self._entries[key] = entry
        self._logger.debug("Consumer queue %r registered as %r", queue_name, key)
        return entry

    async def close(self) -> None:
        """Close every consumer channel and forget the entries."""
        entries, self._entries = list(self._entries.values()), {}
        for entry in entries:
            await entry.channel.close()

    def _setup_for(
        self,
        queue_name: str,
        origin: list[ChannelWrapper],
    ) -> Callable[[IRawChannel], Awaitable[None]]:
        async def on_delivery(message: InboundMessage) -> None:
            await self._dispatch(message, origin[0] if origin else None)

        async def setup(raw: IRawChannel) -> None:
            await raw.declare_queue(queue_name, durable=self._durable)
            await raw.set_qos(PREFETCH_LIMIT)
            await raw.consume(queue_name, on_delivery)

        return setup

    async def _dispatch(
        self,
        message: InboundMessage,
        channel: ChannelWrapper | None,
    ) -> None:
        try:
            payload: Any = self._serializer.decode(message.body)
        except MessagingSerializationError as e:
            self._logger.warning(
                "Delivery %s on %r is not JSON (%s); passing raw body",
                message.delivery_tag,
                message.routing_key,
                e,
            )
            payload = message.body
        context = DeliveryContext(
            queue_key=sanitize_queue_name(message.routing_key),
            routing_key=message.routing_key,
            delivery_tag=message.delivery_tag,
            payload=payload,
            body=message.body,
            redelivered=message.redelivered,
            channel=channel,
            raw=message,
        )
        if self._on_delivery is None:
            self._logger.error(
                "No delivery handler set; delivery %s left unacknowledged",
                message.delivery_tag,
            )
            return
        await self._on_delivery(context)
