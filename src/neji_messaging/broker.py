"""MessageBroker: the broker client facade.

Wires the connection manager, consumer registry, publisher channel,
dispatcher and intake handler around one ``BrokerSettings``::

    settings = BrokerSettings(
        endpoints=[EndpointDescriptor(host="rabbit-1", active=True)],
        receive_queue_name="jobs.in",
        publish_queue_name="jobs.out",
    )

    async with MessageBroker(settings, handover=process) as broker:
        envelope = MessageEnvelope(target_queue="jobs.out", payload={})
        await broker.single_publish(envelope)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .dispatcher import PublishDispatcher
from .intake import MessageIntakeHandler
from .manager import ConnectionManager
from .publisher import PublisherChannel
from .registry import ConsumerRegistry
from .serialization import PayloadSerializer

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence
    from types import TracebackType

    from .connection import BaseConnection
    from .envelope import MessageEnvelope, PublishResult
    from .intake import Handover
    from .registry import ChannelEntry
    from .settings import BrokerSettings

_logger = logging.getLogger("neji_messaging.broker")


class MessageBroker:
    """Single entry point for publishing to and consuming from the broker."""

    def __init__(
        self,
        settings: BrokerSettings,
        handover: Handover,
        *,
        logger: logging.Logger | logging.LoggerAdapter[Any] | None = None,
        connection_factory: Callable[..., BaseConnection] | None = None,
        connection_kwargs: dict[str, Any] | None = None,
    ) -> None:
        self.settings = settings
        self._logger = logger or _logger
        serializer = PayloadSerializer()
        kwargs: dict[str, Any] = {"reconnect_interval": settings.reconnect_interval}
        kwargs.update(connection_kwargs or {})
        self.manager = ConnectionManager(
            receive_queues=settings.receive_queues,
            connection_factory=connection_factory,
            connection_kwargs=kwargs,
            logger=self._logger,
        )
        self.registry = ConsumerRegistry(
            self.manager,
            durable=settings.durable,
            collision=settings.queue_key_collision,
            serializer=serializer,
            logger=self._logger,
        )
        self.manager.attach_registry(self.registry)
        self.intake = MessageIntakeHandler(self.registry, handover, logger=self._logger)
        self.publisher = PublisherChannel(
            self.manager,
            durable=settings.durable,
            persistent=settings.persistent,
            buffer_size=settings.publish_buffer_size,
            ready_timeout=settings.ready_timeout,
            logger=self._logger,
        )
        self.dispatcher = PublishDispatcher(
            self.publisher,
            serializer=serializer,
            identifier_fields=settings.identifier_fields,
            logger=self._logger,
        )

    async def __aenter__(self) -> MessageBroker:
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def initialize(self) -> BaseConnection:
        """Connect to the configured endpoints and create the publish channel.

        Raises:
            ConfigurationError: when no endpoint is active.
        """
        self._logger.info("Initialising message broker")
        connection = await self.manager.initialize(self.settings.urls)
        self.publisher.ensure_publisher(self.settings.publish_queue_name)
        return connection

    def ensure_consumer(self, queue_name: str) -> ChannelEntry:
        """Consume from *queue_name* (no-op if already consuming its key)."""
        return self.registry.ensure_consumer(queue_name)

    def create_additional_consumer_queues(
        self,
        queue_names: str | Iterable[str],
    ) -> list[ChannelEntry]:
        """Consume from more queues besides the configured receive queue."""
        if isinstance(queue_names, str):
            queue_names = [queue_names]
        return [self.registry.ensure_consumer(name) for name in queue_names]

    async def create_publish_queue(self, queue_name: str) -> None:
        """Assert another durable queue on the publish channel."""
        await self.publisher.add_queue(queue_name)

    async def single_publish(self, envelope: MessageEnvelope) -> PublishResult:
        return await self.dispatcher.single_publish(envelope)

    async def batch_publish(
        self,
        envelopes: Sequence[MessageEnvelope],
    ) -> list[PublishResult]:
        return await self.dispatcher.batch_publish(envelopes)

    async def health_check(self) -> bool:
        """Return True if the broker connection is up."""
        return await self.manager.health_check()

    async def close(self) -> None:
        """Close channels and the connection."""
        await self.publisher.close()
        await self.registry.close()
        await self.manager.close()
        self._logger.info("Message broker closed")
