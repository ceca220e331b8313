"""ConnectionManager: owns the connection handle and reacts to its events."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from .connection import CONNECTED, DISCONNECTED
from .endpoints import redact_url
from .exceptions import ConfigurationError, MessagingError, TransportError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from .connection import BaseConnection
    from .registry import ConsumerRegistry

_logger = logging.getLogger("neji_messaging.manager")


def _default_factory(urls: Sequence[str], **kwargs: Any) -> BaseConnection:
    from .rabbitmq import RabbitMQConnection

    return RabbitMQConnection(urls, **kwargs)


class ConnectionManager:
    """Supervises exactly one logical connection over a failover URL list.

    The manager is the single owner of the handle. The registry and the
    publisher hold a reference to the manager and read ``connection`` when
    they need a channel.
    """

    def __init__(
        self,
        *,
        receive_queues: Sequence[str] = (),
        connection_factory: Callable[..., BaseConnection] | None = None,
        connection_kwargs: dict[str, Any] | None = None,
        logger: logging.Logger | logging.LoggerAdapter[Any] | None = None,
    ) -> None:
        self.receive_queues = list(receive_queues)
        self._factory = connection_factory or _default_factory
        self._connection_kwargs = connection_kwargs or {}
        self._logger = logger or _logger
        self._connection: BaseConnection | None = None
        self._registry: ConsumerRegistry | None = None
        self._closing: set[asyncio.Task[None]] = set()
        self.connect_count = 0

    def attach_registry(self, registry: ConsumerRegistry) -> None:
        """Set the registry that receives ``ensure_consumer`` on connect."""
        self._registry = registry

    @property
    def connection(self) -> BaseConnection:
        """Return the current handle; raises if not initialized."""
        if self._connection is None:
            raise TransportError("Not initialized; call initialize() first")
        return self._connection

    @property
    def has_connection(self) -> bool:
        return self._connection is not None and not self._connection.is_closed

    async def initialize(self, urls: Sequence[str]) -> BaseConnection:
        """Create the handle for *urls* and start connecting.

        Raises:
            ConfigurationError: if *urls* is empty. Never retried.
        """
        if not urls:
            self._logger.error("No active message broker endpoints configured")
            raise ConfigurationError("No active broker endpoints configured")
        if self._connection is not None:
            await self._connection.close()
        connection = self._factory(list(urls), **self._connection_kwargs)
        connection.on(CONNECTED, self._on_connected)
        connection.on(DISCONNECTED, self._on_disconnected)
        self._connection = connection
        await connection.connect()
        return connection

    async def close(self) -> None:
        """Close the current handle and wait for pending closes."""
        if self._connection is not None:
            await self._connection.close()
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)

    async def health_check(self) -> bool:
        """Return True if the handle is connected."""
        if self._connection is None:
            return False
        return await self._connection.health_check()

    def _on_connected(self, url: str) -> None:
        self.connect_count += 1
        self._logger.debug("Connected to: %s", redact_url(url))
        if self._registry is None:
            return
        for queue_name in self.receive_queues:
            try:
                self._registry.ensure_consumer(queue_name)
            except MessagingError as e:
                self._logger.error(
                    "Could not create consumer for %r: %s", queue_name, e
                )

    def _on_disconnected(self, cause: BaseException | None) -> None:
        self._logger.error("Message broker connection lost: %s", cause)
        if self._connection is None:
            return
        task = self._connection.abort()
        if task is not None:
            self._closing.add(task)
            task.add_done_callback(self._closing.discard)
