"""RabbitMQ connection handle: failover across URLs, robust reconnect, events."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import aio_pika
from aio_pika.exceptions import AMQPError

from ..connection import BaseConnection, ConnectionState
from ..endpoints import redact_url
from ..exceptions import ConfigurationError, TransportError
from .channel import AioPikaChannel

if TYPE_CHECKING:
    from collections.abc import Sequence

    from aio_pika.abc import AbstractRobustConnection

logger = logging.getLogger("neji_messaging.rabbitmq")


class RabbitMQConnection(BaseConnection):
    """Connection handle backed by ``aio_pika.connect_robust``.

    ``connect()`` tries the URLs in order and keeps the first that answers.
    aio-pika then owns reconnection to that broker; its reconnect and close
    callbacks become the ``connected`` and ``disconnected`` events.

    Under ``ConnectionManager`` the handle is closed on the first
    ``disconnected``, so aio-pika never reconnects it and
    ``reconnect_interval`` has no effect; recovery is a new ``initialize()``.
    Robust reconnect applies only to a handle used without the manager.
    """

    def __init__(
        self,
        urls: Sequence[str],
        *,
        reconnect_interval: float = 5.0,
        **connect_kwargs: Any,
    ) -> None:
        super().__init__(urls)
        self._reconnect_interval = reconnect_interval
        self._connect_kwargs = connect_kwargs
        self._connection: AbstractRobustConnection | None = None

    async def connect(self) -> None:
        """Connect to the first reachable URL. Idempotent if already connected."""
        if not self.urls:
            raise ConfigurationError("No active broker endpoints configured")
        if self.state in (ConnectionState.CONNECTED, ConnectionState.CLOSED):
            return
        self.state = ConnectionState.CONNECTING
        last_error: BaseException | None = None
        for url in self.urls:
            try:
                connection = await aio_pika.connect_robust(
                    url,
                    reconnect_interval=self._reconnect_interval,
                    **self._connect_kwargs,
                )
            except (ConnectionError, OSError, ValueError, AMQPError) as e:
                logger.warning("Broker %s unavailable: %s", redact_url(url), e)
                last_error = e
                continue
            self._connection = connection
            connection.reconnect_callbacks.add(self._on_reconnect)
            connection.close_callbacks.add(self._on_close)
            self._mark_connected(url)
            return
        self._mark_disconnected(
            TransportError(f"No broker endpoint reachable: {last_error}")
        )

    async def _open_raw_channel(self) -> AioPikaChannel:
        if self._connection is None or self._connection.is_closed:
            raise TransportError("Not connected")
        channel = await self._connection.channel(publisher_confirms=True)
        return AioPikaChannel(channel)

    async def _close_transport(self) -> None:
        if self._connection is not None:
            connection, self._connection = self._connection, None
            if not connection.is_closed:
                await connection.close()

    async def health_check(self) -> bool:
        """Return True if the aio-pika connection is open."""
        if self._connection is None:
            return False
        return self.is_connected and not self._connection.is_closed

    def _on_reconnect(self, *_: Any) -> None:
        self._mark_connected(self.active_url or self.urls[0])

    def _on_close(self, _sender: Any, exc: BaseException | None = None) -> None:
        if self.state is ConnectionState.CLOSED:
            return
        self._mark_disconnected(exc or TransportError("Connection closed by broker"))
