"""PublisherChannel: the single outbound channel for all publish traffic."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from .exceptions import ConfigurationError, PublishError, TransportError
from .naming import sanitize_queue_name
from .registry import ChannelEntry, ChannelKind

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .channel import IRawChannel
    from .manager import ConnectionManager

_logger = logging.getLogger("neji_messaging.publisher")


class PublisherChannel:
    """Lazily created, durable publish channel bound to one queue.

    Sends issued before the channel is open wait for it. At most
    ``buffer_size`` sends may wait at once; further sends fail with a
    retryable ``PublishError`` rather than being dropped.
    """

    def __init__(
        self,
        manager: ConnectionManager,
        *,
        durable: bool = True,
        persistent: bool = True,
        buffer_size: int = 100,
        ready_timeout: float | None = None,
        logger: logging.Logger | logging.LoggerAdapter[Any] | None = None,
    ) -> None:
        self._manager = manager
        self._durable = durable
        self._persistent = persistent
        self._buffer_size = buffer_size
        self._ready_timeout = ready_timeout
        self._logger = logger or _logger
        self._entry: ChannelEntry | None = None
        self._extra_queues: list[str] = []
        self._waiting = 0

    @property
    def entry(self) -> ChannelEntry | None:
        return self._entry

    @property
    def is_configured(self) -> bool:
        return self._entry is not None

    @property
    def waiting(self) -> int:
        """Number of sends currently waiting for the channel to open."""
        return self._waiting

    def ensure_publisher(self, queue_name: str | None) -> ChannelEntry | None:
        """Create the publish channel for *queue_name*.

        ``None`` leaves the publisher unconfigured; sends then raise
        ``ConfigurationError``. A live channel is kept, a closed one replaced.
        """
        if not queue_name:
            self._logger.warning("Publish queue name was not supplied")
            return None
        if self._entry is not None and not self._entry.is_stale:
            return self._entry
        setups = [self._assert_queue(queue_name)]
        setups.extend(self._assert_queue(q) for q in self._extra_queues)
        channel = self._manager.connection.create_channel("publisher", setups)
        self._entry = ChannelEntry(
            queue_key=sanitize_queue_name(queue_name),
            queue_name=queue_name,
            kind=ChannelKind.PUBLISHER,
            channel=channel,
            durable=self._durable,
        )
        self._logger.debug('Publish queue "%s" has been created', queue_name)
        return self._entry

    async def add_queue(self, queue_name: str) -> None:
        """Assert another durable queue on the publish channel.

        The queue is re-asserted on replacement channels only once the
        broker has accepted it here; a rejected declare propagates.

        Raises:
            ConfigurationError: no publish queue configured.
            TransportError: the publisher channel is closed.
        """
        entry = self.require_entry()
        await entry.channel.wait_ready(self._ready_timeout)
        await entry.channel.add_setup(self._assert_queue(queue_name))
        self._extra_queues.append(queue_name)

    async def send(self, queue_name: str, body: bytes) -> None:
        """Send *body* to *queue_name*, waiting for the channel if needed.

        Raises:
            ConfigurationError: no publish queue configured.
            PublishError: channel closed, wait buffer full, ready timeout,
                or the broker rejected the message.
        """
        channel = self.require_entry().channel
        if channel.is_closed:
            raise PublishError(
                "Publisher channel is closed",
                queue_name=queue_name,
                retryable=True,
            )
        if not channel.is_ready:
            if self._waiting >= self._buffer_size:
                raise PublishError(
                    f"Publish buffer full ({self._buffer_size} waiting)",
                    queue_name=queue_name,
                    retryable=True,
                )
            self._waiting += 1
            try:
                await channel.wait_ready(self._ready_timeout)
            except asyncio.TimeoutError as e:
                raise PublishError(
                    "Timed out waiting for the publisher channel",
                    queue_name=queue_name,
                    retryable=True,
                ) from e
            except TransportError as e:
                raise PublishError(str(e), queue_name=queue_name, retryable=True) from e
            finally:
                self._waiting -= 1
        try:
            await channel.send_to_queue(queue_name, body, persistent=self._persistent)
        except PublishError:
            raise
        except Exception as e:  # noqa: BLE001
            raise PublishError(str(e), queue_name=queue_name) from e

    async def close(self) -> None:
        if self._entry is not None:
            await self._entry.channel.close()

    def require_entry(self) -> ChannelEntry:
        """Return the publish entry; raises ``ConfigurationError`` if unconfigured."""
        if self._entry is None:
            raise ConfigurationError("No publish queue configured")
        return self._entry

    def _assert_queue(
        self, queue_name: str
    ) -> Callable[[IRawChannel], Awaitable[None]]:
        async def setup(raw: IRawChannel) -> None:
            await raw.declare_queue(queue_name, durable=self._durable)

        return setup
