"""ChannelWrapper: a channel request that materializes once connected.

Transports hand the wrapper a raw channel (anything satisfying
``IRawChannel``) when the connection is up; until then callers can wait on
it. Closing the owning connection fails the wrapper so that waiters resolve
with ``TransportError`` instead of hanging.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from .exceptions import TransportError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger("neji_messaging.channel")


@dataclass
class InboundMessage:
    """Transport-neutral view of one delivery on a raw channel."""

    routing_key: str
    delivery_tag: int
    body: bytes
    redelivered: bool = False
    raw: Any = field(default=None, repr=False)


@runtime_checkable
class IRawChannel(Protocol):
    """Port for one open channel on a live transport session."""

    @property
    def is_closed(self) -> bool: ...

    async def declare_queue(self, queue_name: str, *, durable: bool = True) -> None:
        """Assert *queue_name* exists."""
        ...

    async def set_qos(self, prefetch_count: int) -> None:
        """Limit unacknowledged deliveries held by this channel."""
        ...

    async def consume(
        self,
        queue_name: str,
        callback: Callable[[InboundMessage], Awaitable[None]],
    ) -> None:
        """Start delivering messages of *queue_name* to *callback* (manual ack)."""
        ...

    async def publish(
        self,
        queue_name: str,
        body: bytes,
        *,
        persistent: bool = True,
    ) -> None:
        """Send *body* to *queue_name*; returns once the broker confirmed it."""
        ...

    async def ack(self, message: InboundMessage) -> None:
        """Acknowledge *message*."""
        ...

    async def close(self) -> None: ...


class ChannelWrapper:
    """A logical channel that may not be open yet.

    ``setups`` run in order against every raw channel attached to the
    wrapper. The wrapper is settled once it is either attached (ready) or
    failed (closed); a failed wrapper never becomes ready again.
    """

    def __init__(
        self,
        name: str,
        setups: list[Callable[[IRawChannel], Awaitable[None]]] | None = None,
    ) -> None:
        self.name = name
        self._setups = list(setups or [])
        self._raw: IRawChannel | None = None
        self._failure: BaseException | None = None
        self._settled = asyncio.Event()

    @property
    def is_ready(self) -> bool:
        if self._raw is None or self._failure is not None:
            return False
        return not self._raw.is_closed

    @property
    def is_closed(self) -> bool:
        if self._failure is not None:
            return True
        return self._raw is not None and self._raw.is_closed

    @property
    def is_pending(self) -> bool:
        return not self._settled.is_set()

    async def attach(self, raw: IRawChannel) -> None:
        """Run the setups against *raw* and mark the wrapper ready."""
        if self._failure is not None:
            await raw.close()
            raise TransportError(f"Channel {self.name!r} is closed") from self._failure
        try:
            for setup in self._setups:
                await setup(raw)
        except BaseException:
            await raw.close()
            raise
        self._raw = raw
        self._settled.set()
        logger.debug("Channel %r ready", self.name)

    def fail(self, cause: BaseException) -> None:
        """Close the wrapper; pending and future waiters get ``TransportError``."""
        if self._failure is None:
            self._failure = cause
        self._settled.set()

    async def wait_ready(self, timeout: float | None = None) -> IRawChannel:
        """Wait until the channel is open and return the raw channel."""
        if timeout is None:
            await self._settled.wait()
        else:
            await asyncio.wait_for(self._settled.wait(), timeout)
        if self._failure is not None:
            raise TransportError(
                f"Channel {self.name!r} is closed: {self._failure}"
            ) from self._failure
        assert self._raw is not None
        if self._raw.is_closed:
            raise TransportError(f"Channel {self.name!r} is closed")
        return self._raw

    async def add_setup(self, setup: Callable[[IRawChannel], Awaitable[None]]) -> None:
        """Register another setup; runs it immediately when already open.

        On an open channel the setup is kept only if it succeeds.
        """
        if self.is_ready:
            assert self._raw is not None
            await setup(self._raw)
        self._setups.append(setup)

    async def send_to_queue(
        self,
        queue_name: str,
        body: bytes,
        *,
        persistent: bool = True,
        timeout: float | None = None,
    ) -> None:
        """Publish *body* to *queue_name* once the channel is open."""
        raw = await self.wait_ready(timeout)
        await raw.publish(queue_name, body, persistent=persistent)

    async def ack(self, message: InboundMessage) -> None:
        """Acknowledge *message* on the open raw channel."""
        if not self.is_ready:
            raise TransportError(f"Channel {self.name!r} is not open")
        assert self._raw is not None
        await self._raw.ack(message)

    async def close(self) -> None:
        """Fail the wrapper and close the raw channel if one is attached."""
        self.fail(TransportError(f"Channel {self.name!r} closed"))
        if self._raw is not None and not self._raw.is_closed:
            await self._raw.close()
