"""BaseConnection: transport-neutral connection handle with lifecycle events.

A concrete transport subclasses this and implements ``connect``,
``_open_raw_channel`` and ``_close_transport``. It reports lifecycle
changes through ``_mark_connected`` and ``_mark_disconnected``; this class
turns those into ``connected``/``disconnected`` events and opens queued
channel requests once the session is up.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import TYPE_CHECKING, Any

from .channel import ChannelWrapper
from .endpoints import redact_url
from .exceptions import TransportError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Coroutine, Sequence

    from .channel import IRawChannel

logger = logging.getLogger("neji_messaging.connection")

CONNECTED = "connected"
DISCONNECTED = "disconnected"


class ConnectionState(str, enum.Enum):
    CREATED = "created"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CLOSED = "closed"


class BaseConnection:
    """One logical connection over an ordered list of failover URLs."""

    def __init__(self, urls: Sequence[str]) -> None:
        self.urls = list(urls)
        self.state = ConnectionState.CREATED
        self.active_url: str | None = None
        self._listeners: dict[str, list[Callable[..., None]]] = {
            CONNECTED: [],
            DISCONNECTED: [],
        }
        self._channels: list[ChannelWrapper] = []
        self._tasks: set[asyncio.Task[Any]] = set()
        self._opening: set[ChannelWrapper] = set()

    # -- lifecycle -----------------------------------------------------------

    async def connect(self) -> None:
        raise NotImplementedError

    async def _open_raw_channel(self) -> IRawChannel:
        raise NotImplementedError

    async def _close_transport(self) -> None:
        raise NotImplementedError

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def is_closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    async def close(self) -> None:
        """Close the handle; pending channel requests and waiters fail. Idempotent."""
        if self._shutdown():
            await self._close_transport()
            logger.debug("Connection closed")

    def abort(self) -> asyncio.Task[None] | None:
        """Close from a synchronous callback.

        Channels fail before this returns; the transport teardown runs as
        the returned task. Returns None if already closed.
        """
        if not self._shutdown():
            return None
        return asyncio.get_running_loop().create_task(self._close_transport())

    def _shutdown(self) -> bool:
        if self.state is ConnectionState.CLOSED:
            return False
        self.state = ConnectionState.CLOSED
        cause = TransportError("Connection closed")
        for wrapper in self._channels:
            wrapper.fail(cause)
        self._channels.clear()
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        return True

    async def health_check(self) -> bool:
        """Return True if the session is connected."""
        return self.is_connected

    # -- events --------------------------------------------------------------

    def on(self, event: str, callback: Callable[..., None]) -> None:
        """Register a listener for ``connected`` or ``disconnected``."""
        if event not in self._listeners:
            raise ValueError(f"Unknown connection event {event!r}")
        self._listeners[event].append(callback)

    def _emit(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(*args)
            except Exception:
                logger.exception("Listener for %r failed", event)

    def _mark_connected(self, url: str) -> None:
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CONNECTED
        self.active_url = url
        for wrapper in self._channels:
            if wrapper.is_pending and wrapper not in self._opening:
                self._schedule_open(wrapper)
        self._emit(CONNECTED, url)

    def _mark_disconnected(self, cause: BaseException | None) -> None:
        if self.state in (ConnectionState.CLOSED, ConnectionState.DISCONNECTED):
            return
        self.state = ConnectionState.DISCONNECTED
        self._emit(DISCONNECTED, cause)

    # -- channels ------------------------------------------------------------

    def create_channel(
        self,
        name: str,
        setups: list[Callable[[IRawChannel], Awaitable[None]]] | None = None,
    ) -> ChannelWrapper:
        """Request a channel; it opens now if connected, otherwise on connect."""
        wrapper = ChannelWrapper(name, setups)
        if self.state is ConnectionState.CLOSED:
            wrapper.fail(TransportError("Connection closed"))
            return wrapper
        self._channels = [w for w in self._channels if not w.is_closed]
        self._channels.append(wrapper)
        if self.is_connected:
            self._schedule_open(wrapper)
        return wrapper

    async def _open(self, wrapper: ChannelWrapper) -> None:
        try:
            raw = await self._open_raw_channel()
            await wrapper.attach(raw)
        except asyncio.CancelledError:
            wrapper.fail(TransportError("Channel creation cancelled"))
            raise
        except Exception as e:  # noqa: BLE001
            logger.error(
                "Failed to open channel %r on %s: %s",
                wrapper.name,
                redact_url(self.active_url or ""),
                e,
            )
            wrapper.fail(TransportError(str(e)))
        finally:
            self._opening.discard(wrapper)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _schedule_open(self, wrapper: ChannelWrapper) -> None:
        self._opening.add(wrapper)
        self._spawn(self._open(wrapper))
