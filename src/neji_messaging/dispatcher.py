"""PublishDispatcher: single and batch publish with per-element outcomes."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from .envelope import PublishResult
from .exceptions import MessagingSerializationError, PublishError
from .serialization import PayloadSerializer

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .envelope import MessageEnvelope
    from .publisher import PublisherChannel

_logger = logging.getLogger("neji_messaging.dispatcher")


def queue_post_time() -> int:
    """Return the current time as epoch milliseconds."""
    return time.time_ns() // 1_000_000


class PublishDispatcher:
    """Stamp envelopes with the post time and hand them to the publisher.

    Delivery is at most once: failures are logged and returned, never
    retried here.
    """

    def __init__(
        self,
        publisher: PublisherChannel,
        *,
        serializer: PayloadSerializer | None = None,
        identifier_fields: Sequence[str] = ("caid", "service"),
        logger: logging.Logger | logging.LoggerAdapter[Any] | None = None,
    ) -> None:
        self._publisher = publisher
        self._serializer = serializer or PayloadSerializer()
        self._identifier_fields = tuple(identifier_fields)
        self._logger = logger or _logger

    async def single_publish(self, envelope: MessageEnvelope) -> PublishResult:
        """Stamp and send one envelope.

        Raises:
            ConfigurationError: no publish queue configured.
        """
        return await self._send(0, self._stamp(envelope))

    async def batch_publish(
        self,
        envelopes: Sequence[MessageEnvelope],
    ) -> list[PublishResult]:
        """Stamp and send every envelope; one result per input index.

        Sends start in input order; their completions may interleave. An
        empty batch returns ``[]`` without touching the transport.

        Raises:
            ConfigurationError: no publish queue configured.
        """
        if not envelopes:
            return []
        self._publisher.require_entry()
        tasks = [
            asyncio.ensure_future(self._send(index, self._stamp(envelope)))
            for index, envelope in enumerate(envelopes)
        ]
        return list(await asyncio.gather(*tasks))

    def _stamp(self, envelope: MessageEnvelope) -> MessageEnvelope:
        return envelope.model_copy(update={"post_time": queue_post_time()})

    async def _send(self, index: int, envelope: MessageEnvelope) -> PublishResult:
        try:
            body = self._serializer.encode(envelope)
            await self._publisher.send(envelope.target_queue, body)
        except (PublishError, MessagingSerializationError) as e:
            self._logger.error(
                'Failed to send message to "%s": %s', envelope.target_queue, e
            )
            return PublishResult(index=index, envelope=envelope, error=e)
        self._logger.debug(self._summary(envelope))
        return PublishResult(index=index, envelope=envelope)

    def _summary(self, envelope: MessageEnvelope) -> str:
        payload = envelope.payload
        ids: list[str] = []
        if isinstance(payload, Mapping):
            ids = [f'"{payload[f]}"' for f in self._identifier_fields if f in payload]
        if not ids:
            return f'Sent message to "{envelope.target_queue}"'
        return f'Sent message {" for ".join(ids)} to "{envelope.target_queue}"'
