"""MessageIntakeHandler: hand deliveries over and acknowledge accepted ones."""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any

from .exceptions import RoutingError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .envelope import DeliveryContext
    from .registry import ConsumerRegistry

    Handover = Callable[[DeliveryContext], bool | Awaitable[bool]]

_logger = logging.getLogger("neji_messaging.intake")


class MessageIntakeHandler:
    """Route each delivery to the handover and ack it on acceptance.

    A delivery is acknowledged only against the channel it arrived on, only
    while that channel is still the registered and open one, and only once.
    Anything else is logged as a routing error and left for the broker to
    redeliver.
    """

    def __init__(
        self,
        registry: ConsumerRegistry,
        handover: Handover,
        *,
        logger: logging.Logger | logging.LoggerAdapter[Any] | None = None,
    ) -> None:
        self._registry = registry
        self._handover = handover
        self._logger = logger or _logger
        registry.set_delivery_handler(self.on_message)

    async def on_message(self, context: DeliveryContext) -> None:
        entry = self._registry.lookup(context.routing_key)
        if entry is None:
            self._routing_error(context, "no consumer registered")
            return
        if context.channel is not entry.channel:
            self._routing_error(context, "channel was replaced")
            return

        try:
            accepted = self._handover(context)
            if inspect.isawaitable(accepted):
                accepted = await accepted
        except Exception:
            self._logger.exception(
                "Handover failed for delivery %s on %r; left unacknowledged",
                context.delivery_tag,
                context.routing_key,
            )
            return
        if accepted is not True:
            self._logger.debug(
                "Delivery %s on %r not accepted",
                context.delivery_tag,
                context.routing_key,
            )
            return

        if context.acknowledged:
            self._logger.warning(
                "Delivery %s already acknowledged", context.delivery_tag
            )
            return
        # The registry entry may have changed while the handover ran.
        current = self._registry.lookup(context.routing_key)
        if current is not entry or entry.channel.is_closed:
            self._routing_error(context, "channel closed before acknowledgement")
            return
        context.acknowledged = True
        try:
            await entry.channel.ack(context.raw)
        except Exception as e:  # noqa: BLE001
            self._logger.error(
                "Failed to acknowledge delivery %s on %r: %s",
                context.delivery_tag,
                context.routing_key,
                e,
            )

    def _routing_error(self, context: DeliveryContext, reason: str) -> None:
        error = RoutingError(
            f"Cannot acknowledge delivery {context.delivery_tag} on "
            f"{context.routing_key!r}: {reason}",
            queue_key=context.queue_key,
        )
        self._logger.error("%s", error)
