"""MessageEnvelope, DeliveryContext and PublishResult."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from .channel import ChannelWrapper
    from .exceptions import MessagingError


class MessageEnvelope(BaseModel):
    """Outbound message addressed to a queue.

    ``post_time`` is epoch milliseconds and is always overwritten by the
    dispatcher at send time.
    """

    model_config = ConfigDict(frozen=True)

    target_queue: str = Field(..., min_length=1)
    payload: Any = None
    post_time: int | None = None


@dataclass
class DeliveryContext:
    """Inbound delivery bound to the channel it arrived on."""

    queue_key: str
    routing_key: str
    delivery_tag: int
    payload: Any
    body: bytes = b""
    redelivered: bool = False
    channel: ChannelWrapper | None = field(default=None, repr=False)
    raw: Any = field(default=None, repr=False)
    acknowledged: bool = False


@dataclass(frozen=True)
class PublishResult:
    """Outcome of one publish within a single or batch call."""

    index: int
    envelope: MessageEnvelope
    error: MessagingError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def all_succeeded(results: list[PublishResult]) -> bool:
    """Return True if every result in *results* succeeded."""
    return all(r.ok for r in results)
