"""BrokerSettings: configuration consumed by MessageBroker at initialization."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .endpoints import EndpointDescriptor, build_amqp_urls

PREFETCH_LIMIT = 1


class BrokerSettings(BaseModel):
    """Broker client configuration.

    Accepts snake_case field names or their camelCase aliases
    (``receiveQueueName``, ``publishQueueName``, ...).
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    endpoints: list[EndpointDescriptor] = Field(default_factory=list)
    receive_queue_name: str | None = None
    additional_receive_queues: list[str] = Field(default_factory=list)
    publish_queue_name: str | None = None
    scheme: str = "amqp"
    durable: bool = True
    persistent: bool = True
    publish_buffer_size: int = Field(default=100, ge=0)
    ready_timeout: float | None = Field(default=None, gt=0)
    queue_key_collision: Literal["alias", "reject"] = "alias"
    identifier_fields: tuple[str, ...] = ("caid", "service")
    # Only used by a handle running without the manager; MessageBroker closes
    # the handle on disconnect.
    reconnect_interval: float = Field(default=5.0, gt=0)

    @property
    def urls(self) -> list[str]:
        """Failover URL list built from the active endpoints."""
        return build_amqp_urls(self.endpoints, scheme=self.scheme)

    @property
    def receive_queues(self) -> list[str]:
        """Queues to consume from on every connect, receive queue first."""
        queues = [self.receive_queue_name] if self.receive_queue_name else []
        return queues + [q for q in self.additional_receive_queues if q]
