"""AMQP message broker client: failover connection, consumer registry, publishing."""

from __future__ import annotations

from .broker import MessageBroker
from .channel import ChannelWrapper, InboundMessage, IRawChannel
from .connection import BaseConnection, ConnectionState
from .dispatcher import PublishDispatcher, queue_post_time
from .endpoints import EndpointDescriptor, build_amqp_urls
from .envelope import DeliveryContext, MessageEnvelope, PublishResult, all_succeeded
from .exceptions import (
    ConfigurationError,
    MessagingError,
    MessagingSerializationError,
    PublishError,
    RoutingError,
    TransportError,
)
from .intake import MessageIntakeHandler
from .manager import ConnectionManager
from .naming import sanitize_queue_name
from .publisher import PublisherChannel
from .registry import ChannelEntry, ChannelKind, ConsumerRegistry
from .serialization import PayloadSerializer
from .settings import PREFETCH_LIMIT, BrokerSettings

__all__ = [
    "PREFETCH_LIMIT",
    "BaseConnection",
    "BrokerSettings",
    "ChannelEntry",
    "ChannelKind",
    "ChannelWrapper",
    "ConfigurationError",
    "ConnectionManager",
    "ConnectionState",
    "ConsumerRegistry",
    "DeliveryContext",
    "EndpointDescriptor",
    "IRawChannel",
    "InboundMessage",
    "MessageBroker",
    "MessageEnvelope",
    "MessageIntakeHandler",
    "MessagingError",
    "MessagingSerializationError",
    "PayloadSerializer",
    "PublishDispatcher",
    "PublishError",
    "PublishResult",
    "PublisherChannel",
    "RoutingError",
    "TransportError",
    "all_succeeded",
    "build_amqp_urls",
    "queue_post_time",
    "sanitize_queue_name",
]
