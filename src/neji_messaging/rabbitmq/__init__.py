"""RabbitMQ transport adapter built on aio-pika."""

from __future__ import annotations

from .channel import AioPikaChannel
from .connection import RabbitMQConnection

__all__ = [
    "AioPikaChannel",
    "RabbitMQConnection",
]
