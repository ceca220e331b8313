"""Messaging-specific exceptions for neji-messaging."""

from __future__ import annotations


class MessagingError(Exception):
    """Root exception for the broker client."""


class ConfigurationError(MessagingError):
    """Raised when the broker client is misconfigured.

    Fatal at the call site and never retried: no active endpoints, a publish
    without a publish queue, or a rejected queue-key collision.
    """


class TransportError(MessagingError):
    """Raised when the broker connection or a channel on it fails."""


class RoutingError(MessagingError):
    """A delivery arrived for an unknown or stale channel key."""

    def __init__(self, message: str, queue_key: str | None = None) -> None:
        self.queue_key = queue_key
        super().__init__(message)


class PublishError(MessagingError):
    """Raised when a send is rejected or the publisher channel is unavailable."""

    def __init__(
        self,
        message: str,
        *,
        queue_name: str | None = None,
        retryable: bool = False,
    ) -> None:
        self.queue_name = queue_name
        self.retryable = retryable
        super().__init__(message)


class MessagingSerializationError(MessagingError):
    """Raised when message serialization or deserialization fails."""
