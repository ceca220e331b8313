"""PayloadSerializer: JSON bodies with the post time stamped as ``qtime``."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from .exceptions import MessagingSerializationError

if TYPE_CHECKING:
    from .envelope import MessageEnvelope

POST_TIME_FIELD = "qtime"


def _json_serializer(obj: Any) -> Any:
    """Serialize datetime and other non-JSON types."""
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


class PayloadSerializer:
    """Encode envelopes to JSON bytes and decode inbound bodies.

    Mapping payloads get the post time merged in under ``qtime``; any other
    payload is wrapped as ``{"data": payload, "qtime": ...}``.
    """

    def encode(self, envelope: MessageEnvelope) -> bytes:
        """Encode the envelope payload to JSON bytes."""
        payload = envelope.payload
        if isinstance(payload, Mapping):
            data = {**payload, POST_TIME_FIELD: envelope.post_time}
        else:
            data = {"data": payload, POST_TIME_FIELD: envelope.post_time}
        try:
            return json.dumps(data, default=_json_serializer).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise MessagingSerializationError(str(e)) from e

    def decode(self, body: bytes) -> Any:
        """Decode JSON bytes to Python data."""
        try:
            return json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MessagingSerializationError(str(e)) from e
