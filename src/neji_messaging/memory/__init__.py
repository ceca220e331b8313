"""In-memory transport for testing: no broker required."""

from __future__ import annotations

from .connection import InMemoryBroker, InMemoryChannel, InMemoryConnection

__all__ = [
    "InMemoryBroker",
    "InMemoryChannel",
    "InMemoryConnection",
]
