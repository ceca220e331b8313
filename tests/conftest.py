"""Pytest fixtures for broker client tests."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

# Ensure the package is importable when running pytest from the repo root
# (e.g. without pip install -e .)
_src = Path(__file__).resolve().parent.parent / "src"
if _src.is_dir() and str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from neji_messaging.memory import InMemoryBroker, InMemoryConnection  # noqa: E402
from neji_messaging.settings import BrokerSettings  # noqa: E402

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence


@pytest.fixture
def memory_broker() -> InMemoryBroker:
    return InMemoryBroker()


@pytest.fixture
def created_connections() -> list[InMemoryConnection]:
    return []


@pytest.fixture
def connection_factory(
    memory_broker: InMemoryBroker,
    created_connections: list[InMemoryConnection],
) -> Callable[..., InMemoryConnection]:
    """Factory building in-memory handles that share one broker."""

    def factory(urls: Sequence[str], **kwargs: Any) -> InMemoryConnection:
        kwargs.setdefault("broker", memory_broker)
        connection = InMemoryConnection(urls, **kwargs)
        created_connections.append(connection)
        return connection

    return factory


@pytest.fixture
def settings() -> BrokerSettings:
    return BrokerSettings.model_validate(
        {
            "endpoints": [
                {
                    "host": "rabbit-1",
                    "user": "neji",
                    "password": "s3cret",
                    "active": True,
                },
                {"host": "rabbit-2", "port": 5673, "active": True},
                {"host": "rabbit-old", "active": False},
            ],
            "receiveQueueName": "mnp.sftp_in",
            "publishQueueName": "mnp.etl/out",
        }
    )
