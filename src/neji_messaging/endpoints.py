"""EndpointDescriptor and AMQP URL templating for failover lists."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from collections.abc import Iterable

_CREDENTIALS = re.compile(r"//[^@/]*@")


class EndpointDescriptor(BaseModel):
    """Configuration record for one candidate broker server.

    A descriptor without ``active`` set is never used. ``vhost`` is carried
    for configuration compatibility and is not part of the URL.
    """

    model_config = ConfigDict(frozen=True)

    host: str
    user: str | None = None
    password: str | None = None
    port: int | str | None = None
    vhost: str | None = None
    active: bool = False

    @property
    def has_credentials(self) -> bool:
        """True only when both user and password are set (no partial credentials)."""
        return bool(self.user) and bool(self.password)

    def to_url(self, scheme: str = "amqp") -> str:
        """Render ``scheme://[user:password@]host[:port]``, unvalidated."""
        url = f"{scheme}://"
        if self.has_credentials:
            url += f"{self.user}:{self.password}@"
        url += self.host
        if self.port:
            url += f":{self.port}"
        return url


def build_amqp_urls(
    descriptors: Iterable[EndpointDescriptor],
    *,
    scheme: str = "amqp",
) -> list[str]:
    """Build the ordered failover URL list from the active descriptors.

    Input order is preserved; an empty result is valid.
    """
    return [d.to_url(scheme) for d in descriptors if d.active]


def redact_url(url: str) -> str:
    """Mask the credentials of *url* for logging."""
    return _CREDENTIALS.sub("//***@", url, count=1)
