"""Queue name sanitizing for channel registry keys."""

from __future__ import annotations

_STRIPPED = str.maketrans("", "", ",_./")


def sanitize_queue_name(name: str) -> str:
    """Return *name* without any ``,``, ``_``, ``.`` or ``/`` characters.

    Idempotent; two queue names that differ only in those characters map to
    the same key.
    """
    return name.translate(_STRIPPED)
