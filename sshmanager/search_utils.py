from __future__ import annotations

from typing import Any


def host_matches(host: Any, query: str) -> bool:
    """Return True if host matches the search query.

    The search checks the host's alias, hostname, user and tags in a
    case-insensitive manner.
    """
    if not query:
        return True
    text = query.strip().lower()
    if not text:
        return True
    fields = [
        getattr(host, "alias", ""),
        getattr(host, "hostname", ""),
        getattr(host, "user", ""),
    ]
    fields.extend(getattr(host, "tags", None) or ())
    return any(text in (field or "").lower() for field in fields)


__all__ = ["host_matches"]
