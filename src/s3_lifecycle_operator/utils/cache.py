"""Small TTL cache for Kubernetes objects read on every reconcile."""

from __future__ import annotations

import threading
import time
from typing import Any

from ..config import get_config

_cache: dict[str, tuple[float, Any]] = {}
_lock = threading.Lock()


def make_cache_key(kind: str, namespace: str, name: str) -> str:
    return f"{kind}/{namespace}/{name}"


def get_cached_object(key: str) -> Any | None:
    with _lock:
        entry = _cache.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if time.monotonic() >= expires_at:
            del _cache[key]
            return None
        return value


def set_cached_object(key: str, value: Any, ttl: float | None = None) -> None:
    ttl = get_config().cache_ttl if ttl is None else ttl
    with _lock:
        _cache[key] = (time.monotonic() + ttl, value)


def invalidate_cache(key: str | None = None) -> None:
    """Drop one entry, or everything when ``key`` is None."""
    with _lock:
        if key is None:
            _cache.clear()
        else:
            _cache.pop(key, None)
