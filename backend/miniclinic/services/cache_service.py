# Overview: Listing cache on top of the Flask-Caching extension.

"""
Keys are request-path-like strings ("/products", "/products?category=x").
Mutations call revalidate_path() with a prefix to drop every key under it.

Every key written through put() is also recorded in a key index stored in
the cache itself, so prefix invalidation reaches entries written by other
workers when the backend is shared (Redis, memcached, filesystem).
"""

from __future__ import annotations

from typing import Any, Callable

from flask import current_app

from ..extensions import cache


KEY_INDEX = "miniclinic:cache-keys"


def _indexed_keys() -> list[str]:
    return list(cache.get(KEY_INDEX) or [])


def get(key: str) -> Any | None:
    return cache.get(key)


def put(key: str, value: Any, ttl: int | None = None) -> None:
    """Store value under key. ttl defaults to CACHE_DEFAULT_TIMEOUT."""
    cache.set(key, value, timeout=ttl)

    keys = _indexed_keys()
    if key not in keys:
        keys.append(key)
        # The index outlives every entry it lists
        cache.set(KEY_INDEX, keys, timeout=0)


def with_cache(key: str, fn: Callable[[], Any], ttl: int | None = None) -> Any:
    """Return the cached value for key, computing and storing it on a miss."""
    cached = cache.get(key)
    if cached is not None:
        current_app.logger.debug("Cache hit: %s", key)
        return cached

    current_app.logger.debug("Cache miss: %s", key)
    result = fn()
    put(key, result, ttl)
    return result


def revalidate_path(prefix: str) -> int:
    """Drop every indexed key starting with prefix. Returns the number dropped."""
    keys = _indexed_keys()
    dropped = [k for k in keys if k.startswith(prefix)]
    if not dropped:
        return 0

    cache.delete_many(*dropped)
    cache.set(KEY_INDEX, [k for k in keys if k not in dropped], timeout=0)
    current_app.logger.debug("Cache invalidated %d key(s) under %s", len(dropped), prefix)
    return len(dropped)


def clear() -> None:
    cache.clear()
