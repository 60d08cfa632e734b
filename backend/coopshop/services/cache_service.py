"""
TTL key-value store for catalog reads and rate-limit counters.

Supports:
1. In-memory store (single process; development and tests)
2. Redis (shared across workers)

Usage:
    cache = get_cache()
    branches = get_cached("branches:list", load_branches, ttl=300)
    invalidate("items:")

Never used for eligibility, exposure or price lookups made while placing an
order: those are always read from the database.
"""
from __future__ import annotations

import json
import logging
import secrets
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from flask import Flask, current_app

logger = logging.getLogger(__name__)

EXTENSION_KEY = "coopshop.cache"


class CacheStore(ABC):
    """Abstract store interface."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Get value, or None when missing or expired."""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: int = 300) -> None:
        """Set value with TTL (seconds)."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete key; True if it existed."""

    @abstractmethod
    def ttl(self, key: str) -> Optional[int]:
        """Seconds left before expiry, or None when missing."""

    @abstractmethod
    def keys(self, prefix: str = "") -> list[str]:
        """Live keys starting with prefix."""

    @abstractmethod
    def clear(self) -> int:
        """Remove everything; returns the number of keys removed."""

    @abstractmethod
    def record_hit(self, key: str, now: float, window_seconds: int, max_requests: int) -> bool:
        """
        Atomically add a hit at now to the sliding window stored at key.

        Hits older than window_seconds are dropped first. Returns False,
        without recording the hit, when the window already holds
        max_requests hits.
        """


class MemoryStore(CacheStore):
    """
    In-process store.

    Expired entries are dropped lazily on access and by cleanup_expired().
    Not shared between worker processes.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._data: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def _alive(self, key: str) -> bool:
        entry = self._data.get(key)
        if entry is None:
            return False
        if entry[1] <= self._clock():
            del self._data[key]
            return False
        return True

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            if not self._alive(key):
                return None
            return self._data[key][0]

    def set(self, key: str, value: Any, ttl: int = 300) -> None:
        with self._lock:
            self._data[key] = (value, self._clock() + ttl)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def ttl(self, key: str) -> Optional[int]:
        with self._lock:
            if not self._alive(key):
                return None
            return max(0, int(round(self._data[key][1] - self._clock())))

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return [k for k in list(self._data) if k.startswith(prefix) and self._alive(k)]

    def clear(self) -> int:
        with self._lock:
            count = len(self._data)
            self._data.clear()
            return count

    def record_hit(self, key: str, now: float, window_seconds: int, max_requests: int) -> bool:
        with self._lock:
            window_start = now - window_seconds
            current = self._data[key][0] if self._alive(key) else []
            hits = [t for t in current if t > window_start]
            allowed = len(hits) < max_requests
            if allowed:
                hits.append(now)
            self._data[key] = (hits, self._clock() + window_seconds)
            return allowed

    def cleanup_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [k for k, (_, expires_at) in self._data.items() if expires_at <= now]
            for key in expired:
                del self._data[key]
            return len(expired)


class RedisStore(CacheStore):
    """
    Redis-backed store. Values are JSON encoded.

    Rate-limit windows are sorted sets (score = hit time) updated in one
    MULTI/EXEC pipeline, so every worker sees the same count.
    """

    def __init__(self, redis_url: str | None = None, namespace: str = "coopshop:", client=None):
        if client is None:
            import redis

            client = redis.Redis.from_url(redis_url, decode_responses=True)
        self._client = client
        self._ns = namespace

    def get(self, key: str) -> Optional[Any]:
        value = self._client.get(self._ns + key)
        return json.loads(value) if value is not None else None

    def set(self, key: str, value: Any, ttl: int = 300) -> None:
        self._client.set(self._ns + key, json.dumps(value, default=str), ex=ttl)

    def delete(self, key: str) -> bool:
        return bool(self._client.delete(self._ns + key))

    def ttl(self, key: str) -> Optional[int]:
        remaining = self._client.ttl(self._ns + key)
        return remaining if remaining is not None and remaining >= 0 else None

    def keys(self, prefix: str = "") -> list[str]:
        offset = len(self._ns)
        return [k[offset:] for k in self._client.scan_iter(match=f"{self._ns}{prefix}*")]

    def clear(self) -> int:
        keys = list(self._client.scan_iter(match=f"{self._ns}*"))
        if keys:
            self._client.delete(*keys)
        return len(keys)

    def record_hit(self, key: str, now: float, window_seconds: int, max_requests: int) -> bool:
        name = self._ns + key
        member = f"{now:.6f}:{secrets.token_hex(4)}"

        pipe = self._client.pipeline(transaction=True)
        pipe.zremrangebyscore(name, "-inf", now - window_seconds)
        pipe.zadd(name, {member: now})
        pipe.zcard(name)
        pipe.expire(name, window_seconds)
        _, _, count, _ = pipe.execute()

        if count > max_requests:
            # Over the limit: take this hit back out so rejections do not count
            self._client.zrem(name, member)
            return False
        return True


def create_store(config) -> CacheStore:
    backend = config.get("CACHE_BACKEND", "memory")
    if backend == "redis":
        return RedisStore(config["REDIS_URL"])
    if backend == "memory":
        return MemoryStore()
    raise ValueError(f"Unknown CACHE_BACKEND '{backend}'")


def init_app(app: Flask, store: CacheStore | None = None) -> CacheStore:
    store = store or create_store(app.config)
    app.extensions[EXTENSION_KEY] = store
    return store


def get_cache() -> CacheStore:
    return current_app.extensions[EXTENSION_KEY]


def get_cached(key: str, fetch: Callable[[], Any], ttl: int | None = None) -> Any:
    cache = get_cache()
    value = cache.get(key)
    if value is not None:
        logger.debug("Cache hit for key: %s", key)
        return value

    logger.debug("Cache miss for key: %s, fetching...", key)
    value = fetch()
    cache.set(key, value, ttl or current_app.config.get("CACHE_DEFAULT_TTL", 300))
    return value


def invalidate(prefix: str) -> int:
    """Delete every key starting with prefix."""
    cache = get_cache()
    deleted = 0
    for key in cache.keys(prefix):
        if cache.delete(key):
            deleted += 1
    logger.info("Invalidated %d cache entries matching prefix %r", deleted, prefix)
    return deleted


def stats() -> dict:
    cache = get_cache()
    keys = sorted(cache.keys())
    return {
        "backend": cache.__class__.__name__,
        "size": len(keys),
        "keys": [{"key": k, "ttl": cache.ttl(k)} for k in keys],
    }
