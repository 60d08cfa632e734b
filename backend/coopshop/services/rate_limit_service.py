"""
Request Rate Limiting

WHY: Slow down brute-force attempts on PIN endpoints and runaway clients on
order placement and eligibility lookups.

- Sliding window per key (usually "<endpoint>:<client ip>")
- Counters live in the injected CacheStore, so a Redis store shares them
  across workers
- Has no influence on eligibility or pricing results
"""

from __future__ import annotations

import time
from typing import Callable

from flask import Request

from ..errors import RateLimitError
from .cache_service import CacheStore, get_cache


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("X-Real-IP") or request.remote_addr or "unknown"


def check_rate_limit(
    key: str,
    max_requests: int,
    window_seconds: int,
    *,
    store: CacheStore | None = None,
    clock: Callable[[], float] = time.time,
) -> bool:
    """
    Record a hit for key and return False if the window is already full.

    A rejected hit is not recorded. The store applies the window atomically,
    so a shared Redis store enforces one limit across all workers.
    """
    store = store or get_cache()
    return store.record_hit(f"ratelimit:{key}", clock(), window_seconds, max_requests)


def enforce_rate_limit(
    key: str,
    limit: tuple[int, int],
    *,
    message: str = "Too many requests. Please try again later.",
    code: str = "RATE_LIMIT_EXCEEDED",
    store: CacheStore | None = None,
) -> None:
    max_requests, window_seconds = limit
    if not check_rate_limit(key, max_requests, window_seconds, store=store):
        raise RateLimitError(message, code)


def reset_rate_limit(key: str, *, store: CacheStore | None = None) -> None:
    store = store or get_cache()
    store.delete(f"ratelimit:{key}")
