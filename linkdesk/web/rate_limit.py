"""Fixed-window rate limiting for public endpoints.

Counts requests per client IP in fixed windows (default 30 per 60 seconds).
Redis holds the counters when ``REDIS_URL`` is set so limits are shared
between workers; otherwise, or when Redis errors, an in-process store is
used.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

import redis
from fastapi import HTTPException, Request, Response

from linkdesk.config import get_config

logger = logging.getLogger(__name__)


def get_client_identifier(request: Request) -> str:
    """Client IP, honouring the first hop of X-Forwarded-For."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"


class MemoryWindowStore:
    """Per-process counters keyed by client, holding only the current window.

    Entries from earlier windows are dropped the first time a later window
    is seen.
    """

    def __init__(self):
        self._counts: dict[str, tuple[int, int]] = {}
        self._window_start: int | None = None

    def __len__(self) -> int:
        return len(self._counts)

    def incr(self, key: str, window_start: int) -> int:
        if self._window_start is None or window_start > self._window_start:
            self._counts = {
                k: entry for k, entry in self._counts.items() if entry[0] >= window_start
            }
            self._window_start = window_start

        start, count = self._counts.get(key, (window_start, 0))
        if start != window_start:
            count = 0
        count += 1
        self._counts[key] = (window_start, count)
        return count

    def clear(self) -> None:
        self._counts.clear()
        self._window_start = None


class FixedWindowRateLimiter:
    """FastAPI dependency enforcing ``limit`` requests per ``window`` seconds.

    Usage:
        limiter = FixedWindowRateLimiter("share")

        @router.get("/claim/{token}", dependencies=[Depends(limiter)])
    """

    def __init__(
        self,
        scope: str,
        limit: int | None = None,
        window_seconds: int | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.scope = scope
        self._limit = limit
        self._window_seconds = window_seconds
        self.clock = clock
        self.memory = MemoryWindowStore()

    @property
    def limit(self) -> int:
        return self._limit if self._limit is not None else get_config().share.rate_limit

    @property
    def window_seconds(self) -> int:
        if self._window_seconds is not None:
            return self._window_seconds
        return get_config().share.rate_window_seconds

    def _redis_client(self) -> redis.Redis | None:
        redis_url = get_config().auth.redis_url
        if not redis_url:
            return None
        return redis.from_url(redis_url, decode_responses=True)

    def hit(self, client_id: str) -> tuple[int, int]:
        """Count one request. Returns (count in window, window reset epoch)."""
        window = self.window_seconds
        now = int(self.clock())
        window_start = now - (now % window)
        key = f"rate_limit:{self.scope}:{client_id}"

        redis_client = self._redis_client()
        if redis_client is not None:
            redis_key = f"{key}:{window_start}"
            try:
                pipe = redis_client.pipeline()
                pipe.incr(redis_key)
                pipe.expire(redis_key, window + 1)
                count = int(pipe.execute()[0])
                return count, window_start + window
            except redis.exceptions.RedisError as e:
                logger.warning("Rate limiting falling back to memory: %s", e)

        return self.memory.incr(key, window_start), window_start + window

    def __call__(self, request: Request, response: Response) -> None:
        client_id = get_client_identifier(request)
        limit = self.limit
        count, reset_at = self.hit(client_id)

        if count > limit:
            retry_after = max(1, reset_at - int(self.clock()))
            logger.warning(
                "Rate limit exceeded for %s on %s: %d/%d", client_id, self.scope, count, limit
            )
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded. Try again in {retry_after} seconds.",
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(reset_at),
                },
            )

        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, limit - count))
        response.headers["X-RateLimit-Reset"] = str(reset_at)


share_rate_limiter = FixedWindowRateLimiter("share")
