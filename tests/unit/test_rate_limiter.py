"""Unit tests for the fixed-window rate limiter.

Uses a fake clock so window boundaries are deterministic.
"""

from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException, Response

from linkdesk.web.rate_limit import (
    FixedWindowRateLimiter,
    MemoryWindowStore,
    get_client_identifier,
)


class FakeClock:
    def __init__(self, now: float = 1_000_040.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _request(ip: str = "203.0.113.5", forwarded: str | None = None):
    request = MagicMock()
    request.headers = {"X-Forwarded-For": forwarded} if forwarded else {}
    request.client.host = ip
    return request


class TestClientIdentifier:
    def test_uses_first_forwarded_hop(self):
        request = _request(forwarded="198.51.100.1, 10.0.0.2")
        assert get_client_identifier(request) == "198.51.100.1"

    def test_falls_back_to_peer_address(self):
        assert get_client_identifier(_request(ip="192.0.2.10")) == "192.0.2.10"

    def test_unknown_without_client(self):
        request = _request()
        request.client = None
        assert get_client_identifier(request) == "unknown"


class TestMemoryWindowStore:
    def test_counts_reset_with_new_window(self):
        store = MemoryWindowStore()

        assert store.incr("k", 60) == 1
        assert store.incr("k", 60) == 2
        assert store.incr("k", 120) == 1
        assert store.incr("other", 120) == 1

    def test_old_windows_are_dropped(self):
        store = MemoryWindowStore()
        for i in range(50):
            store.incr(f"client-{i}", 60)
        assert len(store) == 50

        store.incr("late", 120)

        assert len(store) == 1
        assert store.incr("client-0", 120) == 1

    def test_limiter_memory_holds_only_current_window(self):
        clock = FakeClock()
        limiter = FixedWindowRateLimiter("test", limit=5, window_seconds=60, clock=clock)
        for i in range(10):
            limiter(_request(ip=f"192.0.2.{i}"), Response())

        clock.now += 60
        limiter(_request(ip="192.0.2.200"), Response())

        assert len(limiter.memory) == 1


class TestFixedWindowRateLimiter:
    """Tests for the FastAPI dependency."""

    def test_allows_up_to_limit_and_sets_headers(self):
        """Test requests within the limit pass with remaining-count headers."""
        limiter = FixedWindowRateLimiter("test", limit=3, window_seconds=60, clock=FakeClock())

        response = Response()
        for _ in range(3):
            limiter(_request(), response)

        assert response.headers["X-RateLimit-Limit"] == "3"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.headers["X-RateLimit-Reset"] == str(1_000_080)

    def test_rejects_over_limit_with_retry_after(self):
        """Test the request past the limit gets 429 and a Retry-After."""
        clock = FakeClock()
        limiter = FixedWindowRateLimiter("test", limit=2, window_seconds=60, clock=clock)
        limiter(_request(), Response())
        limiter(_request(), Response())

        with pytest.raises(HTTPException) as exc_info:
            limiter(_request(), Response())

        error = exc_info.value
        assert error.status_code == 429
        assert error.headers["Retry-After"] == "40"
        assert error.headers["X-RateLimit-Remaining"] == "0"

    def test_clients_are_counted_separately(self):
        """Test one client hitting the limit does not block another."""
        limiter = FixedWindowRateLimiter("test", limit=1, window_seconds=60, clock=FakeClock())
        limiter(_request(ip="192.0.2.1"), Response())

        limiter(_request(ip="192.0.2.2"), Response())

        with pytest.raises(HTTPException):
            limiter(_request(ip="192.0.2.1"), Response())

    def test_next_window_resets_count(self):
        """Test the counter starts over once the window rolls."""
        clock = FakeClock()
        limiter = FixedWindowRateLimiter("test", limit=1, window_seconds=60, clock=clock)
        limiter(_request(), Response())

        clock.now += 60
        limiter(_request(), Response())

    def test_limit_defaults_come_from_config(self, monkeypatch):
        """Test SHARE_RATE_LIMIT drives the default limiter."""
        monkeypatch.setenv("SHARE_RATE_LIMIT", "7")
        monkeypatch.setenv("SHARE_RATE_WINDOW_SECONDS", "15")

        limiter = FixedWindowRateLimiter("share")

        assert limiter.limit == 7
        assert limiter.window_seconds == 15
