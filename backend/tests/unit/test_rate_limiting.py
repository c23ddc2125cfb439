"""Tests for rate limiting behavior.

Security: API abuse prevention. Covers the slowapi per-IP ceiling (handler,
key function, enforcement) and the per-identity fixed-window limiter used
on the magic link send and verify paths.
"""

import asyncio
import json
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient
from hypothesis import given, settings as hypothesis_settings, strategies as st
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request as StarletteRequest

from app.core.config import settings
from app.core.rate_limiting import (
    IdentityRateLimiter,
    RateLimitPath,
    _rate_limit_key_func,
    build_identity,
    rate_limit_exceeded_handler,
)

_SEND_WINDOW = "5/15 minutes"
_VERIFY_WINDOW = "10/5 minutes"
_IDENTITY = build_identity("203.0.113.7", "user@example.com")


def _make_limiter(
    send: str = _SEND_WINDOW,
    verify: str = _VERIFY_WINDOW,
    *,
    enabled: bool = True,
) -> IdentityRateLimiter:
    """Fresh limiter with its own in-memory storage."""
    return IdentityRateLimiter(
        "memory://",
        {RateLimitPath.SEND: send, RateLimitPath.VERIFY: verify},
        enabled=enabled,
    )


class TestRateLimitExceededHandler:
    """Tests for the per-IP ceiling response format."""

    def _request(self) -> StarletteRequest:
        return StarletteRequest(
            {"type": "http", "method": "POST", "path": "/api/v1/auth/magic-link/send"}
        )

    def test_rate_limit_returns_429_status(self):
        exc = MagicMock()
        exc.detail = "100 per 15 minute"

        response = rate_limit_exceeded_handler(self._request(), exc)

        assert response.status_code == 429

    def test_rate_limit_returns_error_envelope(self):
        """Rate limit response should use standard error envelope."""
        exc = MagicMock()
        exc.detail = "100 per 15 minute"

        response = rate_limit_exceeded_handler(self._request(), exc)
        body = json.loads(response.body.decode())

        assert body["error"]["code"] == "RATE_LIMITED"
        assert "Rate limit exceeded" in body["error"]["message"]
        assert body["error"]["details"] == [{"retry_after": 900}]

    def test_retry_after_is_window_length(self):
        exc = MagicMock()
        exc.detail = "100 per 15 minute"

        response = rate_limit_exceeded_handler(self._request(), exc)

        assert response.headers.get("Retry-After") == "900"

    def test_retry_after_fallback_on_invalid_detail(self):
        """Retry-After should fall back to 60 if parsing fails."""
        exc = MagicMock()
        exc.detail = "unexpected format"

        response = rate_limit_exceeded_handler(self._request(), exc)

        assert response.headers.get("Retry-After") == "60"

    def test_retry_after_handles_none_detail(self):
        exc = MagicMock()
        exc.detail = None

        response = rate_limit_exceeded_handler(self._request(), exc)

        assert response.headers.get("Retry-After") == "60"


class TestRateLimitKeyFunction:
    """Per-IP ceiling is keyed on the client IP."""

    def _make_request(
        self, *, client_host: str = "192.168.1.1", headers: dict | None = None
    ) -> MagicMock:
        request = MagicMock()
        request.client.host = client_host
        request.headers = headers or {}
        return request

    def test_returns_ip_key(self):
        request = self._make_request(client_host="10.0.0.1")
        assert _rate_limit_key_func(request) == "ip:10.0.0.1"

    def test_ignores_forwarded_for_by_default(self, monkeypatch):
        """X-Forwarded-For is client-controlled unless a proxy is trusted."""
        monkeypatch.setattr(settings, "trust_forwarded_for", False)
        request = self._make_request(
            client_host="10.0.0.1", headers={"X-Forwarded-For": "198.51.100.1"}
        )
        assert _rate_limit_key_func(request) == "ip:10.0.0.1"

    def test_uses_first_forwarded_hop_when_trusted(self, monkeypatch):
        monkeypatch.setattr(settings, "trust_forwarded_for", True)
        request = self._make_request(
            client_host="10.0.0.1",
            headers={"X-Forwarded-For": "198.51.100.1, 10.0.0.2"},
        )
        assert _rate_limit_key_func(request) == "ip:198.51.100.1"


class TestIpCeilingEnforcement:
    """slowapi actually blocks excess requests at the HTTP layer."""

    async def test_blocks_after_limit_with_envelope(self):
        limiter = Limiter(key_func=_rate_limit_key_func, enabled=True)
        app = FastAPI()
        app.state.limiter = limiter
        app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

        @app.post("/limited")
        @limiter.limit("2/minute")
        async def limited(request: Request) -> dict[str, str]:  # noqa: ARG001
            return {"status": "ok"}

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            statuses = [(await ac.post("/limited")).status_code for _ in range(3)]
            blocked = await ac.post("/limited")

        assert statuses == [200, 200, 429]
        assert blocked.json()["error"]["code"] == "RATE_LIMITED"
        assert blocked.headers["Retry-After"] == "60"


class TestIdentityRateLimiter:
    """Per-identity fixed windows on the send and verify paths."""

    async def test_allows_exactly_max_then_rejects(self):
        """5 sends inside the window succeed; the 6th is rejected."""
        limiter = _make_limiter()

        decisions = [
            await limiter.check_and_increment(RateLimitPath.SEND, _IDENTITY)
            for _ in range(6)
        ]

        assert [d.allowed for d in decisions] == [True] * 5 + [False]
        assert [d.remaining for d in decisions[:5]] == [4, 3, 2, 1, 0]

    async def test_rejection_carries_positive_retry_after(self):
        limiter = _make_limiter()
        for _ in range(5):
            await limiter.check_and_increment(RateLimitPath.SEND, _IDENTITY)

        decision = await limiter.check_and_increment(RateLimitPath.SEND, _IDENTITY)

        assert decision.allowed is False
        assert 0 < decision.retry_after <= 15 * 60

    async def test_counter_resets_after_window(self):
        limiter = _make_limiter(send="2/1 second")
        for _ in range(2):
            await limiter.check_and_increment(RateLimitPath.SEND, _IDENTITY)
        assert not (
            await limiter.check_and_increment(RateLimitPath.SEND, _IDENTITY)
        ).allowed

        await asyncio.sleep(1.1)

        decision = await limiter.check_and_increment(RateLimitPath.SEND, _IDENTITY)
        assert decision.allowed is True

    async def test_send_and_verify_counters_are_independent(self):
        limiter = _make_limiter()
        for _ in range(5):
            await limiter.check_and_increment(RateLimitPath.SEND, _IDENTITY)

        verify = await limiter.check_and_increment(RateLimitPath.VERIFY, _IDENTITY)

        assert verify.allowed is True
        assert verify.remaining == 9

    async def test_identities_are_independent(self):
        limiter = _make_limiter()
        for _ in range(5):
            await limiter.check_and_increment(RateLimitPath.SEND, _IDENTITY)

        other_email = build_identity("203.0.113.7", "other@example.com")
        other_ip = build_identity("198.51.100.9", "user@example.com")

        assert (
            await limiter.check_and_increment(RateLimitPath.SEND, other_email)
        ).allowed
        assert (await limiter.check_and_increment(RateLimitPath.SEND, other_ip)).allowed

    async def test_concurrent_increments_admit_exactly_max(self):
        """Concurrent hits never admit more than the window allows."""
        limiter = _make_limiter()

        decisions = await asyncio.gather(
            *(
                limiter.check_and_increment(RateLimitPath.SEND, _IDENTITY)
                for _ in range(20)
            )
        )

        assert sum(d.allowed for d in decisions) == 5

    async def test_disabled_limiter_always_allows(self):
        limiter = _make_limiter(enabled=False)

        decisions = [
            await limiter.check_and_increment(RateLimitPath.SEND, _IDENTITY)
            for _ in range(10)
        ]

        assert all(d.allowed for d in decisions)

    async def test_reset_clears_counters(self):
        limiter = _make_limiter()
        for _ in range(5):
            await limiter.check_and_increment(RateLimitPath.SEND, _IDENTITY)

        await limiter.reset()

        assert (
            await limiter.check_and_increment(RateLimitPath.SEND, _IDENTITY)
        ).allowed

    async def test_memory_storage_is_healthy(self):
        assert await _make_limiter().check_storage() is True

    def test_window_for_exposes_configured_limit(self):
        window = _make_limiter().window_for(RateLimitPath.VERIFY)
        assert window.amount == 10
        assert window.get_expiry() == 300

    def test_build_identity_combines_origin_and_email(self):
        assert build_identity("10.0.0.1", "a@example.com") == "10.0.0.1|a@example.com"


class TestIdentityRateLimiterProperties:
    @hypothesis_settings(max_examples=25, deadline=None)
    @given(
        max_count=st.integers(min_value=1, max_value=10),
        extra=st.integers(min_value=1, max_value=5),
    )
    def test_admits_exactly_max_count_per_window(self, max_count, extra):
        """For any window size, exactly max_count of max_count + extra pass."""
        limiter = _make_limiter(send=f"{max_count}/15 minutes")

        async def hit_all() -> list[bool]:
            return [
                (
                    await limiter.check_and_increment(RateLimitPath.SEND, _IDENTITY)
                ).allowed
                for _ in range(max_count + extra)
            ]

        results = asyncio.run(hit_all())

        assert results == [True] * max_count + [False] * extra
