"""Rate limiting for the magic link endpoints.

Security: Bounds issuance and redemption attempts so a single requester
cannot flood inboxes or brute-force tokens.

Two layers:
- ``limiter`` (slowapi): coarse per-IP ceiling applied as a route
  decorator on send and verify.
- ``identity_limiter``: per-identity (origin + email) fixed windows with
  independent counters for the send and verify paths. Decision-only: it
  knows nothing about tokens or users.

Both share ``RATE_LIMIT_STORAGE_URI``. Counter increment-and-compare is a
single storage operation (atomic INCR with expiry on Redis), so several
workers can share one store.

Usage in routers:
    from app.core.rate_limiting import limiter

    @router.post("/magic-link/send")
    @limiter.limit(lambda: settings.rate_limit_ip_ceiling)
    async def send_magic_link(request: Request, ...):
        ...
"""

import math
import time
from dataclasses import dataclass
from enum import Enum

from fastapi import Request, Response
from limits import RateLimitItem, parse
from limits.aio.strategies import FixedWindowRateLimiter
from limits.storage import storage_from_string
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from starlette.responses import JSONResponse

from app.core.config import settings
from app.core.request_origin import get_client_ip


def _rate_limit_key_func(request: Request) -> str:
    """Get the coarse rate limit key (client IP) from the request."""
    return f"ip:{get_client_ip(request)}"


# Global per-IP ceiling
limiter = Limiter(
    key_func=_rate_limit_key_func,
    enabled=settings.rate_limit_enabled,
    storage_uri=settings.rate_limit_storage_uri,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle per-IP ceiling errors raised by slowapi.

    Security: Returns 429 Too Many Requests with standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # Parse the window length from exception detail (e.g., "100 per 15 minute")
    # Fallback to 60 seconds if parsing fails
    try:
        retry_after = str(parse(exc.detail).get_expiry())
    except (ValueError, AttributeError, TypeError):
        retry_after = "60"

    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
                "details": [{"retry_after": int(retry_after)}],
            }
        },
        headers={"Retry-After": retry_after},
    )


# =============================================================================
# Per-identity limiter
# =============================================================================


class RateLimitPath(str, Enum):
    """Independent counter buckets."""

    SEND = "send"
    VERIFY = "verify"


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one check-and-increment.

    Attributes:
        allowed: Whether the request fits in the current window.
        remaining: Requests left in the window after this one.
        retry_after: Seconds until the window resets (0 when allowed).
    """

    allowed: bool
    remaining: int
    retry_after: int = 0


def build_identity(ip_address: str, email: str) -> str:
    """Combine requester origin and subject email into one identity key."""
    return f"{ip_address}|{email}"


class IdentityRateLimiter:
    """Fixed-window counters keyed by (path, identity).

    Counters are created lazily on first hit and reset once the window
    elapses. ``check_and_increment`` relies on the storage's atomic
    increment; no in-process lock is held across the storage call.

    Args:
        storage_uri: limits storage URI without the async prefix
            (e.g. "memory://", "redis://localhost:6379").
        windows: Limit string per path, e.g. {SEND: "5/15 minutes"}.
        enabled: When False every call is allowed.
    """

    def __init__(
        self,
        storage_uri: str,
        windows: dict[RateLimitPath, str],
        *,
        enabled: bool = True,
    ) -> None:
        self.enabled = enabled
        self._storage = storage_from_string(f"async+{storage_uri}")
        self._strategy = FixedWindowRateLimiter(self._storage)
        self._windows: dict[RateLimitPath, RateLimitItem] = {
            path: parse(value) for path, value in windows.items()
        }

    def window_for(self, path: RateLimitPath) -> RateLimitItem:
        """Return the configured window for a path."""
        return self._windows[path]

    async def check_and_increment(
        self,
        path: RateLimitPath,
        identity: str,
    ) -> RateLimitDecision:
        """Count one attempt for ``identity`` and decide whether it is allowed.

        Args:
            path: Which bucket to count against (send or verify).
            identity: Identity key from build_identity().

        Returns:
            RateLimitDecision with retry_after > 0 when rejected.
        """
        if not self.enabled:
            return RateLimitDecision(allowed=True, remaining=-1)

        window = self._windows[path]
        allowed = await self._strategy.hit(window, path.value, identity)
        stats = await self._strategy.get_window_stats(window, path.value, identity)
        if allowed:
            return RateLimitDecision(allowed=True, remaining=stats.remaining)

        retry_after = max(1, math.ceil(stats.reset_time - time.time()))
        return RateLimitDecision(allowed=False, remaining=0, retry_after=retry_after)

    async def reset(self) -> None:
        """Drop every counter (tests and dev tooling)."""
        await self._storage.reset()

    async def check_storage(self) -> bool:
        """Return True when the counter store is reachable."""
        return await self._storage.check()


identity_limiter = IdentityRateLimiter(
    settings.rate_limit_storage_uri,
    {
        RateLimitPath.SEND: settings.rate_limit_magic_link_send,
        RateLimitPath.VERIFY: settings.rate_limit_magic_link_verify,
    },
    enabled=settings.rate_limit_enabled,
)
