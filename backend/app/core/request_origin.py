"""Requester origin (IP + user agent) captured for audit and rate limiting.

The origin is stored on token records for audit only. It never takes
part in an authorization decision.
"""

from dataclasses import dataclass

from fastapi import Request

from app.core.config import settings

# Column widths on magic_links
_MAX_IP_LENGTH = 45
_MAX_USER_AGENT_LENGTH = 512


@dataclass(frozen=True)
class RequestOrigin:
    """Where a request came from.

    Attributes:
        ip_address: Client IP (first X-Forwarded-For hop when trusted).
        user_agent: Raw User-Agent header, truncated for storage.
    """

    ip_address: str
    user_agent: str = ""


def get_client_ip(request: Request) -> str:
    """Return the client IP, honoring X-Forwarded-For only when trusted."""
    if settings.trust_forwarded_for:
        forwarded_for = request.headers.get("X-Forwarded-For", "")
        if forwarded_for:
            first_ip = forwarded_for.split(",", 1)[0].strip()
            if first_ip:
                return first_ip[:_MAX_IP_LENGTH]
    if request.client and request.client.host:
        return request.client.host[:_MAX_IP_LENGTH]
    return "unknown"


def origin_from_request(request: Request) -> RequestOrigin:
    """Build a RequestOrigin from the incoming request."""
    return RequestOrigin(
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent", "")[:_MAX_USER_AGENT_LENGTH],
    )
