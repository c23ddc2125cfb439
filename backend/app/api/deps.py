"""Shared dependencies for API endpoints.

Database session, requester origin, the per-identity rate limiter, and
bearer-credential authentication.

WHY DEPENDENCY INJECTION:
- Consistent auth across all endpoints
- Easy to swap implementations (memory -> Redis limiter storage)
- Testable with mocked dependencies (app.dependency_overrides)
"""

from typing import Annotated

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import SessionClaims, decode_session
from app.core.database import get_db
from app.core.errors import UnauthorizedError
from app.core.rate_limiting import IdentityRateLimiter, identity_limiter
from app.core.request_origin import RequestOrigin, origin_from_request
from app.models import User
from app.repositories.user_repository import UserRepository

_bearer_scheme = HTTPBearer(auto_error=False)


def get_request_origin(request: Request) -> RequestOrigin:
    """Requester IP and user agent for audit and rate limiting."""
    return origin_from_request(request)


def get_identity_limiter() -> IdentityRateLimiter:
    """Process-wide per-identity limiter."""
    return identity_limiter


def get_session_claims(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)
    ],
) -> SessionClaims:
    """Validate the bearer session credential.

    Security: The 401 never says WHY auth failed (missing, expired,
    bad signature, wrong audience).

    Raises:
        UnauthorizedError: For any auth failure.
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError()
    try:
        return decode_session(credentials.credentials)
    except jwt.InvalidTokenError as exc:
        raise UnauthorizedError() from exc


async def get_current_user(
    claims: Annotated[SessionClaims, Depends(get_session_claims)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get full User object for the authenticated session.

    Raises:
        UnauthorizedError: User deleted or deactivated since minting.
    """
    user = await UserRepository.get_by_id(db, claims.user_id)
    if user is None or not user.is_active:
        raise UnauthorizedError()
    return user


# Reusable type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
Origin = Annotated[RequestOrigin, Depends(get_request_origin)]
IdentityLimiter = Annotated[IdentityRateLimiter, Depends(get_identity_limiter)]
CurrentUser = Annotated[User, Depends(get_current_user)]
