"""Session credential minting and validation.

After a magic link is redeemed the caller receives a short-lived HS256
JWT bearer credential. The signing key is process-wide configuration
(AUTH_SECRET), never per-request state. Refresh and rotation are not
handled here.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import jwt

from app.core.config import settings

_ALGORITHM = "HS256"


@dataclass(frozen=True)
class SessionToken:
    """A minted bearer credential.

    Attributes:
        token: Encoded JWT.
        expires_at: Expiry timestamp (exp claim).
        expires_in: Seconds until expiry at minting time.
    """

    token: str = field(repr=False)
    expires_at: datetime
    expires_in: int


@dataclass(frozen=True)
class SessionClaims:
    """Validated claims from a session credential."""

    user_id: uuid.UUID
    user_type: str
    issued_at: datetime
    expires_at: datetime


def create_jwt(
    *,
    user_id: str,
    user_type: str,
    secret: str,
    expires_delta: timedelta | None = None,
    now: datetime | None = None,
) -> tuple[str, datetime]:
    """Create a signed JWT with standard claims plus the user type.

    Args:
        user_id: User UUID string for the sub claim.
        user_type: Role claim (e.g., "CONSUMER", "VENDOR").
        secret: HMAC signing secret.
        expires_delta: Time until expiration. Defaults to the session TTL.
        now: Issued-at time. Defaults to now.

    Returns:
        Tuple of (encoded JWT, expiry timestamp).
    """
    issued_at = now or datetime.now(UTC)
    expires_at = issued_at + (
        expires_delta or timedelta(minutes=settings.session_token_ttl_minutes)
    )
    payload = {
        "sub": user_id,
        "user_type": user_type,
        "aud": settings.auth_audience,
        "iss": settings.auth_issuer,
        "exp": expires_at,
        "iat": issued_at,
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM), expires_at


def mint_session(
    *,
    user_id: uuid.UUID,
    user_type: str,
    now: datetime | None = None,
) -> SessionToken:
    """Mint the post-redemption session credential for a user.

    Args:
        user_id: Authenticated user's ID.
        user_type: Authenticated user's type/role.
        now: Issued-at time. Defaults to now.

    Returns:
        SessionToken with the encoded credential and its lifetime.
    """
    ttl = timedelta(minutes=settings.session_token_ttl_minutes)
    token, expires_at = create_jwt(
        user_id=str(user_id),
        user_type=user_type,
        secret=settings.auth_secret.get_secret_value(),
        expires_delta=ttl,
        now=now,
    )
    return SessionToken(
        token=token,
        expires_at=expires_at,
        expires_in=int(ttl.total_seconds()),
    )


def decode_session(token: str) -> SessionClaims:
    """Verify a session credential and return its claims.

    Checks signature, exp, aud, and iss; requires sub and iat.

    Raises:
        jwt.InvalidTokenError: On any signature, claim, or format problem.
    """
    payload = jwt.decode(
        token,
        settings.auth_secret.get_secret_value(),
        algorithms=[_ALGORITHM],
        audience=settings.auth_audience,
        issuer=settings.auth_issuer,
        options={"require": ["sub", "iat", "exp"]},
    )
    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError, TypeError) as exc:
        raise jwt.InvalidTokenError("Invalid subject claim") from exc
    return SessionClaims(
        user_id=user_id,
        user_type=str(payload.get("user_type", "")),
        issued_at=datetime.fromtimestamp(payload["iat"], UTC),
        expires_at=datetime.fromtimestamp(payload["exp"], UTC),
    )
