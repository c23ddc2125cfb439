"""Token issuer for magic links.

Generates a 256-bit URL-safe token, persists its SHA-256 hash bound to an
email and purpose, and hands the plain token back for delivery only. The
plain token is never stored and never logged.
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.request_origin import RequestOrigin
from app.models.magic_link import MagicLinkPurpose
from app.repositories.magic_link_repository import MagicLinkRepository
from app.services.purpose_resolver import check_precondition

logger = logging.getLogger(__name__)

# 32 bytes = 256 bits of entropy
_TOKEN_BYTES = 32


@dataclass(frozen=True)
class IssuedToken:
    """Result of a successful issuance.

    Attributes:
        token: Plain token, for the delivery collaborator only.
        email: Normalized email the token is bound to.
        purpose: Declared intent.
        issued_at: Issuance timestamp.
        expires_at: issued_at + TTL.
        expires_in: TTL in seconds (public-safe summary).
        first_name: Account holder name for the LOGIN greeting. None for
            REGISTRATION.
    """

    token: str = field(repr=False)
    email: str
    purpose: MagicLinkPurpose
    issued_at: datetime
    expires_at: datetime
    expires_in: int
    first_name: str | None = None


def generate_token() -> str:
    """Return a new URL-safe token with 256 bits of randomness."""
    return secrets.token_urlsafe(_TOKEN_BYTES)


def hash_token(token: str) -> str:
    """Return the SHA-256 hex digest stored in place of the token."""
    return hashlib.sha256(token.encode()).hexdigest()


async def issue_token(
    db: AsyncSession,
    *,
    email: str,
    purpose: MagicLinkPurpose,
    origin: RequestOrigin,
    now: datetime | None = None,
) -> IssuedToken:
    """Issue a magic link token for ``email``.

    The purpose precondition is checked before any token is generated, so
    a rejected request persists nothing. The caller owns the transaction
    and must commit before handing the token to delivery.

    Args:
        db: Async database session.
        email: Normalized email address.
        purpose: Declared intent, fixed for the life of the token.
        origin: Requester IP and user agent (audit only).
        now: Issuance time. Defaults to now.

    Returns:
        IssuedToken carrying the plain token and its expiry.

    Raises:
        AccountAlreadyExistsError: REGISTRATION for a taken email.
        AccountNotFoundError: LOGIN for an email with no active account.
    """
    account = await check_precondition(db, email=email, purpose=purpose)

    issued_at = now or datetime.now(UTC)
    ttl = timedelta(minutes=settings.magic_link_ttl_minutes)
    expires_at = issued_at + ttl
    token = generate_token()

    await MagicLinkRepository.create(
        db,
        email=email,
        token_hash=hash_token(token),
        purpose=purpose,
        created_at=issued_at,
        expires_at=expires_at,
        ip_address=origin.ip_address,
        user_agent=origin.user_agent or None,
    )
    logger.info("Issued %s magic link for %s", purpose.value, email)

    return IssuedToken(
        token=token,
        email=email,
        purpose=purpose,
        issued_at=issued_at,
        expires_at=expires_at,
        expires_in=int(ttl.total_seconds()),
        first_name=account.first_name if account is not None else None,
    )
