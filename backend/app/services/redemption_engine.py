"""Redemption engine for magic link tokens.

The claim is one conditional UPDATE on the token row: lookup by hash,
email match, unused, unexpired, and the write of used_at all happen in a
single statement. Of any number of concurrent redemptions of the same
token, at most one gets a row back.

When the claim matches nothing, a secondary read classifies the failure
(invalid, expired, already used) for error messages and telemetry only.
That read can race with other writers; it never decides whether the
redemption succeeded.
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    TokenAlreadyUsedError,
    TokenExpiredError,
    TokenInvalidError,
    TokenRedemptionError,
)
from app.models.magic_link import MagicLink, MagicLinkPurpose
from app.repositories.magic_link_repository import MagicLinkRepository
from app.services.token_issuer import hash_token

logger = structlog.get_logger()


@dataclass(frozen=True)
class ClaimedToken:
    """A token record that this caller successfully claimed.

    Attributes:
        id: Token record ID.
        email: Normalized email the token was issued for.
        purpose: Purpose fixed at issuance.
        used_at: Claim timestamp.
        ip_address: Requester IP at redemption time, if known.
    """

    id: uuid.UUID
    email: str
    purpose: MagicLinkPurpose
    used_at: datetime
    ip_address: str | None = None


def classify_failure(
    link: MagicLink | None,
    *,
    email: str,
    now: datetime,
) -> TokenRedemptionError:
    """Pick the user-facing error for a claim that matched no row.

    Args:
        link: Record found by hash in the secondary read, or None.
        email: Normalized email presented with the token.
        now: Redemption timestamp.

    Returns:
        The most specific TokenRedemptionError the record supports.
    """
    if link is None or link.email != email:
        return TokenInvalidError()
    if link.is_used or link.used_at is not None:
        return TokenAlreadyUsedError()
    if link.expires_at <= now:
        return TokenExpiredError()
    # Row looked redeemable on re-read: a concurrent writer changed it.
    return TokenInvalidError()


async def redeem_token(
    db: AsyncSession,
    *,
    token: str,
    email: str,
    ip_address: str | None = None,
    now: datetime | None = None,
) -> ClaimedToken:
    """Atomically claim a token.

    The caller owns the transaction and must commit to make the claim
    durable.

    Args:
        db: Async database session.
        token: Plain token presented by the caller.
        email: Normalized email presented with the token.
        ip_address: Requester IP, carried through for last-login metadata.
        now: Redemption time. Defaults to now.

    Returns:
        ClaimedToken for the claimed record.

    Raises:
        TokenInvalidError: Unknown token or email mismatch.
        TokenExpiredError: Token validity window has passed.
        TokenAlreadyUsedError: Token was already redeemed.
    """
    redeemed_at = now or datetime.now(UTC)
    token_hash = hash_token(token)

    link = await MagicLinkRepository.claim(
        db, token_hash=token_hash, email=email, now=redeemed_at
    )
    if link is None:
        existing = await MagicLinkRepository.get_by_token_hash(db, token_hash)
        error = classify_failure(existing, email=email, now=redeemed_at)
        logger.info("magic_link.redeem_failed", email=email, reason=error.reason)
        raise error

    logger.info("magic_link.claimed", email=email, magic_link_id=str(link.id))
    return ClaimedToken(
        id=link.id,
        email=link.email,
        purpose=MagicLinkPurpose(link.purpose),
        used_at=redeemed_at,
        ip_address=ip_address,
    )
