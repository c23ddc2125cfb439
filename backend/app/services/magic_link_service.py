"""Magic link send / verify / health / status orchestration.

Send path: normalize -> per-identity rate limit -> purpose precondition ->
issue token -> commit -> deliver.

Verify path: normalize -> per-identity rate limit -> atomic claim ->
commit -> resolve user -> commit -> mint session.

Routers call these functions and only translate the outcomes into
response models.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import SessionToken, mint_session
from app.core.config import settings
from app.core.database import ping
from app.core.email import send_magic_link_email
from app.core.email_normalization import normalize_email
from app.core.errors import (
    NotFoundError,
    PreconditionFailedError,
    RateLimitedError,
    TokenRedemptionError,
    ValidationError,
)
from app.core.rate_limiting import (
    IdentityRateLimiter,
    RateLimitPath,
    build_identity,
    identity_limiter,
)
from app.core.request_origin import RequestOrigin
from app.models.magic_link import MagicLinkPurpose, MagicLinkState
from app.repositories.magic_link_repository import MagicLinkRepository
from app.services.redemption_engine import redeem_token
from app.services.token_issuer import hash_token, issue_token
from app.services.user_resolver import ResolvedUser, resolve_user

logger = structlog.get_logger()

# Longest token accepted on the verify path (token_urlsafe(32) is 43 chars)
_MAX_TOKEN_LENGTH = 256

SENT_MESSAGE = "Magic link sent. Check your email to continue."
GENERIC_SENT_MESSAGE = "If the address is eligible, a magic link has been sent."
DELIVERY_FAILED_WARNING = "DELIVERY_FAILED"


class DeliveryStatus(str, Enum):
    """Outcome of handing the link to the delivery collaborator."""

    SENT = "sent"
    FAILED = "failed"


class HealthState(str, Enum):
    """Per-dependency health."""

    OK = "ok"
    ERROR = "error"


@dataclass(frozen=True)
class SendOutcome:
    """Public-safe result of a send request. Never carries the token.

    Attributes:
        expires_in: Token TTL in seconds.
        message: Human-readable status line.
        delivery_status: SENT or FAILED. None when account state is not
            disclosed, so every outcome looks the same on the wire.
        warning: DELIVERY_FAILED when the token exists but was not delivered.
    """

    expires_in: int
    message: str
    delivery_status: DeliveryStatus | None = None
    warning: str | None = None


@dataclass(frozen=True)
class VerifyOutcome:
    """Result of a successful redemption."""

    user: ResolvedUser
    session: SessionToken
    is_new_user: bool


@dataclass(frozen=True)
class HealthReport:
    """Liveness of the store and the delivery collaborator."""

    store: HealthState
    delivery: HealthState

    @property
    def healthy(self) -> bool:
        return self.store is HealthState.OK and self.delivery is HealthState.OK


async def _enforce_rate_limit(
    limiter: IdentityRateLimiter,
    path: RateLimitPath,
    *,
    origin: RequestOrigin,
    email: str,
) -> None:
    identity = build_identity(origin.ip_address, email)
    decision = await limiter.check_and_increment(path, identity)
    if not decision.allowed:
        logger.warning(
            "magic_link.rate_limited",
            path=path.value,
            email=email,
            ip_address=origin.ip_address,
            retry_after=decision.retry_after,
        )
        raise RateLimitedError(decision.retry_after)


async def send_magic_link(
    db: AsyncSession,
    *,
    email: str,
    purpose: MagicLinkPurpose,
    origin: RequestOrigin,
    limiter: IdentityRateLimiter = identity_limiter,
) -> SendOutcome:
    """Issue a magic link and hand it to delivery.

    The token is committed before delivery is attempted. A delivery
    failure leaves the token valid and is reported as a warning.

    Args:
        db: Async database session.
        email: Raw email from the caller.
        purpose: Declared intent.
        origin: Requester IP and user agent.
        limiter: Per-identity limiter (send bucket).

    Returns:
        SendOutcome with expiry and delivery state.

    Raises:
        ValidationError: Malformed email.
        RateLimitedError: Send window exhausted for this identity.
        PreconditionFailedError: Account state does not fit the purpose
            (only when account state is disclosed).
    """
    normalized = normalize_email(email)
    await _enforce_rate_limit(
        limiter, RateLimitPath.SEND, origin=origin, email=normalized
    )

    disclose = settings.magic_link_disclose_account_state
    try:
        issued = await issue_token(
            db, email=normalized, purpose=purpose, origin=origin
        )
    except PreconditionFailedError as exc:
        logger.info(
            "magic_link.precondition_failed",
            email=normalized,
            purpose=purpose.value,
            code=exc.code,
        )
        if disclose:
            raise
        return SendOutcome(
            expires_in=settings.magic_link_ttl_minutes * 60,
            message=GENERIC_SENT_MESSAGE,
        )

    await db.commit()
    logger.info(
        "magic_link.issued",
        email=normalized,
        purpose=purpose.value,
        expires_at=issued.expires_at.isoformat(),
    )

    delivered = await send_magic_link_email(
        to_email=normalized,
        token=issued.token,
        purpose=purpose.value,
        first_name=issued.first_name,
    )
    if not delivered:
        logger.warning(
            "magic_link.delivery_failed", email=normalized, purpose=purpose.value
        )

    if not disclose:
        return SendOutcome(expires_in=issued.expires_in, message=GENERIC_SENT_MESSAGE)
    if delivered:
        return SendOutcome(
            expires_in=issued.expires_in,
            message=SENT_MESSAGE,
            delivery_status=DeliveryStatus.SENT,
        )
    return SendOutcome(
        expires_in=issued.expires_in,
        message="Magic link created but the email could not be delivered.",
        delivery_status=DeliveryStatus.FAILED,
        warning=DELIVERY_FAILED_WARNING,
    )


async def verify_magic_link(
    db: AsyncSession,
    *,
    token: str,
    email: str,
    origin: RequestOrigin,
    limiter: IdentityRateLimiter = identity_limiter,
) -> VerifyOutcome:
    """Redeem a magic link and mint a session.

    The claim is committed before the user is resolved, so a token is
    spent even if user resolution fails afterwards.

    Args:
        db: Async database session.
        token: Plain token from the link.
        email: Raw email from the link.
        origin: Requester IP and user agent.
        limiter: Per-identity limiter (verify bucket).

    Returns:
        VerifyOutcome with the user projection and session credential.

    Raises:
        ValidationError: Malformed email or token.
        RateLimitedError: Verify window exhausted for this identity.
        TokenRedemptionError: Token could not be claimed. Collapsed to the
            generic MAGIC_LINK_INVALID error unless verbose errors are on.
        ForbiddenError: LOGIN for a deactivated account.
    """
    normalized = normalize_email(email)
    token = (token or "").strip()
    if not token or len(token) > _MAX_TOKEN_LENGTH:
        raise ValidationError("Token is required")

    await _enforce_rate_limit(
        limiter, RateLimitPath.VERIFY, origin=origin, email=normalized
    )

    try:
        claimed = await redeem_token(
            db, token=token, email=normalized, ip_address=origin.ip_address
        )
    except TokenRedemptionError as exc:
        if settings.magic_link_verbose_verify_errors:
            raise
        raise exc.to_generic() from exc
    await db.commit()

    resolution = await resolve_user(db, claimed)
    await db.commit()

    session = mint_session(
        user_id=resolution.user.id, user_type=resolution.user.user_type
    )
    logger.info(
        "magic_link.redeemed",
        email=normalized,
        purpose=claimed.purpose.value,
        user_id=str(resolution.user.id),
        is_new_user=resolution.is_new_user,
    )
    return VerifyOutcome(
        user=resolution.user,
        session=session,
        is_new_user=resolution.is_new_user,
    )


async def check_health(
    db: AsyncSession,
    *,
    limiter: IdentityRateLimiter = identity_limiter,
) -> HealthReport:
    """Probe the token store, the counter store and delivery configuration.

    Read-only. Store errors are reported as ERROR, never raised.
    """
    store = HealthState.OK
    try:
        if not await ping(db):
            store = HealthState.ERROR
    except (SQLAlchemyError, OSError) as exc:
        logger.error("magic_link.health_store_failed", error=type(exc).__name__)
        store = HealthState.ERROR

    if store is HealthState.OK and not await limiter.check_storage():
        store = HealthState.ERROR

    delivery = (
        HealthState.OK if settings.email_delivery_configured else HealthState.ERROR
    )
    return HealthReport(store=store, delivery=delivery)


@dataclass(frozen=True)
class TokenStatus:
    """Read-only view of a token record for development tooling."""

    state: MagicLinkState
    purpose: MagicLinkPurpose
    email: str
    created_at: datetime
    expires_at: datetime
    used_at: datetime | None
    remaining_seconds: int


async def get_token_status(
    db: AsyncSession,
    token: str,
    *,
    now: datetime | None = None,
) -> TokenStatus:
    """Describe a token without redeeming it.

    Raises:
        NotFoundError: No record for this token.
    """
    link = await MagicLinkRepository.get_by_token_hash(db, hash_token(token))
    if link is None:
        raise NotFoundError("Magic link")

    at = now or datetime.now(UTC)
    state = link.state_at(at)
    remaining = (
        max(0, int((link.expires_at - at).total_seconds()))
        if state is MagicLinkState.PENDING
        else 0
    )
    return TokenStatus(
        state=state,
        purpose=MagicLinkPurpose(link.purpose),
        email=link.email,
        created_at=link.created_at,
        expires_at=link.expires_at,
        used_at=link.used_at,
        remaining_seconds=remaining,
    )
