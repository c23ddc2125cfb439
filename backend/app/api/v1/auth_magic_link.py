"""Magic link + session endpoints.

Passwordless sign-in and registration via single-use email links.

Endpoints:
- POST /auth/magic-link/send: issue a magic link for LOGIN or REGISTRATION
- POST /auth/magic-link/verify: redeem a token, mint a session credential
- GET /auth/magic-link/health: store and delivery liveness
- GET /auth/me: return the user behind a session credential
- GET /auth/magic-link/status/{token}: inspect a token (non-production)
- POST /auth/magic-link/cleanup: retention sweep (non-production)
- POST /auth/magic-link/dev-reset: reset a test account (dev flag only)
"""

from typing import Annotated

from fastapi import APIRouter, Path, Request, Response

from app.api.deps import CurrentUser, DbSession, IdentityLimiter, Origin
from app.core.config import settings
from app.core.errors import NotFoundError
from app.core.rate_limiting import limiter
from app.core.responses import DataResponse
from app.schemas.magic_link import (
    CleanupResponse,
    DevResetRequest,
    DevResetResponse,
    HealthChecks,
    HealthResponse,
    SendMagicLinkRequest,
    SendMagicLinkResponse,
    TokenStatusResponse,
    UserResponse,
    VerifyMagicLinkRequest,
    VerifyMagicLinkResponse,
)
from app.services.dev_account_reset import reset_account_for_testing
from app.services.magic_link_cleanup import cleanup_stale_magic_links
from app.services.magic_link_service import (
    check_health,
    get_token_status,
    send_magic_link,
    verify_magic_link,
)

router = APIRouter()


def _ip_ceiling() -> str:
    return settings.rate_limit_ip_ceiling


def _ensure_not_production() -> None:
    if settings.is_production:
        raise NotFoundError("Resource")


# ===================================================================
# POST /auth/magic-link/send
# ===================================================================


@router.post("/magic-link/send")
@limiter.limit(_ip_ceiling)
async def send_magic_link_endpoint(
    request: Request,  # noqa: ARG001
    body: SendMagicLinkRequest,
    db: DbSession,
    origin: Origin,
    identity_limiter: IdentityLimiter,
) -> DataResponse[SendMagicLinkResponse]:
    """Issue a magic link and email it.

    Never echoes the token. Rate limited per identity (IP + email) and
    per IP. REGISTRATION for a taken email returns 409
    ACCOUNT_ALREADY_EXISTS, LOGIN for an unknown email returns 404
    ACCOUNT_NOT_FOUND, unless account state disclosure is turned off.

    A delivery failure still returns 200, with deliveryStatus "failed"
    and warning DELIVERY_FAILED: the token stays valid.
    """
    outcome = await send_magic_link(
        db,
        email=body.email,
        purpose=body.purpose,
        origin=origin,
        limiter=identity_limiter,
    )
    return DataResponse(
        data=SendMagicLinkResponse(
            message=outcome.message,
            expires_in=outcome.expires_in,
            delivery_status=(
                outcome.delivery_status.value if outcome.delivery_status else None
            ),
            warning=outcome.warning,
        )
    )


# ===================================================================
# POST /auth/magic-link/verify
# ===================================================================


@router.post("/magic-link/verify")
@limiter.limit(_ip_ceiling)
async def verify_magic_link_endpoint(
    request: Request,  # noqa: ARG001
    body: VerifyMagicLinkRequest,
    db: DbSession,
    origin: Origin,
    identity_limiter: IdentityLimiter,
) -> DataResponse[VerifyMagicLinkResponse]:
    """Redeem a magic link and return a session credential.

    Rate limited independently of send. Any redemption failure answers
    400 MAGIC_LINK_INVALID "Invalid or expired magic link"; the specific
    reason is only logged.
    """
    outcome = await verify_magic_link(
        db,
        token=body.token,
        email=body.email,
        origin=origin,
        limiter=identity_limiter,
    )
    user = outcome.user
    return DataResponse(
        data=VerifyMagicLinkResponse(
            user=UserResponse(
                id=user.id,
                email=user.email,
                first_name=user.first_name,
                last_name=user.last_name,
                user_type=user.user_type,
                is_verified=user.is_verified,
            ),
            session_token=outcome.session.token,
            is_new_user=outcome.is_new_user,
            expires_in=outcome.session.expires_in,
        )
    )


# ===================================================================
# GET /auth/magic-link/health
# ===================================================================


@router.get("/magic-link/health")
async def magic_link_health(
    response: Response,
    db: DbSession,
    identity_limiter: IdentityLimiter,
) -> DataResponse[HealthResponse]:
    """Liveness of the token store and the delivery collaborator.

    No side effects. Answers 503 when any check fails.
    """
    report = await check_health(db, limiter=identity_limiter)
    if not report.healthy:
        response.status_code = 503
    return DataResponse(
        data=HealthResponse(
            status="healthy" if report.healthy else "unhealthy",
            checks=HealthChecks(
                store=report.store.value,
                delivery=report.delivery.value,
            ),
        )
    )


# ===================================================================
# GET /auth/me
# ===================================================================


@router.get("/me")
async def get_me(user: CurrentUser) -> DataResponse[UserResponse]:
    """Return the user behind the bearer session credential.

    Returns 401 if the credential is missing, invalid, or expired.
    """
    return DataResponse(
        data=UserResponse(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            user_type=user.user_type,
            is_verified=user.is_verified,
        )
    )


# ===================================================================
# Development tooling
# ===================================================================


@router.get("/magic-link/status/{token}")
async def magic_link_status(
    token: Annotated[str, Path(min_length=1, max_length=256)],
    db: DbSession,
) -> DataResponse[TokenStatusResponse]:
    """Inspect a token without redeeming it. 404 in production."""
    _ensure_not_production()
    status = await get_token_status(db, token)
    return DataResponse(
        data=TokenStatusResponse(
            state=status.state,
            purpose=status.purpose,
            email=status.email,
            created_at=status.created_at,
            expires_at=status.expires_at,
            used_at=status.used_at,
            remaining_seconds=status.remaining_seconds,
        )
    )


@router.post("/magic-link/cleanup")
async def magic_link_cleanup(db: DbSession) -> DataResponse[CleanupResponse]:
    """Run the retention sweep now. 404 in production (use the cron script)."""
    _ensure_not_production()
    result = await cleanup_stale_magic_links(db)
    await db.commit()
    return DataResponse(
        data=CleanupResponse(deleted=result.deleted, cutoff=result.cutoff)
    )


@router.post("/magic-link/dev-reset")
async def magic_link_dev_reset(
    body: DevResetRequest,
    db: DbSession,
) -> DataResponse[DevResetResponse]:
    """Reset a test account. 404 unless DEV_ACCOUNT_RESET_ENABLED."""
    result = await reset_account_for_testing(
        db, email=body.email, purpose=body.purpose
    )
    await db.commit()
    return DataResponse(
        data=DevResetResponse(
            email=result.email,
            purpose=result.purpose,
            deleted_tokens=result.deleted_tokens,
            deleted_user=result.deleted_user,
            created_user=result.created_user,
            reactivated_user=result.reactivated_user,
        )
    )
