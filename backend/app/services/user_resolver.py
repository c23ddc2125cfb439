"""User resolver for redeemed magic links.

Runs after a token has been claimed. REGISTRATION creates a verified
user, LOGIN loads the existing one and records the sign-in. Either way
the claimed token is linked to the resolved user.

The LOGIN branch self-heals when the account disappeared between issuance
and redemption: a placeholder account is created instead of discarding an
already consumed token. That branch is logged as
``magic_link.login_user_missing`` at WARNING and indicates a data
consistency problem to investigate.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import assert_never

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.email_normalization import derive_first_name
from app.core.errors import ForbiddenError, InternalError
from app.models.user import User, UserType
from app.repositories.magic_link_repository import MagicLinkRepository
from app.repositories.user_repository import UserRepository
from app.services.purpose_resolver import UserAction, resolve_post_redemption
from app.services.redemption_engine import ClaimedToken

logger = structlog.get_logger()


@dataclass(frozen=True)
class ResolvedUser:
    """Public projection of a user. Never carries internal columns."""

    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    user_type: str
    is_verified: bool

    @classmethod
    def from_model(cls, user: User) -> "ResolvedUser":
        """Project an ORM user."""
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            user_type=user.user_type,
            is_verified=user.is_verified,
        )


@dataclass(frozen=True)
class UserResolution:
    """Resolved user plus whether this redemption created it."""

    user: ResolvedUser
    is_new_user: bool


async def _create_verified_user(
    db: AsyncSession,
    claimed: ClaimedToken,
) -> User:
    return await UserRepository.create(
        db,
        email=claimed.email,
        first_name=derive_first_name(claimed.email),
        last_name="",
        user_type=UserType.CONSUMER,
        is_verified=True,
        email_verified_at=claimed.used_at,
        last_login_at=claimed.used_at,
        last_login_ip=claimed.ip_address,
    )


async def _create_or_load(
    db: AsyncSession,
    claimed: ClaimedToken,
    *,
    race_event: str,
) -> tuple[User, bool]:
    """Create the account, or load it if a concurrent redemption won.

    The insert runs in a savepoint so a unique-email violation leaves the
    outer transaction usable for the reload.
    """
    try:
        async with db.begin_nested():
            user = await _create_verified_user(db, claimed)
    except IntegrityError:
        existing = await UserRepository.get_by_email(db, claimed.email)
        if existing is None:
            raise
        logger.info(
            race_event,
            email=claimed.email,
            magic_link_id=str(claimed.id),
        )
        return await _login_existing(db, existing, claimed), False
    return user, True


async def _login_existing(
    db: AsyncSession,
    user: User,
    claimed: ClaimedToken,
) -> User:
    if not user.is_active:
        raise ForbiddenError("This account has been deactivated")

    fields: dict[str, str | datetime | bool | None] = {
        "last_login_at": claimed.used_at,
        "last_login_ip": claimed.ip_address,
    }
    if not user.is_verified:
        fields["is_verified"] = True
        fields["email_verified_at"] = claimed.used_at

    updated = await UserRepository.update(db, user.id, **fields)
    if updated is None:
        raise InternalError()
    return updated


async def _login(db: AsyncSession, claimed: ClaimedToken) -> tuple[User, bool]:
    """Load the account and record the sign-in, self-healing if it vanished."""
    user = await UserRepository.get_by_email(db, claimed.email)
    if user is None:
        logger.warning(
            "magic_link.login_user_missing",
            email=claimed.email,
            magic_link_id=str(claimed.id),
        )
        return await _create_or_load(
            db, claimed, race_event="magic_link.login_recreate_race"
        )
    return await _login_existing(db, user, claimed), False


async def resolve_user(db: AsyncSession, claimed: ClaimedToken) -> UserResolution:
    """Create or load the user for a claimed token and link it.

    The caller owns the transaction and must commit.

    Args:
        db: Async database session.
        claimed: Token this caller just claimed.

    Returns:
        UserResolution with the public user projection.

    Raises:
        ForbiddenError: LOGIN for a deactivated account.
    """
    action = resolve_post_redemption(claimed.purpose)
    match action:
        case UserAction.CREATE_USER:
            user, is_new_user = await _create_or_load(
                db, claimed, race_event="magic_link.registration_race"
            )
        case UserAction.LOAD_USER:
            user, is_new_user = await _login(db, claimed)
        case _:
            assert_never(action)

    await MagicLinkRepository.link_user(db, claimed.id, user.id)
    return UserResolution(user=ResolvedUser.from_model(user), is_new_user=is_new_user)
