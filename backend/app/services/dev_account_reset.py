"""Development-only account reset for manual magic link testing.

Lets a developer reuse one mailbox for both flows: REGISTRATION wipes the
account so it can be registered again, LOGIN makes sure an active
account exists to sign in to. Outstanding tokens for the email are always
deleted.

Gated by DEV_ACCOUNT_RESET_ENABLED, which the settings validator refuses
in production. Never calls into the issuance or redemption services.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.email_normalization import derive_first_name, normalize_email
from app.core.errors import NotFoundError
from app.models.magic_link import MagicLinkPurpose
from app.models.user import UserType
from app.repositories.magic_link_repository import MagicLinkRepository
from app.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DevResetResult:
    """What the reset changed."""

    email: str
    purpose: MagicLinkPurpose
    deleted_tokens: int
    deleted_user: bool
    created_user: bool
    reactivated_user: bool = False


def ensure_dev_reset_enabled() -> None:
    """Raise NotFoundError unless the dev reset is switched on.

    Answers like an unknown route so production does not advertise it.
    """
    if not settings.dev_account_reset_enabled or settings.is_production:
        raise NotFoundError("Resource")


async def reset_account_for_testing(
    db: AsyncSession,
    *,
    email: str,
    purpose: MagicLinkPurpose,
) -> DevResetResult:
    """Prepare an email for a fresh magic link test run.

    Args:
        db: Database session. Caller commits.
        email: Raw email address.
        purpose: Flow about to be tested.

    Returns:
        DevResetResult describing the changes.

    Raises:
        NotFoundError: Dev reset is disabled.
        ValidationError: Malformed email.
    """
    ensure_dev_reset_enabled()
    normalized = normalize_email(email)

    deleted_tokens = await MagicLinkRepository.delete_for_email(db, normalized)
    deleted_user = False
    created_user = False
    reactivated_user = False

    if purpose is MagicLinkPurpose.REGISTRATION:
        deleted_user = await UserRepository.delete_by_email(db, normalized) > 0
    else:
        existing = await UserRepository.get_by_email(db, normalized)
        if existing is None:
            await UserRepository.create(
                db,
                email=normalized,
                first_name=derive_first_name(normalized),
                user_type=UserType.CONSUMER,
                is_verified=True,
                email_verified_at=datetime.now(UTC),
            )
            created_user = True
        elif not existing.is_active:
            await UserRepository.update(db, existing.id, is_active=True)
            reactivated_user = True

    logger.warning(
        "Dev account reset for %s (purpose=%s, tokens=%d, deleted_user=%s, "
        "created_user=%s, reactivated_user=%s)",
        normalized,
        purpose.value,
        deleted_tokens,
        deleted_user,
        created_user,
        reactivated_user,
    )
    return DevResetResult(
        email=normalized,
        purpose=purpose,
        deleted_tokens=deleted_tokens,
        deleted_user=deleted_user,
        created_user=created_user,
        reactivated_user=reactivated_user,
    )
