"""Purpose resolver for magic link requests.

Decides, per declared purpose, whether the target email must already map
to an account (LOGIN) or must not (REGISTRATION), and which user-lifecycle
branch applies once a token has been redeemed.

WHY CHECK AT ISSUANCE:
- A token that can never succeed is never sent
- Users get a specific error on the send path instead of a dead link
- Cost: account existence is observable on the send path. The wire
  response can be unified with MAGIC_LINK_DISCLOSE_ACCOUNT_STATE=false.
"""

from enum import Enum
from typing import assert_never

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AccountAlreadyExistsError, AccountNotFoundError
from app.models.magic_link import MagicLinkPurpose
from app.models.user import User
from app.repositories.user_repository import UserRepository


class UserAction(str, Enum):
    """What the User Resolver does after a successful claim."""

    CREATE_USER = "create_user"
    LOAD_USER = "load_user"


async def check_precondition(
    db: AsyncSession,
    *,
    email: str,
    purpose: MagicLinkPurpose,
) -> User | None:
    """Verify the account state of ``email`` fits ``purpose``. Read-only.

    REGISTRATION is refused when any user row exists for the email,
    deactivated accounts included, since the unique email would make the
    later insert fail anyway. LOGIN requires an active account.

    Args:
        db: Async database session.
        email: Normalized email address.
        purpose: Declared intent of the request.

    Returns:
        The active account for LOGIN, None for REGISTRATION.

    Raises:
        AccountAlreadyExistsError: REGISTRATION for a taken email.
        AccountNotFoundError: LOGIN for an email with no active account.
    """
    match purpose:
        case MagicLinkPurpose.REGISTRATION:
            if await UserRepository.get_by_email(db, email) is not None:
                raise AccountAlreadyExistsError()
            return None
        case MagicLinkPurpose.LOGIN:
            user = await UserRepository.get_active_by_email(db, email)
            if user is None:
                raise AccountNotFoundError()
            return user
        case _:
            assert_never(purpose)


def resolve_post_redemption(purpose: MagicLinkPurpose) -> UserAction:
    """Map a redeemed token's purpose to the user-lifecycle branch."""
    match purpose:
        case MagicLinkPurpose.REGISTRATION:
            return UserAction.CREATE_USER
        case MagicLinkPurpose.LOGIN:
            return UserAction.LOAD_USER
        case _:
            assert_never(purpose)
