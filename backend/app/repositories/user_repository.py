"""Repository for User CRUD operations.

Provides database access for the users table. All lookups are keyed by
the normalized (lower-cased) email.
"""

import uuid
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User, UserType

# Fields that may be updated via UserRepository.update().
# Security: Never add 'id', 'email', 'created_at', or 'updated_at'.
# - id: primary key, immutable
# - email: unique identity, requires dedicated flow with re-verification
# - created_at/updated_at: server-managed timestamps
# Security: user_type is excluded to prevent mass-assignment role changes.
_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "first_name",
        "last_name",
        "is_verified",
        "email_verified_at",
        "is_active",
        "last_login_at",
        "last_login_ip",
    }
)


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static, no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: UUID primary key.

        Returns:
            User if found, None otherwise.
        """
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch a user by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            User if found (active or not), None otherwise.
        """
        stmt = select(User).where(User.email == email.strip().lower())
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_active_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch an active user by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            User if an active account exists, None otherwise.
        """
        stmt = select(User).where(
            User.email == email.strip().lower(),
            User.is_active.is_(True),
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        first_name: str = "",
        last_name: str = "",
        user_type: UserType = UserType.CONSUMER,
        is_verified: bool = False,
        email_verified_at: datetime | None = None,
        last_login_at: datetime | None = None,
        last_login_ip: str | None = None,
    ) -> User:
        """Create a new user.

        Email is normalized to lowercase before storage.

        Args:
            db: Async database session.
            email: User email address.
            first_name: Given name.
            last_name: Family name.
            user_type: Account role.
            is_verified: Whether the email has been verified.
            email_verified_at: Timestamp when email was verified.
            last_login_at: Sign-in timestamp when created by a sign-in flow.
            last_login_ip: Sign-in IP when created by a sign-in flow.

        Returns:
            Created User with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If email already exists.
        """
        user = User(
            email=email.strip().lower(),
            first_name=first_name,
            last_name=last_name,
            user_type=user_type.value,
            is_verified=is_verified,
            email_verified_at=email_verified_at,
            last_login_at=last_login_at,
            last_login_ip=last_login_ip,
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def update(
        db: AsyncSession,
        user_id: uuid.UUID,
        **kwargs: str | datetime | bool | None,
    ) -> User | None:
        """Update user fields.

        Only fields in _UPDATABLE_FIELDS are allowed. Unknown field names
        raise ValueError.

        Args:
            db: Async database session.
            user_id: UUID of the user to update.
            **kwargs: Field names and values to update.

        Returns:
            Updated User if found, None if user does not exist.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        unknown = set(kwargs) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        user = await db.get(User, user_id)
        if user is None:
            return None

        for field, value in kwargs.items():
            setattr(user, field, value)

        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def delete_by_email(db: AsyncSession, email: str) -> int:
        """Hard-delete the user with this email (dev account reset only).

        Args:
            db: Async database session.
            email: Email address of the user to delete.

        Returns:
            Number of deleted rows (0 or 1).
        """
        stmt = delete(User).where(User.email == email.strip().lower())
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
