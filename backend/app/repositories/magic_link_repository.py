"""Repository for MagicLink token records.

The claim is a single conditional UPDATE so that exactly one concurrent
verification of a token can succeed. Everything else is plain CRUD.
"""

import uuid
from datetime import datetime, timedelta

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.magic_link import MagicLink, MagicLinkPurpose


class MagicLinkRepository:
    """Stateless repository for magic_links table operations.

    All methods are static, no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        token_hash: str,
        purpose: MagicLinkPurpose,
        created_at: datetime,
        expires_at: datetime,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> MagicLink:
        """Persist a freshly issued token.

        Args:
            db: Async database session.
            email: Normalized email the token is bound to.
            token_hash: SHA-256 hex digest of the plain token.
            purpose: Declared intent, fixed for the life of the token.
            created_at: Issuance timestamp.
            expires_at: Issuance timestamp plus TTL.
            ip_address: Requester IP (audit only).
            user_agent: Requester User-Agent (audit only).

        Returns:
            The created MagicLink.

        Raises:
            sqlalchemy.exc.IntegrityError: If the token hash collides.
        """
        link = MagicLink(
            email=email,
            token_hash=token_hash,
            purpose=purpose.value,
            created_at=created_at,
            expires_at=expires_at,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.add(link)
        await db.flush()
        return link

    @staticmethod
    async def claim(
        db: AsyncSession,
        *,
        token_hash: str,
        email: str,
        now: datetime,
    ) -> MagicLink | None:
        """Atomically mark a token as used if it is still redeemable.

        Issues ``UPDATE ... WHERE unused AND not expired RETURNING *``.
        Postgres row locking makes the predicate check and the write one
        step, so of N concurrent callers at most one gets a row back.

        Args:
            db: Async database session.
            token_hash: SHA-256 hex digest of the presented token.
            email: Normalized email presented with the token.
            now: Redemption timestamp, written to used_at.

        Returns:
            The claimed MagicLink, or None if nothing matched.
        """
        stmt = (
            update(MagicLink)
            .where(
                MagicLink.token_hash == token_hash,
                MagicLink.email == email,
                MagicLink.is_used.is_(False),
                MagicLink.used_at.is_(None),
                MagicLink.expires_at > now,
            )
            .values(is_used=True, used_at=now)
            .returning(MagicLink)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_token_hash(db: AsyncSession, token_hash: str) -> MagicLink | None:
        """Fetch a token record by hash.

        Args:
            db: Async database session.
            token_hash: SHA-256 hex digest of the plain token.

        Returns:
            MagicLink if found, None otherwise.
        """
        stmt = select(MagicLink).where(MagicLink.token_hash == token_hash)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def link_user(
        db: AsyncSession,
        link_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> None:
        """Record which user a redeemed token resolved to."""
        stmt = (
            update(MagicLink).where(MagicLink.id == link_id).values(user_id=user_id)
        )
        await db.execute(stmt)

    @staticmethod
    async def delete_for_email(db: AsyncSession, email: str) -> int:
        """Delete every token issued for an email.

        Args:
            db: Async database session.
            email: Normalized email address.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(MagicLink).where(MagicLink.email == email)
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def delete_stale(
        db: AsyncSession,
        *,
        now: datetime,
        retention: timedelta,
    ) -> int:
        """Delete tokens that expired or were used before the retention cutoff.

        Args:
            db: Async database session.
            now: Reference time.
            retention: How long expired or used tokens are kept for audit.

        Returns:
            Number of deleted rows.
        """
        cutoff = now - retention
        stmt = delete(MagicLink).where(
            or_(
                MagicLink.expires_at < cutoff,
                MagicLink.used_at < cutoff,
            )
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
