"""Retention cleanup for magic link token records.

Token records are immutable once redeemed or expired and are kept for
audit for MAGIC_LINK_RETENTION_HOURS. This sweep hard-deletes anything
older. It is routine housekeeping, run from
``scripts/cleanup_magic_links.py`` (cron) or the development-only
cleanup endpoint.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import APIError
from app.repositories.magic_link_repository import MagicLinkRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MagicLinkCleanupResult:
    """Result of a retention sweep.

    Attributes:
        deleted: Number of token records deleted.
        cutoff: Records expired or used before this instant were deleted.
    """

    deleted: int
    cutoff: datetime


class CleanupError(APIError):
    """Raised when a cleanup operation fails at the database level."""

    def __init__(self, message: str) -> None:
        super().__init__(
            code="CLEANUP_ERROR",
            message=message,
            status_code=500,
        )


async def cleanup_stale_magic_links(
    db: AsyncSession,
    *,
    now: datetime | None = None,
    retention: timedelta | None = None,
) -> MagicLinkCleanupResult:
    """Delete token records expired or used before the retention cutoff.

    Pending tokens are never touched: a token still inside its validity
    window cannot be older than the cutoff.

    Args:
        db: Database session. Caller commits.
        now: Reference time. Defaults to now.
        retention: Retention window. Defaults to MAGIC_LINK_RETENTION_HOURS.

    Returns:
        MagicLinkCleanupResult with the deletion count.

    Raises:
        CleanupError: If the database operation fails.
    """
    at = now or datetime.now(UTC)
    window = retention or timedelta(hours=settings.magic_link_retention_hours)
    try:
        deleted = await MagicLinkRepository.delete_stale(
            db, now=at, retention=window
        )
    except SQLAlchemyError as exc:
        logger.error("Magic link cleanup failed: %s", exc)
        raise CleanupError("Magic link cleanup failed") from exc

    logger.info("Magic link cleanup removed %d stale records", deleted)
    return MagicLinkCleanupResult(deleted=deleted, cutoff=at - window)
