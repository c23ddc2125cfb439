"""Retention sweep for magic link token records.

Standalone script, meant for cron. Deletes token records that expired or
were used more than MAGIC_LINK_RETENTION_HOURS ago.

Usage:
    cd backend && python -m scripts.cleanup_magic_links
    cd backend && python -m scripts.cleanup_magic_links --retention-hours 72
"""

import argparse
import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.services.magic_link_cleanup import (
    MagicLinkCleanupResult,
    cleanup_stale_magic_links,
)

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--retention-hours",
        type=int,
        default=None,
        help="Override MAGIC_LINK_RETENTION_HOURS for this run",
    )
    args = parser.parse_args(argv)
    if args.retention_hours is not None and args.retention_hours <= 0:
        parser.error("--retention-hours must be positive")
    return args


async def run_cleanup(
    db: AsyncSession,
    retention_hours: int | None = None,
) -> MagicLinkCleanupResult:
    """Run one sweep and commit it."""
    retention = (
        timedelta(hours=retention_hours) if retention_hours is not None else None
    )
    result = await cleanup_stale_magic_links(db, retention=retention)
    await db.commit()
    return result


async def main(argv: list[str] | None = None) -> None:
    """CLI entry point: sweep the configured database."""
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from app.core.config import settings

    args = parse_args(argv)
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = create_async_engine(settings.database_url, echo=False)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with factory() as session:
            result = await run_cleanup(session, args.retention_hours)
    finally:
        await engine.dispose()

    logger.info(
        "Deleted %d magic link records older than %s",
        result.deleted,
        result.cutoff.isoformat(),
    )


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
