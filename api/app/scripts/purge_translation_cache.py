"""
Purge expired entries from the translation cache.

Intended for cron-driven sweeps when the in-process maintenance task is
disabled (TRANSLATION_CACHE_PURGE_INTERVAL_HOURS=0).

Usage:
    python -m app.scripts.purge_translation_cache
    python -m app.scripts.purge_translation_cache --retention-days 7 --dry-run
"""

import argparse
import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from app.core.config import get_settings  # noqa: E402
from app.core.exceptions import CacheError  # noqa: E402
from app.services.translation.cache import TranslationCache  # noqa: E402

logger = logging.getLogger(__name__)


async def purge(db_path: str, retention_days: int, dry_run: bool = False) -> int:
    """
    Remove (or, with dry_run, count) entries older than retention_days.

    Args:
        db_path: Path to the translation cache database
        retention_days: Entries created before now - retention_days are expired
        dry_run: Only count the expired entries

    Returns:
        Number of expired entries removed or found
    """
    retention = timedelta(days=retention_days)
    cache = TranslationCache(db_path, retention=retention)
    try:
        total = await cache.count()
        if dry_run:
            expired = await cache.count_expired(retention)
            logger.info(
                f"[dry-run] {expired} of {total} cached translations are older than "
                f"{retention_days} days"
            )
            return expired

        removed = await cache.purge_expired(retention)
        logger.info(f"Removed {removed} of {total} cached translations")
        return removed
    finally:
        cache.close()


def main(argv: Optional[List[str]] = None) -> int:
    settings = get_settings()

    parser = argparse.ArgumentParser(
        description="Purge expired entries from the translation cache"
    )
    parser.add_argument(
        "--retention-days",
        type=int,
        default=settings.TRANSLATION_CACHE_RETENTION_DAYS,
        help="Remove entries older than this many days (default: %(default)s)",
    )
    parser.add_argument(
        "--db-path",
        default=settings.TRANSLATION_CACHE_DB_PATH,
        help="Translation cache database (default: %(default)s)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only report how many entries would be removed",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.retention_days < 1:
        parser.error("--retention-days must be >= 1")

    if not Path(args.db_path).exists():
        logger.error(f"Translation cache not found: {args.db_path}")
        return 1

    try:
        asyncio.run(purge(args.db_path, args.retention_days, dry_run=args.dry_run))
    except CacheError as e:
        logger.error(f"Purge failed: {e.detail}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
