"""
SQLite-backed translation cache.

One row per (source_text, source_language, target_language). Reads bump the
usage counters atomically, writes are UPSERTs (last write wins), and the table
is kept below a configurable size by evicting the least used entries.

All public coroutines run the blocking SQLite work in a worker thread via
asyncio.to_thread; a single connection guarded by a threading.Lock serializes
access.
"""

import asyncio
import logging
import math
import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from app.core.exceptions import CacheError
from app.metrics.translation_metrics import (
    cache_evictions_total,
    cache_lookups_total,
    cache_purged_total,
)
from app.models.translation import CachedTranslation, QualityAssessment

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(days=30)
DEFAULT_MAX_ENTRIES = 10000
DEFAULT_EVICTION_FRACTION = 0.1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_db(value: datetime) -> str:
    # Fixed-width UTC timestamps so string comparison matches time order
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class TranslationCache:
    """Persistent store of completed translations."""

    SCHEMA_VERSION = 1

    def __init__(
        self,
        db_path: str,
        retention: timedelta = DEFAULT_RETENTION,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        eviction_fraction: float = DEFAULT_EVICTION_FRACTION,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Open (or create) the cache database.

        Args:
            db_path: Path to the SQLite file, or ":memory:"
            retention: Age after which entries count as expired
            max_entries: Size bound enforced after each store
            eviction_fraction: Share of entries removed when the bound is exceeded
            clock: Returns the current UTC time (injectable for tests)

        Raises:
            CacheError: If the database cannot be opened or initialized
        """
        self.db_path = db_path
        self.retention = retention
        self.max_entries = max_entries
        self.eviction_fraction = eviction_fraction
        self._clock = clock or _utcnow
        self._lock = threading.Lock()

        try:
            if db_path != ":memory:":
                db_file = Path(db_path)
                db_file.parent.mkdir(parents=True, exist_ok=True)
                if not db_file.exists():
                    db_file.touch(mode=0o600)

            self._conn = sqlite3.connect(
                db_path,
                check_same_thread=False,
                isolation_level="IMMEDIATE",
                timeout=10.0,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA busy_timeout=10000")
            self._conn.execute("PRAGMA synchronous=NORMAL")
            self._initialize_schema()
        except (sqlite3.Error, OSError) as e:
            raise CacheError(str(e), "init") from e

        logger.info(f"Translation cache initialized: {db_path}")

    def _initialize_schema(self) -> None:
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS translation_cache (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_text TEXT NOT NULL,
                    source_language TEXT NOT NULL,
                    target_language TEXT NOT NULL,
                    translated_text TEXT NOT NULL,
                    provider TEXT NOT NULL,
                    quality TEXT,
                    created_at TEXT NOT NULL,
                    last_used_at TEXT NOT NULL,
                    use_count INTEGER NOT NULL DEFAULT 1 CHECK (use_count >= 1),
                    UNIQUE (source_text, source_language, target_language)
                )
                """
            )
            self._conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_translation_cache_created_at "
                "ON translation_cache(created_at)"
            )
            self._conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_translation_cache_usage "
                "ON translation_cache(use_count, last_used_at)"
            )
            self._conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_translation_cache_provider "
                "ON translation_cache(provider)"
            )
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """
            )
            self._conn.execute(
                "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
                (self.SCHEMA_VERSION, _to_db(_utcnow())),
            )

    # ------------------------------------------------------------------
    # Synchronous operations (run in worker threads)
    # ------------------------------------------------------------------

    def _lookup_sync(
        self, text: str, source_language: str, target_language: str
    ) -> Optional[CachedTranslation]:
        now = self._clock()
        horizon = now - self.retention
        with self._lock:
            with self._conn:
                row = self._conn.execute(
                    """
                    UPDATE translation_cache
                    SET use_count = use_count + 1, last_used_at = ?
                    WHERE source_text = ? AND source_language = ?
                        AND target_language = ? AND created_at >= ?
                    RETURNING *
                    """,
                    (
                        _to_db(now),
                        text,
                        source_language,
                        target_language,
                        _to_db(horizon),
                    ),
                ).fetchone()
        return self._row_to_entry(row) if row else None

    def _get_sync(
        self, text: str, source_language: str, target_language: str
    ) -> Optional[CachedTranslation]:
        with self._lock:
            row = self._conn.execute(
                """
                SELECT * FROM translation_cache
                WHERE source_text = ? AND source_language = ? AND target_language = ?
                """,
                (text, source_language, target_language),
            ).fetchone()
        return self._row_to_entry(row) if row else None

    def _store_sync(
        self,
        text: str,
        source_language: str,
        target_language: str,
        translated_text: str,
        provider: str,
        quality: Optional[QualityAssessment],
    ) -> CachedTranslation:
        now = _to_db(self._clock())
        quality_json = quality.model_dump_json() if quality is not None else None
        with self._lock:
            with self._conn:
                row = self._conn.execute(
                    """
                    INSERT INTO translation_cache (
                        source_text, source_language, target_language,
                        translated_text, provider, quality,
                        created_at, last_used_at, use_count
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1)
                    ON CONFLICT(source_text, source_language, target_language)
                    DO UPDATE SET
                        translated_text = excluded.translated_text,
                        provider = excluded.provider,
                        quality = excluded.quality,
                        created_at = excluded.created_at,
                        last_used_at = excluded.last_used_at,
                        use_count = 1
                    RETURNING *
                    """,
                    (
                        text,
                        source_language,
                        target_language,
                        translated_text,
                        provider,
                        quality_json,
                        now,
                        now,
                    ),
                ).fetchone()
                evicted = self._evict_overflow(keep_id=row["id"])

        if evicted:
            cache_evictions_total.inc(evicted)
            logger.info(
                f"Translation cache exceeded {self.max_entries} entries, "
                f"evicted {evicted} least used"
            )
        return self._row_to_entry(row)

    def _evict_overflow(self, keep_id: int) -> int:
        """Delete the least used entries once the size bound is exceeded.

        Must be called inside an open transaction while holding the lock.
        The entry that was just written is never evicted.
        """
        total = self._conn.execute("SELECT COUNT(*) FROM translation_cache").fetchone()[0]
        if total <= self.max_entries:
            return 0
        to_remove = max(
            total - self.max_entries,
            math.ceil(total * self.eviction_fraction),
        )
        cursor = self._conn.execute(
            """
            DELETE FROM translation_cache WHERE id IN (
                SELECT id FROM translation_cache
                WHERE id != ?
                ORDER BY use_count ASC, last_used_at ASC
                LIMIT ?
            )
            """,
            (keep_id, to_remove),
        )
        return cursor.rowcount

    def _count_expired_sync(self, retention: timedelta) -> int:
        cutoff = _to_db(self._clock() - retention)
        with self._lock:
            return self._conn.execute(
                "SELECT COUNT(*) FROM translation_cache WHERE created_at < ?",
                (cutoff,),
            ).fetchone()[0]

    def _purge_expired_sync(self, retention: timedelta) -> int:
        cutoff = _to_db(self._clock() - retention)
        with self._lock:
            with self._conn:
                cursor = self._conn.execute(
                    "DELETE FROM translation_cache WHERE created_at < ?", (cutoff,)
                )
                return cursor.rowcount

    def _usage_by_provider_sync(self) -> Dict[str, int]:
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT provider, COUNT(*) AS entries
                FROM translation_cache
                GROUP BY provider
                ORDER BY provider
                """
            ).fetchall()
        return {row["provider"]: row["entries"] for row in rows}

    def _count_sync(self) -> int:
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM translation_cache").fetchone()[0]

    def _stats_sync(self) -> Dict[str, Any]:
        with self._lock:
            row = self._conn.execute(
                """
                SELECT COUNT(*) AS entries,
                       COALESCE(SUM(use_count), 0) AS total_uses,
                       MIN(created_at) AS oldest_entry,
                       MAX(last_used_at) AS last_used_at
                FROM translation_cache
                """
            ).fetchone()
        return {
            "entries": row["entries"],
            "total_uses": row["total_uses"],
            # Every entry starts at one use; the rest are cache hits
            "total_hits": row["total_uses"] - row["entries"],
            "oldest_entry": row["oldest_entry"],
            "last_used_at": row["last_used_at"],
            "max_entries": self.max_entries,
            "retention_days": self.retention.days,
        }

    # ------------------------------------------------------------------
    # Async API
    # ------------------------------------------------------------------

    async def lookup(
        self, text: str, source_language: str, target_language: str
    ) -> Optional[CachedTranslation]:
        """Return the cached translation and record the use, or None on a miss.

        Entries older than the retention horizon count as misses even when the
        expiry sweep has not removed them yet.

        Raises:
            CacheError: If the database cannot be read
        """
        try:
            entry = await asyncio.to_thread(
                self._lookup_sync, text, source_language, target_language
            )
        except sqlite3.Error as e:
            cache_lookups_total.labels(result="error").inc()
            logger.error(f"Translation cache lookup failed: {e}")
            raise CacheError(str(e), "lookup") from e

        cache_lookups_total.labels(result="hit" if entry else "miss").inc()
        return entry

    async def get(
        self, text: str, source_language: str, target_language: str
    ) -> Optional[CachedTranslation]:
        """Read an entry without touching its usage counters."""
        try:
            return await asyncio.to_thread(
                self._get_sync, text, source_language, target_language
            )
        except sqlite3.Error as e:
            raise CacheError(str(e), "read") from e

    async def store(
        self,
        text: str,
        source_language: str,
        target_language: str,
        translated_text: str,
        provider: str,
        quality: Optional[QualityAssessment] = None,
    ) -> CachedTranslation:
        """Insert or replace the entry for the key triple.

        A replaced entry restarts at ``use_count == 1`` with a fresh
        ``created_at``.

        Raises:
            CacheError: If the database cannot be written
        """
        try:
            return await asyncio.to_thread(
                self._store_sync,
                text,
                source_language,
                target_language,
                translated_text,
                provider,
                quality,
            )
        except sqlite3.Error as e:
            logger.error(f"Translation cache store failed: {e}")
            raise CacheError(str(e), "store") from e

    async def count_expired(self, retention: Optional[timedelta] = None) -> int:
        """Count entries a purge with ``retention`` would remove."""
        retention = retention if retention is not None else self.retention
        try:
            return await asyncio.to_thread(self._count_expired_sync, retention)
        except sqlite3.Error as e:
            raise CacheError(str(e), "read") from e

    async def purge_expired(self, retention: Optional[timedelta] = None) -> int:
        """Delete entries created before ``now - retention``.

        Args:
            retention: Retention horizon, defaults to the cache's configured one

        Returns:
            Number of entries removed
        """
        retention = retention if retention is not None else self.retention
        try:
            removed = await asyncio.to_thread(self._purge_expired_sync, retention)
        except sqlite3.Error as e:
            logger.error(f"Translation cache purge failed: {e}")
            raise CacheError(str(e), "purge") from e

        if removed:
            cache_purged_total.inc(removed)
        logger.info(
            f"Purged {removed} cached translations older than {retention.days} days"
        )
        return removed

    async def usage_by_provider(self) -> Dict[str, int]:
        """Number of cached entries per provider."""
        try:
            return await asyncio.to_thread(self._usage_by_provider_sync)
        except sqlite3.Error as e:
            raise CacheError(str(e), "read") from e

    async def count(self) -> int:
        try:
            return await asyncio.to_thread(self._count_sync)
        except sqlite3.Error as e:
            raise CacheError(str(e), "read") from e

    async def get_stats(self) -> Dict[str, Any]:
        try:
            stats = await asyncio.to_thread(self._stats_sync)
            stats["providers"] = await asyncio.to_thread(self._usage_by_provider_sync)
        except sqlite3.Error as e:
            raise CacheError(str(e), "read") from e
        return stats

    def close(self) -> None:
        """Close the database connection."""
        if hasattr(self, "_conn"):
            with self._lock:
                self._conn.close()
            logger.info("Translation cache connection closed")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _parse_datetime(self, value: str) -> datetime:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    def _row_to_entry(self, row: sqlite3.Row) -> CachedTranslation:
        quality = None
        if row["quality"]:
            try:
                quality = QualityAssessment.model_validate_json(row["quality"])
            except ValueError:
                logger.warning(
                    f"Ignoring unreadable quality snapshot for cache entry {row['id']}"
                )

        return CachedTranslation(
            id=row["id"],
            source_text=row["source_text"],
            source_language=row["source_language"],
            target_language=row["target_language"],
            translated_text=row["translated_text"],
            provider=row["provider"],
            quality=quality,
            created_at=self._parse_datetime(row["created_at"]),
            last_used_at=self._parse_datetime(row["last_used_at"]),
            use_count=row["use_count"],
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
