"""Tests for the purge_translation_cache maintenance script."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from app.scripts.purge_translation_cache import main
from app.services.translation.cache import TranslationCache


@pytest.fixture
def populated_db(tmp_path) -> str:
    """A cache file holding one expired and one fresh entry."""
    db_path = str(tmp_path / "translation_cache.db")
    now = datetime.now(timezone.utc)

    async def populate():
        old = TranslationCache(db_path, clock=lambda: now - timedelta(days=60))
        await old.store("Old", "en", "zh-HK", "舊", "deepl")
        old.close()
        fresh = TranslationCache(db_path, clock=lambda: now)
        await fresh.store("New", "en", "zh-HK", "新", "deepl")
        fresh.close()

    asyncio.run(populate())
    return db_path


def count_entries(db_path: str) -> int:
    cache = TranslationCache(db_path)
    try:
        return asyncio.run(cache.count())
    finally:
        cache.close()


class TestPurgeScript:
    def test_removes_expired_entries(self, populated_db):
        assert main(["--db-path", populated_db, "--retention-days", "30"]) == 0

        assert count_entries(populated_db) == 1

    def test_dry_run_leaves_entries(self, populated_db):
        assert main(["--db-path", populated_db, "--retention-days", "30", "--dry-run"]) == 0

        assert count_entries(populated_db) == 2

    def test_missing_database_fails(self, tmp_path):
        assert main(["--db-path", str(tmp_path / "missing.db")]) == 1

    def test_invalid_retention_is_rejected(self, populated_db):
        with pytest.raises(SystemExit):
            main(["--db-path", populated_db, "--retention-days", "0"])
