"""
Pytest configuration and fixtures for the translation service API.

This module provides:
- Test settings with isolated test environment
- Cache, registry and service fixtures backed by temporary SQLite files
- A FastAPI test client wired to the test service
"""

import shutil
import tempfile
from typing import Generator

import pytest
from app.core.config import Settings
from app.services.translation.cache import TranslationCache
from app.services.translation.registry import ProviderRegistry
from app.services.translation.translation_service import TranslationService
from fastapi.testclient import TestClient

from tests.fakes import ADMIN_KEY, FakeProvider, build_registry, build_service


@pytest.fixture(scope="session")
def test_data_dir() -> Generator[str, None, None]:
    """Create a temporary directory for test data.

    Yields:
        str: Path to the temporary test data directory
    """
    temp_dir = tempfile.mkdtemp(prefix="translation_test_")
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(scope="session")
def test_settings(test_data_dir: str) -> Settings:
    """Create test settings with isolated test environment.

    Retry waits are zero so retry tests run instantly, and the background
    cache sweep is disabled.
    """
    return Settings(
        DEBUG=True,
        DATA_DIR=test_data_dir,
        ADMIN_API_KEY=ADMIN_KEY,
        ENVIRONMENT="testing",
        GOOGLE_TRANSLATE_API_KEY="",
        DEEPL_API_KEY="",
        TRANSLATION_RETRY_WAIT_MIN=0.0,
        TRANSLATION_RETRY_WAIT_MAX=0.0,
        TRANSLATION_CACHE_PURGE_INTERVAL_HOURS=0.0,
    )


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def translation_cache(tmp_path) -> Generator[TranslationCache, None, None]:
    cache = TranslationCache(str(tmp_path / "translation_cache.db"))
    yield cache
    cache.close()


@pytest.fixture
def provider_registry(fake_provider: FakeProvider) -> ProviderRegistry:
    return build_registry((fake_provider, 1))


@pytest.fixture
def translation_service(
    provider_registry: ProviderRegistry, translation_cache: TranslationCache
) -> TranslationService:
    return build_service(provider_registry, translation_cache)


@pytest.fixture
def test_client(
    test_settings: Settings,
    translation_service: TranslationService,
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[TestClient, None, None]:
    """Create a FastAPI test client bound to the test translation service.

    The client is not used as a context manager, so the application lifespan
    (which would build providers from the environment) does not run.
    """
    # Import app here to avoid triggering Settings validation at module load time
    from app.core import security
    from app.core.config import get_settings
    from app.main import app

    monkeypatch.setattr(security, "get_settings", lambda: test_settings)
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.state.translation_service = translation_service
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
    app.state.translation_service = None


@pytest.fixture
def admin_headers() -> dict:
    return {"X-API-KEY": ADMIN_KEY}
