import logging
import os
from datetime import timedelta
from functools import lru_cache
from pathlib import Path

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # API settings
    DEBUG: bool = False
    PROJECT_NAME: str = "Marketplace Translation"
    # Declared before the fields whose validators check for production
    ENVIRONMENT: str = "development"

    # CORS settings - accepts string or list, normalized to list[str] by validator
    CORS_ORIGINS: str | list[str] = "*"

    # Directory settings
    DATA_DIR: str = "api/data"

    # Admin settings
    ADMIN_API_KEY: str = ""  # Required in production, empty allowed for testing

    # Google Cloud Translation (v2 REST API)
    GOOGLE_TRANSLATE_API_KEY: str = ""
    GOOGLE_TRANSLATE_ENABLED: bool = True
    GOOGLE_TRANSLATE_RANK: int = 2  # Lower rank = preferred
    GOOGLE_TRANSLATE_BASE_URL: str = (
        "https://translation.googleapis.com/language/translate/v2"
    )

    # DeepL (v2 REST API)
    DEEPL_API_KEY: str = ""
    DEEPL_IS_PRO: bool = False  # Pro keys use api.deepl.com, free keys api-free
    DEEPL_ENABLED: bool = True
    DEEPL_RANK: int = 1

    # Provider call policy
    TRANSLATION_PROVIDER_TIMEOUT: float = 10.0  # Seconds per adapter call
    TRANSLATION_RETRY_ATTEMPTS: int = 3  # Total attempts, including the first
    TRANSLATION_RETRY_WAIT_MIN: float = 0.5  # Seconds
    TRANSLATION_RETRY_WAIT_MAX: float = 4.0  # Seconds

    # Batch settings
    TRANSLATION_BATCH_MAX_CONCURRENCY: int = 5  # Concurrent adapter calls per batch
    TRANSLATION_BATCH_CHUNK_SIZE: int = 50  # Texts per provider batch request
    TRANSLATION_BATCH_MAX_TEXTS: int = 100
    TRANSLATION_MAX_TEXT_LENGTH: int = 10000

    # Cache settings
    TRANSLATION_CACHE_RETENTION_DAYS: int = 30
    TRANSLATION_CACHE_MAX_ENTRIES: int = 10000
    TRANSLATION_CACHE_EVICTION_FRACTION: float = 0.1
    TRANSLATION_CACHE_PURGE_INTERVAL_HOURS: float = 24.0  # 0 disables the sweep task

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="allow",
    )

    @property
    def TRANSLATION_CACHE_DB_PATH(self) -> str:
        """Complete path to the SQLite translation cache database"""
        return os.path.join(self.DATA_DIR, "translation_cache.db")

    @property
    def TRANSLATION_CACHE_RETENTION(self) -> timedelta:
        """Retention horizon for cached translations"""
        return timedelta(days=self.TRANSLATION_CACHE_RETENTION_DAYS)

    @property
    def DEEPL_BASE_URL(self) -> str:
        """DeepL endpoint matching the configured key type"""
        if self.DEEPL_IS_PRO:
            return "https://api.deepl.com/v2"
        return "https://api-free.deepl.com/v2"

    @field_validator("GOOGLE_TRANSLATE_BASE_URL")
    @classmethod
    def validate_google_base_url(cls, v: str) -> str:
        """Normalize the Google Translate endpoint.

        Args:
            v: Endpoint URL

        Returns:
            URL with scheme and no trailing slash

        Raises:
            ValueError: If the URL is empty
        """
        v = v.strip()
        if not v:
            raise ValueError("GOOGLE_TRANSLATE_BASE_URL must be non-empty")
        if "://" not in v:
            v = "https://" + v
        return v.rstrip("/")

    @field_validator("GOOGLE_TRANSLATE_RANK", "DEEPL_RANK")
    @classmethod
    def validate_rank(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Provider rank must be >= 0, got {v}")
        return v

    @field_validator("TRANSLATION_PROVIDER_TIMEOUT")
    @classmethod
    def validate_provider_timeout(cls, v: float) -> float:
        """Validate the per-call provider timeout.

        Args:
            v: Timeout in seconds

        Returns:
            Validated timeout

        Raises:
            ValueError: If the timeout is not positive or exceeds two minutes
        """
        if not 0.0 < v <= 120.0:
            raise ValueError(
                f"TRANSLATION_PROVIDER_TIMEOUT must be between 0 and 120 seconds, got {v}"
            )
        return v

    @field_validator("TRANSLATION_RETRY_ATTEMPTS")
    @classmethod
    def validate_retry_attempts(cls, v: int) -> int:
        """Keep retries to a small fixed number of attempts.

        Args:
            v: Total attempts per provider call

        Returns:
            Validated attempt count

        Raises:
            ValueError: If attempts are outside 1-5
        """
        if not 1 <= v <= 5:
            raise ValueError(f"TRANSLATION_RETRY_ATTEMPTS must be between 1 and 5, got {v}")
        return v

    @field_validator("TRANSLATION_RETRY_WAIT_MIN", "TRANSLATION_RETRY_WAIT_MAX")
    @classmethod
    def validate_retry_wait(cls, v: float) -> float:
        if v < 0.0:
            raise ValueError(f"Retry wait must be >= 0, got {v}")
        return v

    @field_validator(
        "TRANSLATION_BATCH_MAX_CONCURRENCY",
        "TRANSLATION_BATCH_CHUNK_SIZE",
        "TRANSLATION_BATCH_MAX_TEXTS",
        "TRANSLATION_MAX_TEXT_LENGTH",
        "TRANSLATION_CACHE_RETENTION_DAYS",
        "TRANSLATION_CACHE_MAX_ENTRIES",
    )
    @classmethod
    def validate_positive_int(cls, v: int, info: ValidationInfo) -> int:
        """Reject zero or negative limits.

        Args:
            v: Configured limit
            info: Validation info with the field name

        Returns:
            Validated limit

        Raises:
            ValueError: If the value is below 1
        """
        if v < 1:
            raise ValueError(f"{info.field_name} must be >= 1, got {v}")
        return v

    @field_validator("TRANSLATION_BATCH_MAX_CONCURRENCY")
    @classmethod
    def validate_batch_concurrency(cls, v: int) -> int:
        if v > 10:
            logger.warning(
                f"TRANSLATION_BATCH_MAX_CONCURRENCY={v} exceeds 10, clamping to 10"
            )
            return 10
        return v

    @field_validator("TRANSLATION_CACHE_EVICTION_FRACTION")
    @classmethod
    def validate_eviction_fraction(cls, v: float) -> float:
        """Validate the share of entries removed when the cache is full.

        Args:
            v: Fraction of entries to evict

        Returns:
            Validated fraction

        Raises:
            ValueError: If fraction is outside (0, 1]
        """
        if not 0.0 < v <= 1.0:
            raise ValueError(
                f"TRANSLATION_CACHE_EVICTION_FRACTION must be in (0, 1], got {v}"
            )
        return v

    @field_validator("TRANSLATION_CACHE_PURGE_INTERVAL_HOURS")
    @classmethod
    def validate_purge_interval(cls, v: float) -> float:
        if v < 0.0:
            raise ValueError(
                f"TRANSLATION_CACHE_PURGE_INTERVAL_HOURS must be >= 0, got {v}"
            )
        return v

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Normalize CORS_ORIGINS to list of hosts.

        Accepts either a comma-separated string or a list of strings.
        Handles wildcards, trims whitespace, and ignores empty entries.

        Args:
            v: CORS origins as string (comma-separated), list of strings, or "*" for all

        Returns:
            List of CORS origin hosts with whitespace trimmed and empty entries removed
        """
        if isinstance(v, list):
            return [
                host.strip() for host in v if isinstance(host, str) and host.strip()
            ]

        if isinstance(v, str):
            if v.strip() == "*":
                return ["*"]
            return [host.strip() for host in v.split(",") if host.strip()]

        # Fallback for unexpected types: fail-closed (deny all origins)
        return []

    @classmethod
    def _is_production(cls, info: ValidationInfo) -> bool:
        """Check if ENVIRONMENT indicates production.

        Args:
            info: Validation info containing other field values

        Returns:
            True if environment is production, False otherwise
        """
        raw_env = info.data.get("ENVIRONMENT", "development")
        environment = str(raw_env).strip().lower()
        if environment in {"prod"}:
            environment = "production"
        return environment == "production"

    @field_validator("CORS_ORIGINS")
    @classmethod
    def validate_cors_in_production(cls, v: list[str], info) -> list[str]:
        """Reject wildcard CORS in production environments."""
        if cls._is_production(info) and v == ["*"]:
            raise ValueError("CORS wildcard '*' not allowed in production")

        return v

    @field_validator("ADMIN_API_KEY")
    @classmethod
    def validate_admin_key_in_production(cls, v: str, info) -> str:
        """Ensure ADMIN_API_KEY is set in production environments.

        Args:
            v: The ADMIN_API_KEY value
            info: Validation info containing other field values

        Returns:
            The validated and stripped ADMIN_API_KEY

        Raises:
            ValueError: If ADMIN_API_KEY is empty in production
        """
        if cls._is_production(info) and not v.strip():
            raise ValueError("ADMIN_API_KEY required in production")

        return v.strip()

    @field_validator("GOOGLE_TRANSLATE_API_KEY", "DEEPL_API_KEY")
    @classmethod
    def strip_provider_key(cls, v: str) -> str:
        return v.strip()

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Make paths absolute
        self.DATA_DIR = os.path.abspath(self.DATA_DIR)

    def ensure_data_dirs(self) -> None:
        """Create required data directories if they don't exist.

        This method is called during application startup (lifespan) to avoid
        import-time side effects and I/O operations.
        """
        Path(self.DATA_DIR).mkdir(parents=True, exist_ok=True)


# Thread-safe lazy initialization using lru_cache
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings instance with lazy initialization.

    Settings are only created once on first access, then cached for subsequent calls.
    This prevents module-level side effects and allows testing without environment variables.
    Thread-safe via lru_cache mechanism.

    Returns:
        Settings: Application settings object
    """
    return Settings()


def reset_settings() -> None:
    """Reset the cached settings instance.

    Useful for testing when you need to reload settings with different values.
    """
    get_settings.cache_clear()
