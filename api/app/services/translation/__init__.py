"""Translation package: provider adapters, quality heuristic, cache and orchestrator.

This package provides:
- GoogleTranslateProvider / DeepLProvider: REST adapters behind one protocol
- ProviderRegistry: rank-ordered provider selection
- TranslationCache: persistent SQLite cache with usage tracking
- assess_quality: deterministic trust estimate for machine output
- TranslationService: cache-first orchestrator for single, batch and
  multilingual translation
"""

from app.services.translation.cache import TranslationCache
from app.services.translation.languages import (
    SUPPORTED_LANGUAGES,
    normalize_language_tag,
)
from app.services.translation.providers import (
    DeepLProvider,
    GoogleTranslateProvider,
    ProviderCapability,
    TranslationProvider,
)
from app.services.translation.quality import assess_quality, should_use_human_review
from app.services.translation.registry import ProviderDescriptor, ProviderRegistry
from app.services.translation.translation_service import TranslationService

__all__ = [
    "DeepLProvider",
    "GoogleTranslateProvider",
    "ProviderCapability",
    "ProviderDescriptor",
    "ProviderRegistry",
    "SUPPORTED_LANGUAGES",
    "TranslationCache",
    "TranslationProvider",
    "TranslationService",
    "assess_quality",
    "normalize_language_tag",
    "should_use_human_review",
]
