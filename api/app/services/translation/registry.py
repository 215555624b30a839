"""Provider registry: which backends are configured and in what preference order."""

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional

from app.core.config import Settings
from app.core.exceptions import (
    ProviderNotAvailableError,
    UnsupportedLanguagePairError,
)
from app.services.translation.providers import (
    DeepLProvider,
    GoogleTranslateProvider,
    ProviderCapability,
    TranslationProvider,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static description of one configured provider."""

    name: str
    capabilities: FrozenSet[ProviderCapability]
    rank: int  # Lower = preferred
    enabled: bool = True

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "capabilities": sorted(c.value for c in self.capabilities),
            "rank": self.rank,
            "enabled": self.enabled,
        }


class ProviderRegistry:
    """Immutable set of provider adapters ordered by rank.

    Built once at startup and handed to the orchestrator; there is no
    module-level singleton.
    """

    def __init__(self):
        self._descriptors: Dict[str, ProviderDescriptor] = {}
        self._providers: Dict[str, TranslationProvider] = {}

    def register(
        self,
        provider: TranslationProvider,
        rank: int,
        enabled: bool = True,
    ) -> ProviderDescriptor:
        if provider.name in self._descriptors:
            raise ValueError(f"Provider '{provider.name}' is already registered")
        descriptor = ProviderDescriptor(
            name=provider.name,
            capabilities=frozenset(provider.capabilities),
            rank=rank,
            enabled=enabled,
        )
        self._descriptors[provider.name] = descriptor
        self._providers[provider.name] = provider
        logger.info(
            f"Registered translation provider '{provider.name}' "
            f"(rank={rank}, enabled={enabled})"
        )
        return descriptor

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProviderRegistry":
        """Build adapters for every provider that has credentials configured."""
        registry = cls()
        if settings.DEEPL_API_KEY:
            registry.register(
                DeepLProvider(
                    api_key=settings.DEEPL_API_KEY,
                    is_pro=settings.DEEPL_IS_PRO,
                    base_url=settings.DEEPL_BASE_URL,
                    timeout=settings.TRANSLATION_PROVIDER_TIMEOUT,
                ),
                rank=settings.DEEPL_RANK,
                enabled=settings.DEEPL_ENABLED,
            )
        if settings.GOOGLE_TRANSLATE_API_KEY:
            registry.register(
                GoogleTranslateProvider(
                    api_key=settings.GOOGLE_TRANSLATE_API_KEY,
                    base_url=settings.GOOGLE_TRANSLATE_BASE_URL,
                    timeout=settings.TRANSLATION_PROVIDER_TIMEOUT,
                ),
                rank=settings.GOOGLE_TRANSLATE_RANK,
                enabled=settings.GOOGLE_TRANSLATE_ENABLED,
            )

        if not registry.names():
            logger.warning(
                "No translation provider enabled; set DEEPL_API_KEY or "
                "GOOGLE_TRANSLATE_API_KEY"
            )
        return registry

    def descriptors(self, include_disabled: bool = False) -> List[ProviderDescriptor]:
        """Descriptors in preference order (rank, then name)."""
        return sorted(
            (d for d in self._descriptors.values() if include_disabled or d.enabled),
            key=lambda d: (d.rank, d.name),
        )

    def names(self) -> List[str]:
        """Names of enabled providers in preference order."""
        return [d.name for d in self.descriptors()]

    def get(self, name: str) -> TranslationProvider:
        """Return the enabled adapter called ``name``.

        Raises:
            ProviderNotAvailableError: If unknown or disabled
        """
        descriptor = self._descriptors.get(name)
        if descriptor is None or not descriptor.enabled:
            raise ProviderNotAvailableError(name)
        return self._providers[name]

    def select(
        self,
        source_language: str,
        target_language: str,
        override: Optional[str] = None,
        capability: ProviderCapability = ProviderCapability.TRANSLATE,
    ) -> TranslationProvider:
        """Pick the adapter for a language pair.

        An override is used exclusively: it is never swapped for another
        provider, even if it cannot handle the pair.

        Raises:
            ProviderNotAvailableError: Override unknown or disabled
            UnsupportedLanguagePairError: No enabled adapter supports the pair
        """
        if override:
            provider = self.get(override)
            if capability not in self._descriptors[override].capabilities or not provider.supports(
                source_language, target_language
            ):
                raise UnsupportedLanguagePairError(source_language, target_language)
            return provider

        for descriptor in self.descriptors():
            if capability not in descriptor.capabilities:
                continue
            provider = self._providers[descriptor.name]
            if provider.supports(source_language, target_language):
                return provider

        raise UnsupportedLanguagePairError(source_language, target_language)

    def detector(self, override: Optional[str] = None) -> TranslationProvider:
        """Pick the adapter used for language detection."""
        if override:
            provider = self.get(override)
            if ProviderCapability.DETECT_LANGUAGE not in self._descriptors[override].capabilities:
                raise ProviderNotAvailableError(override)
            return provider

        for descriptor in self.descriptors():
            if ProviderCapability.DETECT_LANGUAGE in descriptor.capabilities:
                return self._providers[descriptor.name]
        raise ProviderNotAvailableError("language detection")

    async def aclose(self) -> None:
        """Close every registered adapter, including disabled ones."""
        for name, provider in self._providers.items():
            try:
                await provider.close()
            except Exception as e:
                logger.warning(f"Error closing translation provider '{name}': {e}")
