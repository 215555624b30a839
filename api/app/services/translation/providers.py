"""Translation provider adapters.

Each adapter wraps one external translation backend behind the same async
interface (translate / batch_translate / detect_language). Adapters translate
wire-level failures into ProviderError and never retry on their own; retry
policy belongs to the orchestrator.

Usage:
    provider = GoogleTranslateProvider(api_key="...")
    text = await provider.translate("Hello", "en", "zh-HK")
    await provider.close()
"""

import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import (
    Any,
    ClassVar,
    Dict,
    FrozenSet,
    List,
    Optional,
    Protocol,
    Tuple,
    runtime_checkable,
)

import httpx
from app.core.exceptions import ProviderError
from app.metrics.translation_metrics import (
    provider_request_duration_seconds,
    provider_requests_total,
)
from app.services.translation.languages import (
    SUPPORTED_LANGUAGES,
    normalize_language_tag,
)

logger = logging.getLogger(__name__)

# Status codes worth another attempt
RETRYABLE_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})


class ProviderCapability(str, Enum):
    TRANSLATE = "translate"
    BATCH_TRANSLATE = "batch_translate"
    DETECT_LANGUAGE = "detect_language"


ALL_CAPABILITIES: FrozenSet[ProviderCapability] = frozenset(ProviderCapability)


@runtime_checkable
class TranslationProvider(Protocol):
    """Protocol every translation backend adapter conforms to."""

    name: str
    capabilities: FrozenSet[ProviderCapability]

    def supports(self, source_language: str, target_language: str) -> bool:
        """Whether this adapter can translate between the two languages."""
        ...

    async def translate(
        self, text: str, source_language: str, target_language: str
    ) -> str:
        """Translate one text. Raises ProviderError on any backend failure."""
        ...

    async def batch_translate(
        self, texts: List[str], source_language: str, target_language: str
    ) -> List[str]:
        """Translate many texts; result is positionally aligned with ``texts``."""
        ...

    async def detect_language(self, text: str) -> str:
        """Detect the language of ``text`` as a canonical language code."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...


class HTTPTranslationProvider(ABC):
    """Shared plumbing for REST translation backends.

    Owns the pooled ``httpx.AsyncClient``, the per-call timeout and the
    mapping of transport/status/body failures onto ProviderError.
    """

    name: ClassVar[str] = "http"
    capabilities: ClassVar[FrozenSet[ProviderCapability]] = ALL_CAPABILITIES

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the adapter.

        Args:
            api_key: Backend credential
            base_url: Backend endpoint root
            timeout: Per-call timeout in seconds
            client: Optional pre-built HTTP client (tests inject a mock transport)
        """
        if not api_key:
            raise ValueError(f"{self.name} requires an API key")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client with connection pooling."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            logger.info(f"{self.name} HTTP client closed")
        self._client = None

    def supported_languages(self) -> Tuple[str, ...]:
        return tuple(SUPPORTED_LANGUAGES)

    def supports(self, source_language: str, target_language: str) -> bool:
        languages = self.supported_languages()
        return source_language in languages and target_language in languages

    async def _post(self, operation: str, url: str, **kwargs: Any) -> Any:
        """POST to the backend and return the decoded JSON body.

        Raises:
            ProviderError: On timeout, transport failure, non-2xx status or
                a body that is not JSON
        """
        client = await self._get_client()
        start_time = time.perf_counter()
        try:
            response = await client.post(url, timeout=self.timeout, **kwargs)
        except httpx.TimeoutException as e:
            provider_requests_total.labels(self.name, operation, "timeout").inc()
            logger.warning(f"{self.name} {operation} timed out after {self.timeout}s")
            raise ProviderError(self.name, "timeout", retryable=True) from e
        except httpx.HTTPError as e:
            provider_requests_total.labels(self.name, operation, "transport_error").inc()
            logger.warning(f"{self.name} {operation} transport error: {e}")
            raise ProviderError(
                self.name, f"transport error: {e}", retryable=True
            ) from e
        finally:
            provider_request_duration_seconds.labels(self.name, operation).observe(
                max(0.0, time.perf_counter() - start_time)
            )

        if not response.is_success:
            provider_requests_total.labels(self.name, operation, "http_error").inc()
            description = self._error_description(response)
            logger.warning(
                f"{self.name} {operation} failed with HTTP {response.status_code}: {description}"
            )
            raise ProviderError(
                self.name,
                description,
                status_code=response.status_code,
                retryable=response.status_code in RETRYABLE_STATUS_CODES,
            )

        try:
            payload = response.json()
        except ValueError as e:
            provider_requests_total.labels(self.name, operation, "malformed").inc()
            raise ProviderError(self.name, "malformed response body") from e

        provider_requests_total.labels(self.name, operation, "success").inc()
        return payload

    def _error_description(self, response: httpx.Response) -> str:
        return response.reason_phrase or f"HTTP {response.status_code}"

    def _malformed(self, detail: str) -> ProviderError:
        return ProviderError(self.name, f"malformed response body: {detail}")

    def _check_aligned(self, texts: List[str], translations: List[str]) -> List[str]:
        if len(translations) != len(texts):
            raise ProviderError(
                self.name,
                f"partial batch response: expected {len(texts)} translations, "
                f"got {len(translations)}",
            )
        return translations

    def _canonical_language(self, tag: str) -> str:
        code = normalize_language_tag(tag)
        if code is None:
            raise ProviderError(self.name, f"unsupported detected language '{tag}'")
        return code

    async def translate(
        self, text: str, source_language: str, target_language: str
    ) -> str:
        translations = await self.batch_translate(
            [text], source_language, target_language
        )
        return translations[0]

    @abstractmethod
    async def batch_translate(
        self, texts: List[str], source_language: str, target_language: str
    ) -> List[str]:
        """Translate ``texts`` in one backend round-trip."""

    @abstractmethod
    async def detect_language(self, text: str) -> str:
        """Detect the canonical language code of ``text``."""


class GoogleTranslateProvider(HTTPTranslationProvider):
    """Google Cloud Translation v2 adapter.

    Authenticates with the ``key`` query parameter and exchanges JSON bodies
    wrapped in a ``{"data": ...}`` envelope.
    """

    name: ClassVar[str] = "google-translate"
    DEFAULT_BASE_URL = "https://translation.googleapis.com/language/translate/v2"

    LANGUAGE_CODES: ClassVar[Dict[str, str]] = {
        "zh-HK": "zh-TW",
        "zh-CN": "zh-CN",
        "en": "en",
    }

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(api_key, base_url, timeout=timeout, client=client)

    def _map(self, language: str) -> str:
        return self.LANGUAGE_CODES.get(language, language)

    def _error_description(self, response: httpx.Response) -> str:
        try:
            error = response.json().get("error", {})
            message = error.get("message")
            if message:
                status = error.get("status")
                return f"{status}: {message}" if status else message
        except (ValueError, AttributeError):
            pass
        return super()._error_description(response)

    async def translate(
        self, text: str, source_language: str, target_language: str
    ) -> str:
        payload = await self._post(
            "translate",
            self.base_url,
            params={"key": self.api_key},
            json={
                "q": text,
                "source": self._map(source_language),
                "target": self._map(target_language),
                "format": "text",
            },
        )
        return self._check_aligned([text], self._extract_translations(payload))[0]

    async def batch_translate(
        self, texts: List[str], source_language: str, target_language: str
    ) -> List[str]:
        if not texts:
            return []
        payload = await self._post(
            "batch_translate",
            self.base_url,
            params={"key": self.api_key},
            json={
                "q": list(texts),
                "source": self._map(source_language),
                "target": self._map(target_language),
                "format": "text",
            },
        )
        return self._check_aligned(texts, self._extract_translations(payload))

    async def detect_language(self, text: str) -> str:
        payload = await self._post(
            "detect_language",
            f"{self.base_url}/detect",
            params={"key": self.api_key},
            json={"q": text},
        )
        try:
            detected = payload["data"]["detections"][0][0]["language"]
        except (KeyError, IndexError, TypeError) as e:
            raise self._malformed("missing data.detections") from e
        return self._canonical_language(str(detected))

    def _extract_translations(self, payload: Any) -> List[str]:
        try:
            entries = payload["data"]["translations"]
            return [str(entry["translatedText"]) for entry in entries]
        except (KeyError, TypeError) as e:
            raise self._malformed("missing data.translations") from e


class DeepLProvider(HTTPTranslationProvider):
    """DeepL v2 adapter.

    Authenticates with a ``DeepL-Auth-Key`` header and posts form-encoded
    bodies with one ``text`` field per input.
    """

    name: ClassVar[str] = "deepl"
    FREE_BASE_URL = "https://api-free.deepl.com/v2"
    PRO_BASE_URL = "https://api.deepl.com/v2"

    SOURCE_CODES: ClassVar[Dict[str, str]] = {
        "zh-HK": "ZH",
        "zh-CN": "ZH",
        "en": "EN",
    }
    # DeepL needs a regional variant for English and a script for Chinese targets
    TARGET_CODES: ClassVar[Dict[str, str]] = {
        "zh-HK": "ZH-HANT",
        "zh-CN": "ZH-HANS",
        "en": "EN-US",
    }

    def __init__(
        self,
        api_key: str,
        is_pro: bool = False,
        base_url: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(
            api_key,
            base_url or (self.PRO_BASE_URL if is_pro else self.FREE_BASE_URL),
            timeout=timeout,
            client=client,
        )
        self.is_pro = is_pro

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"DeepL-Auth-Key {self.api_key}"}

    def _error_description(self, response: httpx.Response) -> str:
        if response.status_code == 456:
            return "quota exceeded"
        try:
            message = response.json().get("message")
            if message:
                return str(message)
        except (ValueError, AttributeError):
            pass
        return super()._error_description(response)

    async def batch_translate(
        self, texts: List[str], source_language: str, target_language: str
    ) -> List[str]:
        if not texts:
            return []
        payload = await self._post(
            "batch_translate" if len(texts) > 1 else "translate",
            f"{self.base_url}/translate",
            headers=self._headers,
            data={
                "text": list(texts),
                "source_lang": self.SOURCE_CODES.get(source_language, source_language),
                "target_lang": self.TARGET_CODES.get(target_language, target_language),
            },
        )
        translations = [entry["text"] for entry in self._extract_entries(payload)]
        return self._check_aligned(texts, [str(t) for t in translations])

    async def detect_language(self, text: str) -> str:
        # DeepL has no detection endpoint; a translation without source_lang
        # reports the detected source language.
        payload = await self._post(
            "detect_language",
            f"{self.base_url}/translate",
            headers=self._headers,
            data={"text": [text], "target_lang": self.TARGET_CODES["en"]},
        )
        entries = self._extract_entries(payload)
        if not entries or "detected_source_language" not in entries[0]:
            raise self._malformed("missing detected_source_language")
        return self._canonical_language(str(entries[0]["detected_source_language"]))

    def _extract_entries(self, payload: Any) -> List[Dict[str, Any]]:
        try:
            entries = payload["translations"]
            if not isinstance(entries, list) or not all(
                isinstance(entry, dict) and "text" in entry for entry in entries
            ):
                raise TypeError("translations is not a list of objects")
            return entries
        except (KeyError, TypeError) as e:
            raise self._malformed("missing translations") from e
