"""Translation orchestrator.

Routes translation requests through the cache and the provider registry:
validate, pick a provider, serve from cache when possible, otherwise call the
provider (with bounded retries), assess quality and store the result.

Concurrent cache misses for the same text and language pair share a single
provider call and a single cache write.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Coroutine, Dict, Iterable, List, Optional, Tuple

from app.core.config import Settings
from app.core.exceptions import (
    CacheError,
    ProviderError,
    TranslationError,
    ValidationError,
)
from app.metrics.translation_metrics import (
    batch_pairs_total,
    coalesced_requests_total,
    provider_retries_total,
    translation_operation_duration_seconds,
    translation_quality_total,
)
from app.models.translation import (
    BatchPairFailure,
    BatchPairRef,
    BatchTranslationJob,
    DetectLanguageResponse,
    JobStatus,
    QualityAssessment,
    TranslationResult,
)
from app.services.translation.cache import TranslationCache
from app.services.translation.languages import SUPPORTED_LANGUAGES, is_supported
from app.services.translation.providers import ProviderCapability, TranslationProvider
from app.services.translation.quality import (
    assess_quality,
    passthrough_quality,
    should_use_human_review,
)
from app.services.translation.registry import ProviderRegistry
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

NO_PROVIDER = "none"
MAX_BATCH_CONCURRENCY = 10

InFlightKey = Tuple[str, str, str, str]


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.retryable


def _chunks(items: List[str], size: int) -> Iterable[List[str]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _consume_exception(task: "asyncio.Future[Any]") -> None:
    # Every waiter may have been cancelled before the shared call failed
    if not task.cancelled():
        task.exception()


@dataclass
class _PairOutcome:
    provider: str
    translated_text: Optional[str] = None
    quality: Optional[QualityAssessment] = None
    from_cache: bool = False
    error: Optional[str] = None


class TranslationService:
    """Cache-first translation across the configured providers.

    Features:
    - Provider selection by rank, or an explicit override used exclusively
    - Persistent cache with usage tracking
    - Stampede protection for concurrent identical misses
    - Fail-soft batch and multilingual fan-out
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        cache: TranslationCache,
        retry_attempts: int = 3,
        retry_wait_min: float = 0.5,
        retry_wait_max: float = 4.0,
        batch_max_concurrency: int = 5,
        batch_chunk_size: int = 50,
        max_batch_texts: int = 100,
        max_text_length: int = 10000,
    ):
        """Initialize the TranslationService.

        Args:
            registry: Configured provider adapters
            cache: Persistent translation cache
            retry_attempts: Total attempts per provider call (first call included)
            retry_wait_min: Minimum backoff between attempts, in seconds
            retry_wait_max: Maximum backoff between attempts, in seconds
            batch_max_concurrency: Default concurrent provider calls per batch
            batch_chunk_size: Texts per provider batch request
            max_batch_texts: Upper bound on texts per batch request
            max_text_length: Upper bound on characters per text
        """
        self.registry = registry
        self.cache = cache
        self.retry_attempts = max(1, retry_attempts)
        self.retry_wait_min = retry_wait_min
        self.retry_wait_max = retry_wait_max
        self.batch_max_concurrency = min(max(1, batch_max_concurrency), MAX_BATCH_CONCURRENCY)
        self.batch_chunk_size = max(1, batch_chunk_size)
        self.max_batch_texts = max_batch_texts
        self.max_text_length = max_text_length

        self._in_flight: Dict[InFlightKey, "asyncio.Task[TranslationResult]"] = {}

        # Statistics
        self.stats = {
            "translations_requested": 0,
            "cache_hits": 0,
            "cache_misses": 0,
            "provider_calls": 0,
            "provider_errors": 0,
            "coalesced_requests": 0,
            "batch_jobs": 0,
            "multilingual_requests": 0,
        }

        logger.info(
            f"TranslationService initialized with providers {registry.names()} "
            f"(retry_attempts={self.retry_attempts}, "
            f"batch_concurrency={self.batch_max_concurrency})"
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        registry: Optional[ProviderRegistry] = None,
        cache: Optional[TranslationCache] = None,
    ) -> "TranslationService":
        """Build the service, its registry and its cache from settings."""
        return cls(
            registry=registry or ProviderRegistry.from_settings(settings),
            cache=cache
            or TranslationCache(
                settings.TRANSLATION_CACHE_DB_PATH,
                retention=settings.TRANSLATION_CACHE_RETENTION,
                max_entries=settings.TRANSLATION_CACHE_MAX_ENTRIES,
                eviction_fraction=settings.TRANSLATION_CACHE_EVICTION_FRACTION,
            ),
            retry_attempts=settings.TRANSLATION_RETRY_ATTEMPTS,
            retry_wait_min=settings.TRANSLATION_RETRY_WAIT_MIN,
            retry_wait_max=settings.TRANSLATION_RETRY_WAIT_MAX,
            batch_max_concurrency=settings.TRANSLATION_BATCH_MAX_CONCURRENCY,
            batch_chunk_size=settings.TRANSLATION_BATCH_CHUNK_SIZE,
            max_batch_texts=settings.TRANSLATION_BATCH_MAX_TEXTS,
            max_text_length=settings.TRANSLATION_MAX_TEXT_LENGTH,
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_text(self, text: Any, field: str = "text") -> None:
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Text must be a non-empty string", field)
        if len(text) > self.max_text_length:
            raise ValidationError(
                f"Text exceeds maximum length of {self.max_text_length} characters",
                field,
            )

    def _validate_language(self, code: Any, field: str) -> None:
        if not isinstance(code, str) or not is_supported(code):
            raise ValidationError(
                f"Unsupported language code '{code}'. "
                f"Supported: {', '.join(SUPPORTED_LANGUAGES)}",
                field,
            )

    # ------------------------------------------------------------------
    # Provider calls
    # ------------------------------------------------------------------

    async def _call_with_retry(self, provider: TranslationProvider, func, *args):
        """Invoke an adapter coroutine, retrying only retryable ProviderErrors."""

        def _before_sleep(retry_state: RetryCallState) -> None:
            provider_retries_total.labels(provider=provider.name).inc()
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                f"Retrying {provider.name} after attempt "
                f"{retry_state.attempt_number}/{self.retry_attempts}: {exc}"
            )

        self.stats["provider_calls"] += 1
        result = None
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_exponential(
                    multiplier=self.retry_wait_min,
                    min=self.retry_wait_min,
                    max=self.retry_wait_max,
                ),
                retry=retry_if_exception(_is_retryable),
                before_sleep=_before_sleep,
                reraise=True,
            ):
                with attempt:
                    result = await func(*args)
        except ProviderError:
            self.stats["provider_errors"] += 1
            raise
        return result

    def _finalize(
        self,
        provider: TranslationProvider,
        text: str,
        translated_text: str,
        source_language: str,
        target_language: str,
    ) -> TranslationResult:
        quality = assess_quality(text, translated_text, source_language, target_language)
        translation_quality_total.labels(
            level=quality.level.value, needs_review=str(quality.needs_review).lower()
        ).inc()
        return TranslationResult(
            translated_text=translated_text,
            provider=provider.name,
            quality=quality,
            from_cache=False,
        )

    async def _store(
        self,
        text: str,
        result: TranslationResult,
        source_language: str,
        target_language: str,
        strict: bool,
    ) -> None:
        try:
            await self.cache.store(
                text,
                source_language,
                target_language,
                result.translated_text,
                result.provider,
                result.quality,
            )
        except CacheError as e:
            if strict:
                raise
            logger.warning(
                f"Translation not cached ({source_language}->{target_language}): {e.detail}"
            )

    async def _translate_fresh(
        self,
        provider: TranslationProvider,
        text: str,
        source_language: str,
        target_language: str,
        store: bool,
        strict_cache: bool,
    ) -> TranslationResult:
        translated = await self._call_with_retry(
            provider, provider.translate, text, source_language, target_language
        )
        result = self._finalize(provider, text, translated, source_language, target_language)
        if store:
            await self._store(text, result, source_language, target_language, strict_cache)
        return result

    def _start_in_flight(
        self, key: InFlightKey, coro: Coroutine[Any, Any, TranslationResult]
    ) -> "asyncio.Task[TranslationResult]":
        """Run ``coro`` as the shared call for ``key`` until it finishes."""
        task = asyncio.create_task(coro)
        self._in_flight[key] = task

        def _release(done: "asyncio.Task[TranslationResult]") -> None:
            if self._in_flight.get(key) is done:
                del self._in_flight[key]
            _consume_exception(done)

        task.add_done_callback(_release)
        return task

    async def _coalesced_translate(
        self,
        provider: TranslationProvider,
        text: str,
        source_language: str,
        target_language: str,
        store: bool = True,
        strict_cache: bool = True,
    ) -> TranslationResult:
        """Join an in-flight call for the same key or start a new one.

        The shared task is shielded so a cancelled waiter does not cancel the
        call for the others. Store and cache strictness follow whichever
        caller started the task.
        """
        key: InFlightKey = (text, source_language, target_language, provider.name)
        task = self._in_flight.get(key)
        if task is None:
            task = self._start_in_flight(
                key,
                self._translate_fresh(
                    provider, text, source_language, target_language, store, strict_cache
                ),
            )
        else:
            self.stats["coalesced_requests"] += 1
            coalesced_requests_total.inc()
            logger.debug(
                f"Joining in-flight {provider.name} call for {source_language}->{target_language}"
            )
        return await asyncio.shield(task)

    # ------------------------------------------------------------------
    # Single translation
    # ------------------------------------------------------------------

    async def translate(
        self,
        text: str,
        source_language: str,
        target_language: str,
        *,
        provider: Optional[str] = None,
        use_cache: bool = True,
        force_refresh: bool = False,
    ) -> TranslationResult:
        """Translate one text.

        Args:
            text: Text to translate
            source_language: Source language code
            target_language: Target language code
            provider: Provider name to use exclusively instead of rank order
            use_cache: When False, neither read nor write the cache
            force_refresh: Skip the cache read but store the fresh result

        Returns:
            TranslationResult, ``from_cache`` set on cache hits

        Raises:
            ValidationError: Empty text or unsupported language code
            ProviderNotAvailableError: Unknown or disabled provider override
            UnsupportedLanguagePairError: No enabled provider supports the pair
            ProviderError: The provider call failed after retries
            CacheError: The cache could not be read or written
        """
        start_time = time.perf_counter()
        try:
            return await self._translate(
                text,
                source_language,
                target_language,
                provider=provider,
                use_cache=use_cache,
                force_refresh=force_refresh,
                strict_cache=True,
            )
        finally:
            translation_operation_duration_seconds.labels(operation="translate").observe(
                max(0.0, time.perf_counter() - start_time)
            )

    async def _translate(
        self,
        text: str,
        source_language: str,
        target_language: str,
        provider: Optional[str],
        use_cache: bool,
        force_refresh: bool,
        strict_cache: bool,
    ) -> TranslationResult:
        self._validate_text(text)
        self._validate_language(source_language, "source_language")
        self._validate_language(target_language, "target_language")
        self.stats["translations_requested"] += 1

        if source_language == target_language:
            return TranslationResult(
                translated_text=text,
                provider=NO_PROVIDER,
                quality=passthrough_quality(),
                from_cache=False,
            )

        adapter = self.registry.select(source_language, target_language, override=provider)

        if use_cache and not force_refresh:
            cached = await self._lookup(text, source_language, target_language, strict_cache)
            if cached is not None:
                return cached

        return await self._coalesced_translate(
            adapter,
            text,
            source_language,
            target_language,
            store=use_cache,
            strict_cache=strict_cache,
        )

    async def _lookup(
        self, text: str, source_language: str, target_language: str, strict: bool
    ) -> Optional[TranslationResult]:
        try:
            entry = await self.cache.lookup(text, source_language, target_language)
        except CacheError as e:
            if strict:
                raise
            logger.warning(f"Cache lookup failed, treating as miss: {e.detail}")
            entry = None

        if entry is None:
            self.stats["cache_misses"] += 1
            return None

        self.stats["cache_hits"] += 1
        quality = entry.quality or assess_quality(
            text, entry.translated_text, source_language, target_language
        )
        return TranslationResult(
            translated_text=entry.translated_text,
            provider=entry.provider,
            quality=quality,
            from_cache=True,
        )

    # ------------------------------------------------------------------
    # Batch translation
    # ------------------------------------------------------------------

    async def batch_translate(
        self,
        texts: List[str],
        source_language: str,
        target_languages: List[str],
        *,
        provider: Optional[str] = None,
        use_cache: bool = True,
        max_concurrency: Optional[int] = None,
    ) -> BatchTranslationJob:
        """Translate every text into every target language.

        Pair failures are recorded on the job and never abort sibling pairs.

        Args:
            texts: Source texts (duplicates are collapsed)
            source_language: Source language code
            target_languages: Target language codes (the source language is skipped)
            provider: Provider name to use exclusively
            use_cache: When False, neither read nor write the cache
            max_concurrency: Concurrent provider calls, capped at 10

        Returns:
            Finished BatchTranslationJob

        Raises:
            ValidationError: Bad batch shape, empty text or unsupported code
            ProviderNotAvailableError: Unknown or disabled provider override
            UnsupportedLanguagePairError: A target has no supporting provider
        """
        start_time = time.perf_counter()

        if not texts:
            raise ValidationError("At least one text is required", "texts")
        if len(texts) > self.max_batch_texts:
            raise ValidationError(
                f"Batch exceeds maximum of {self.max_batch_texts} texts", "texts"
            )
        for text in texts:
            self._validate_text(text, "texts")
        self._validate_language(source_language, "source_language")
        if not target_languages:
            raise ValidationError("At least one target language is required", "target_languages")
        for target in target_languages:
            self._validate_language(target, "target_languages")

        unique_texts = list(dict.fromkeys(texts))
        targets = [t for t in dict.fromkeys(target_languages) if t != source_language]
        if not targets:
            raise ValidationError(
                "Target languages must differ from the source language",
                "target_languages",
            )

        # Resolve every provider before any I/O so configuration errors fail fast
        adapters = {
            target: self.registry.select(source_language, target, override=provider)
            for target in targets
        }

        job = BatchTranslationJob(
            id=uuid.uuid4().hex,
            status=JobStatus.RUNNING,
            source_texts=unique_texts,
            source_language=source_language,
            target_languages=targets,
        )
        self.stats["batch_jobs"] += 1
        concurrency = min(
            max(1, max_concurrency or self.batch_max_concurrency), MAX_BATCH_CONCURRENCY
        )
        semaphore = asyncio.Semaphore(concurrency)
        logger.info(
            f"Batch {job.id}: {len(unique_texts)} texts x {len(targets)} targets "
            f"(concurrency={concurrency})"
        )

        per_target = await asyncio.gather(
            *(
                self._translate_for_target(
                    adapters[target],
                    unique_texts,
                    source_language,
                    target,
                    use_cache,
                    semaphore,
                )
                for target in targets
            )
        )
        outcomes = dict(zip(targets, per_target))

        for text in unique_texts:
            for target in targets:
                outcome = outcomes[target][text]
                if outcome.error is not None:
                    batch_pairs_total.labels(outcome="failed").inc()
                    job.failures.append(
                        BatchPairFailure(
                            text=text,
                            target_language=target,
                            provider=outcome.provider,
                            reason=outcome.error,
                        )
                    )
                    continue

                batch_pairs_total.labels(
                    outcome="cached" if outcome.from_cache else "translated"
                ).inc()
                job.results.setdefault(text, {})[target] = outcome.translated_text
                if outcome.quality is not None and should_use_human_review(outcome.quality):
                    job.review_required.append(BatchPairRef(text=text, target_language=target))

        job.status = JobStatus.COMPLETED if job.succeeded_pairs > 0 else JobStatus.FAILED
        job.completed_at = datetime.now(timezone.utc)

        duration = max(0.0, time.perf_counter() - start_time)
        translation_operation_duration_seconds.labels(operation="batch").observe(duration)
        log = logger.info if job.status == JobStatus.COMPLETED else logger.error
        log(
            f"Batch {job.id} {job.status.value}: {job.succeeded_pairs}/{job.total_pairs} "
            f"pairs succeeded, {len(job.failures)} failed in {duration:.2f}s"
        )
        return job

    async def _run_chunk(
        self,
        adapter: TranslationProvider,
        chunk: List[str],
        source_language: str,
        target_language: str,
        store: bool,
        semaphore: asyncio.Semaphore,
    ) -> Dict[str, TranslationResult]:
        """Translate one chunk with a single batch call, then assess and store."""
        try:
            async with semaphore:
                translations = await self._call_with_retry(
                    adapter, adapter.batch_translate, chunk, source_language, target_language
                )
        except ProviderError as e:
            logger.warning(
                f"Batch call to {adapter.name} failed for {len(chunk)} texts "
                f"({source_language}->{target_language}), "
                f"falling back to single requests: {e.reason}"
            )
            raise

        results: Dict[str, TranslationResult] = {}
        for text, translated in zip(chunk, translations):
            result = self._finalize(adapter, text, translated, source_language, target_language)
            if store:
                await self._store(text, result, source_language, target_language, strict=False)
            results[text] = result
        return results

    async def _chunk_member(
        self,
        chunk_task: "asyncio.Task[Dict[str, TranslationResult]]",
        adapter: TranslationProvider,
        text: str,
        source_language: str,
        target_language: str,
        store: bool,
        semaphore: asyncio.Semaphore,
    ) -> TranslationResult:
        """In-flight call for one text of a chunk; retried alone if the chunk fails."""
        try:
            results = await asyncio.shield(chunk_task)
        except ProviderError:
            async with semaphore:
                return await self._translate_fresh(
                    adapter, text, source_language, target_language, store, strict_cache=False
                )
        return results[text]

    async def _translate_for_target(
        self,
        adapter: TranslationProvider,
        texts: List[str],
        source_language: str,
        target_language: str,
        use_cache: bool,
        semaphore: asyncio.Semaphore,
    ) -> Dict[str, _PairOutcome]:
        outcomes: Dict[str, _PairOutcome] = {}
        misses: List[str] = []

        for text in texts:
            cached = None
            if use_cache:
                cached = await self._lookup(text, source_language, target_language, strict=False)
            if cached is not None:
                outcomes[text] = _PairOutcome(
                    provider=cached.provider,
                    translated_text=cached.translated_text,
                    quality=cached.quality,
                    from_cache=True,
                )
            else:
                misses.append(text)

        if not misses:
            return outcomes

        # Misses already in flight join that call; the rest are claimed per chunk
        leftovers: List[str] = []
        claimed: Dict[str, "asyncio.Task[TranslationResult]"] = {}
        if ProviderCapability.BATCH_TRANSLATE in adapter.capabilities:
            unclaimed: List[str] = []
            for text in misses:
                if (text, source_language, target_language, adapter.name) in self._in_flight:
                    leftovers.append(text)
                else:
                    unclaimed.append(text)

            for chunk in _chunks(unclaimed, self.batch_chunk_size):
                chunk_task = asyncio.create_task(
                    self._run_chunk(
                        adapter, chunk, source_language, target_language, use_cache, semaphore
                    )
                )
                chunk_task.add_done_callback(_consume_exception)
                for text in chunk:
                    claimed[text] = self._start_in_flight(
                        (text, source_language, target_language, adapter.name),
                        self._chunk_member(
                            chunk_task,
                            adapter,
                            text,
                            source_language,
                            target_language,
                            use_cache,
                            semaphore,
                        ),
                    )
        else:
            leftovers = misses

        async def _single(text: str) -> Tuple[str, _PairOutcome]:
            try:
                if text in claimed:
                    result = await asyncio.shield(claimed[text])
                else:
                    async with semaphore:
                        result = await self._coalesced_translate(
                            adapter,
                            text,
                            source_language,
                            target_language,
                            store=use_cache,
                            strict_cache=False,
                        )
            except (TranslationError, CacheError) as e:
                reason = e.reason if isinstance(e, ProviderError) else str(e.detail)
                logger.warning(
                    f"Batch pair failed ({source_language}->{target_language}) "
                    f"via {adapter.name}: {reason}"
                )
                return text, _PairOutcome(provider=adapter.name, error=reason)
            return text, _PairOutcome(
                provider=result.provider,
                translated_text=result.translated_text,
                quality=result.quality,
            )

        pending = [*claimed, *leftovers]
        for text, outcome in await asyncio.gather(*(_single(t) for t in pending)):
            outcomes[text] = outcome
        return outcomes

    # ------------------------------------------------------------------
    # Multilingual content
    # ------------------------------------------------------------------

    @staticmethod
    def available_languages(content: Dict[str, str]) -> List[str]:
        """Supported languages that have non-empty text in ``content``."""
        return [
            language
            for language in SUPPORTED_LANGUAGES
            if isinstance(content.get(language), str) and content[language].strip()
        ]

    @classmethod
    def missing_languages(
        cls, content: Dict[str, str], required: Optional[List[str]] = None
    ) -> List[str]:
        """Languages from ``required`` (default: all supported) lacking text."""
        present = set(cls.available_languages(content))
        return [
            language
            for language in (required or list(SUPPORTED_LANGUAGES))
            if language not in present
        ]

    async def translate_multilingual_content(
        self,
        content: Dict[str, str],
        target_languages: List[str],
        source_language: Optional[str] = None,
        *,
        provider: Optional[str] = None,
    ) -> Dict[str, str]:
        """Fill the missing target languages of a per-language content map.

        Languages that already have text are never overwritten. A failure on
        one language is logged and leaves that language missing.

        Args:
            content: Language code -> text
            target_languages: Languages the result should cover
            source_language: Entry to translate from; defaults to the first
                non-empty entry in supported-language order
            provider: Provider name to use exclusively

        Returns:
            New content map with the translated languages added

        Raises:
            ValidationError: No usable source entry or unsupported code
        """
        start_time = time.perf_counter()
        self.stats["multilingual_requests"] += 1

        for target in target_languages:
            self._validate_language(target, "target_languages")

        available = self.available_languages(content)
        if source_language is not None:
            self._validate_language(source_language, "source_language")
            if source_language not in available:
                raise ValidationError(
                    f"Content has no '{source_language}' text to translate from",
                    "content",
                )
            source = source_language
        elif available:
            source = available[0]
        else:
            raise ValidationError("Content has no text to translate from", "content")

        source_text = content[source]
        result = dict(content)
        pending = [
            target for target in dict.fromkeys(target_languages) if target not in available
        ]

        async def _fill(target: str) -> Tuple[str, Optional[str]]:
            try:
                translated = await self._translate(
                    source_text,
                    source,
                    target,
                    provider=provider,
                    use_cache=True,
                    force_refresh=False,
                    strict_cache=False,
                )
            except (TranslationError, CacheError) as e:
                logger.warning(
                    f"Multilingual translation {source}->{target} failed: {e.detail}"
                )
                return target, None
            return target, translated.translated_text

        for target, translated_text in await asyncio.gather(*(_fill(t) for t in pending)):
            if translated_text is not None:
                result[target] = translated_text

        translation_operation_duration_seconds.labels(operation="multilingual").observe(
            max(0.0, time.perf_counter() - start_time)
        )
        return result

    # ------------------------------------------------------------------
    # Detection, usage and housekeeping
    # ------------------------------------------------------------------

    async def detect_language(
        self, text: str, provider: Optional[str] = None
    ) -> DetectLanguageResponse:
        """Detect the canonical language of ``text`` with a detection-capable provider."""
        self._validate_text(text)
        adapter = self.registry.detector(override=provider)
        language = await self._call_with_retry(adapter, adapter.detect_language, text)
        return DetectLanguageResponse(language=language, provider=adapter.name)

    def get_available_providers(self) -> List[Dict[str, Any]]:
        """Enabled providers in preference order."""
        return [d.to_dict() for d in self.registry.descriptors()]

    async def get_provider_usage(self) -> Dict[str, int]:
        """Cached entry count per provider."""
        return await self.cache.usage_by_provider()

    async def clear_expired_cache(self, retention: Optional[timedelta] = None) -> int:
        """Purge cache entries older than ``retention`` (default: configured horizon).

        Returns:
            Number of entries removed
        """
        return await self.cache.purge_expired(retention)

    async def get_stats(self) -> Dict[str, Any]:
        """Get translation service statistics.

        Returns:
            Dict with service counters, cache statistics and providers
        """
        lookups = self.stats["cache_hits"] + self.stats["cache_misses"]
        return {
            **self.stats,
            "cache_hit_ratio": self.stats["cache_hits"] / lookups if lookups else 0.0,
            "in_flight": len(self._in_flight),
            "providers": self.registry.names(),
            "cache": await self.cache.get_stats(),
        }

    async def close(self) -> None:
        """Cancel in-flight calls and release provider and cache resources."""
        pending = [task for task in self._in_flight.values() if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._in_flight.clear()

        await self.registry.aclose()
        self.cache.close()
        logger.info("TranslationService closed")
