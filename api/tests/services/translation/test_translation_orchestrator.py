"""Tests for the TranslationService orchestrator."""

import asyncio
import gc
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from app.core.exceptions import (
    CacheError,
    ProviderError,
    ProviderNotAvailableError,
    UnsupportedLanguagePairError,
    ValidationError,
)
from app.models.translation import JobStatus
from app.services.translation.cache import TranslationCache
from app.services.translation.providers import ProviderCapability
from app.services.translation.translation_service import NO_PROVIDER

from tests.fakes import FakeProvider, build_registry, build_service

# =============================================================================
# SINGLE TRANSLATION
# =============================================================================


class TestTranslate:
    @pytest.mark.asyncio
    async def test_second_identical_call_is_served_from_cache(
        self, translation_service, translation_cache, fake_provider
    ):
        first = await translation_service.translate("Hello world", "en", "zh-HK")
        entry_after_first = await translation_cache.get("Hello world", "en", "zh-HK")
        second = await translation_service.translate("Hello world", "en", "zh-HK")
        entry_after_second = await translation_cache.get("Hello world", "en", "zh-HK")

        assert first.from_cache is False
        assert second.from_cache is True
        assert second.translated_text == first.translated_text
        assert second.provider == "fake"
        assert entry_after_second.use_count > entry_after_first.use_count
        assert len(fake_provider.translate_calls) == 1

    @pytest.mark.asyncio
    async def test_fresh_result_carries_quality(self, translation_service):
        result = await translation_service.translate("Hello world", "en", "zh-HK")

        assert result.quality.score == 1.0
        assert result.quality.needs_review is False

    @pytest.mark.asyncio
    async def test_same_language_is_passed_through(
        self, translation_service, translation_cache, fake_provider
    ):
        result = await translation_service.translate("Hello", "en", "en")

        assert result.translated_text == "Hello"
        assert result.provider == NO_PROVIDER
        assert result.quality.score == 1.0
        assert fake_provider.translate_calls == []
        assert await translation_cache.count() == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "text, source, target, field",
        [
            ("", "en", "zh-HK", "text"),
            ("   ", "en", "zh-HK", "text"),
            ("Hello", "fr", "zh-HK", "source_language"),
            ("Hello", "en", "ja", "target_language"),
        ],
    )
    async def test_invalid_input_fails_fast(
        self, translation_service, fake_provider, text, source, target, field
    ):
        with pytest.raises(ValidationError) as exc_info:
            await translation_service.translate(text, source, target)

        assert exc_info.value.status_code == 422
        assert exc_info.value.field == field
        assert fake_provider.translate_calls == []

    @pytest.mark.asyncio
    async def test_text_over_limit_is_rejected(self, provider_registry, translation_cache):
        service = build_service(provider_registry, translation_cache, max_text_length=10)

        with pytest.raises(ValidationError):
            await service.translate("x" * 11, "en", "zh-HK")

    @pytest.mark.asyncio
    async def test_preferred_provider_is_used(self, translation_cache):
        preferred = FakeProvider(name="deepl")
        fallback = FakeProvider(name="google-translate")
        service = build_service(
            build_registry((fallback, 2), (preferred, 1)), translation_cache
        )

        result = await service.translate("Hello", "en", "zh-CN")

        assert result.provider == "deepl"
        assert fallback.translate_calls == []

    @pytest.mark.asyncio
    async def test_override_selects_named_provider(self, translation_cache):
        preferred = FakeProvider(name="deepl")
        other = FakeProvider(name="google-translate")
        service = build_service(build_registry((preferred, 1), (other, 2)), translation_cache)

        result = await service.translate("Hello", "en", "zh-CN", provider="google-translate")

        assert result.provider == "google-translate"
        assert preferred.translate_calls == []

    @pytest.mark.asyncio
    async def test_unknown_override_is_rejected(self, translation_service):
        with pytest.raises(ProviderNotAvailableError):
            await translation_service.translate("Hello", "en", "zh-CN", provider="nope")

    @pytest.mark.asyncio
    async def test_unsupported_pair_is_rejected(self, translation_cache):
        limited = FakeProvider(languages=("en", "zh-CN"))
        service = build_service(build_registry((limited, 1)), translation_cache)

        with pytest.raises(UnsupportedLanguagePairError):
            await service.translate("Hello", "en", "zh-HK")

    @pytest.mark.asyncio
    async def test_provider_failure_propagates_without_fallback(self, translation_cache):
        failing = FakeProvider(name="deepl", fail_texts=["Hello"])
        backup = FakeProvider(name="google-translate")
        service = build_service(build_registry((failing, 1), (backup, 2)), translation_cache)

        with pytest.raises(ProviderError) as exc_info:
            await service.translate("Hello", "en", "zh-HK")

        assert exc_info.value.provider == "deepl"
        assert backup.translate_calls == []
        assert await translation_cache.count() == 0

    @pytest.mark.asyncio
    async def test_retryable_errors_are_retried(self, translation_service, fake_provider):
        fake_provider.errors = [
            ProviderError("fake", "timeout", retryable=True),
            ProviderError("fake", "busy", status_code=503, retryable=True),
        ]

        result = await translation_service.translate("Hello", "en", "zh-HK")

        assert result.from_cache is False
        assert len(fake_provider.translate_calls) == 3

    @pytest.mark.asyncio
    async def test_non_retryable_error_is_not_retried(self, translation_service, fake_provider):
        fake_provider.errors = [ProviderError("fake", "bad request", status_code=400)]

        with pytest.raises(ProviderError):
            await translation_service.translate("Hello", "en", "zh-HK")

        assert len(fake_provider.translate_calls) == 1

    @pytest.mark.asyncio
    async def test_retries_are_bounded(self, translation_service, fake_provider):
        fake_provider.errors = [
            ProviderError("fake", "timeout", retryable=True) for _ in range(5)
        ]

        with pytest.raises(ProviderError, match="timeout"):
            await translation_service.translate("Hello", "en", "zh-HK")

        assert len(fake_provider.translate_calls) == 3
        assert translation_service.stats["provider_errors"] == 1

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_provider_call(
        self, translation_cache, fake_provider
    ):
        fake_provider.delay = 0.05
        service = build_service(build_registry((fake_provider, 1)), translation_cache)

        results = await asyncio.gather(
            *(service.translate("Hello world", "en", "zh-HK") for _ in range(5))
        )

        assert len(fake_provider.translate_calls) == 1
        assert {r.translated_text for r in results} == {
            FakeProvider.render("Hello world", "zh-HK")
        }
        assert await translation_cache.count() == 1
        assert not service._in_flight

    @pytest.mark.asyncio
    async def test_use_cache_false_bypasses_cache(
        self, translation_service, translation_cache, fake_provider
    ):
        await translation_service.translate("Hello", "en", "zh-HK", use_cache=False)
        second = await translation_service.translate("Hello", "en", "zh-HK", use_cache=False)

        assert second.from_cache is False
        assert len(fake_provider.translate_calls) == 2
        assert await translation_cache.count() == 0

    @pytest.mark.asyncio
    async def test_force_refresh_skips_lookup_but_stores(
        self, translation_service, translation_cache, fake_provider
    ):
        await translation_cache.store("Hello", "en", "zh-HK", "舊的", "older-provider")

        result = await translation_service.translate(
            "Hello", "en", "zh-HK", force_refresh=True
        )
        entry = await translation_cache.get("Hello", "en", "zh-HK")

        assert result.from_cache is False
        assert len(fake_provider.translate_calls) == 1
        assert entry.translated_text == result.translated_text
        assert entry.provider == "fake"

    @pytest.mark.asyncio
    async def test_cache_failure_propagates(self, provider_registry):
        cache = MagicMock(spec=TranslationCache)
        cache.lookup = AsyncMock(side_effect=CacheError("disk I/O error", "lookup"))
        service = build_service(provider_registry, cache)

        with pytest.raises(CacheError) as exc_info:
            await service.translate("Hello", "en", "zh-HK")

        assert exc_info.value.status_code == 503


# =============================================================================
# BATCH TRANSLATION
# =============================================================================


class TestBatchTranslate:
    @pytest.mark.asyncio
    async def test_one_failing_pair_does_not_abort_the_batch(self, translation_cache):
        provider = FakeProvider(fail_pairs=[("b", "zh-CN")])
        service = build_service(build_registry((provider, 1)), translation_cache)

        job = await service.batch_translate(["a", "b", "c"], "en", ["zh-HK", "zh-CN"])

        assert job.status == JobStatus.COMPLETED
        assert job.succeeded_pairs == 5
        assert job.total_pairs == 6
        assert "zh-CN" not in job.results["b"]
        assert job.results["b"]["zh-HK"] == FakeProvider.render("b", "zh-HK")
        assert len(job.failures) == 1
        failure = job.failures[0]
        assert (failure.text, failure.target_language, failure.provider) == ("b", "zh-CN", "fake")
        assert job.completed_at is not None

    @pytest.mark.asyncio
    async def test_all_pairs_failing_marks_job_failed(self, translation_cache):
        provider = FakeProvider(fail_texts=["a", "b"])
        service = build_service(build_registry((provider, 1)), translation_cache)

        job = await service.batch_translate(["a", "b"], "en", ["zh-HK"])

        assert job.status == JobStatus.FAILED
        assert job.results == {}
        assert len(job.failures) == 2

    @pytest.mark.asyncio
    async def test_duplicates_and_source_language_are_dropped(
        self, translation_service, fake_provider
    ):
        job = await translation_service.batch_translate(
            ["a", "a", "b"], "en", ["zh-HK", "en", "zh-HK"]
        )

        assert job.source_texts == ["a", "b"]
        assert job.target_languages == ["zh-HK"]
        assert fake_provider.batch_calls == [(["a", "b"], "en", "zh-HK")]

    @pytest.mark.asyncio
    async def test_only_source_language_targets_is_rejected(self, translation_service):
        with pytest.raises(ValidationError):
            await translation_service.batch_translate(["a"], "en", ["en"])

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "texts, targets",
        [([], ["zh-HK"]), (["a", ""], ["zh-HK"]), (["a"], []), (["a"], ["xx"])],
    )
    async def test_bad_batch_shape_is_rejected(self, translation_service, texts, targets):
        with pytest.raises(ValidationError):
            await translation_service.batch_translate(texts, "en", targets)

    @pytest.mark.asyncio
    async def test_too_many_texts_is_rejected(self, provider_registry, translation_cache):
        service = build_service(provider_registry, translation_cache, max_batch_texts=2)

        with pytest.raises(ValidationError):
            await service.batch_translate(["a", "b", "c"], "en", ["zh-HK"])

    @pytest.mark.asyncio
    async def test_providers_resolve_before_any_io(self, translation_cache):
        limited = FakeProvider(languages=("en", "zh-CN"))
        service = build_service(build_registry((limited, 1)), translation_cache)

        with pytest.raises(UnsupportedLanguagePairError):
            await service.batch_translate(["a"], "en", ["zh-CN", "zh-HK"])

        assert limited.batch_calls == []
        assert limited.translate_calls == []

    @pytest.mark.asyncio
    async def test_cached_pairs_skip_the_provider(self, translation_service, fake_provider):
        await translation_service.translate("a", "en", "zh-HK")

        job = await translation_service.batch_translate(["a", "b"], "en", ["zh-HK"])

        assert job.succeeded_pairs == 2
        assert fake_provider.batch_calls == [(["b"], "en", "zh-HK")]

    @pytest.mark.asyncio
    async def test_misses_are_sent_in_chunks(self, provider_registry, translation_cache, fake_provider):
        service = build_service(provider_registry, translation_cache, batch_chunk_size=2)

        job = await service.batch_translate(["a", "b", "c", "d", "e"], "en", ["zh-HK"])

        assert job.succeeded_pairs == 5
        assert [call[0] for call in fake_provider.batch_calls] == [
            ["a", "b"],
            ["c", "d"],
            ["e"],
        ]

    @pytest.mark.asyncio
    async def test_provider_without_batch_capability_translates_each_text(
        self, translation_cache
    ):
        provider = FakeProvider(capabilities=(ProviderCapability.TRANSLATE,))
        service = build_service(build_registry((provider, 1)), translation_cache)

        job = await service.batch_translate(["a", "b"], "en", ["zh-HK"])

        assert job.status == JobStatus.COMPLETED
        assert provider.batch_calls == []
        assert len(provider.translate_calls) == 2

    @pytest.mark.asyncio
    async def test_suspicious_results_are_flagged_for_review(self, translation_service):
        job = await translation_service.batch_translate(
            ["[AUTO-TRANSLATED] hi", "Hello world"], "en", ["zh-HK"]
        )

        assert [(ref.text, ref.target_language) for ref in job.review_required] == [
            ("[AUTO-TRANSLATED] hi", "zh-HK")
        ]

    @pytest.mark.asyncio
    async def test_cache_failures_degrade_to_misses(self, provider_registry, tmp_path):
        cache = TranslationCache(str(tmp_path / "broken.db"))
        cache.close()
        service = build_service(provider_registry, cache)

        job = await service.batch_translate(["a", "b"], "en", ["zh-HK", "zh-CN"])

        assert job.status == JobStatus.COMPLETED
        assert job.succeeded_pairs == 4

    @pytest.mark.asyncio
    async def test_results_are_stored_in_cache(
        self, translation_service, translation_cache
    ):
        await translation_service.batch_translate(["a", "b"], "en", ["zh-HK", "zh-CN"])

        assert await translation_cache.count() == 4

    @pytest.mark.asyncio
    async def test_batch_and_single_translate_share_one_provider_call(
        self, translation_service, translation_cache, fake_provider
    ):
        fake_provider.delay = 0.05

        single, job = await asyncio.gather(
            translation_service.translate("Hello world", "en", "zh-HK"),
            translation_service.batch_translate(["Hello world"], "en", ["zh-HK"]),
        )

        assert len(fake_provider.translate_calls) + len(fake_provider.batch_calls) == 1
        assert job.results["Hello world"]["zh-HK"] == single.translated_text
        assert await translation_cache.count() == 1
        assert not translation_service._in_flight

    @pytest.mark.asyncio
    async def test_batch_joins_single_call_already_in_flight(
        self, translation_service, fake_provider
    ):
        fake_provider.delay = 0.2
        single = asyncio.create_task(translation_service.translate("a", "en", "zh-HK"))
        while not translation_service._in_flight:
            await asyncio.sleep(0)

        job = await translation_service.batch_translate(["a", "b"], "en", ["zh-HK"])
        await single

        assert job.succeeded_pairs == 2
        assert fake_provider.translate_calls == [("a", "en", "zh-HK")]
        assert fake_provider.batch_calls == [(["b"], "en", "zh-HK")]
        assert translation_service.stats["coalesced_requests"] == 1

    @pytest.mark.asyncio
    async def test_overlapping_batches_send_each_text_once(
        self, translation_service, translation_cache, fake_provider
    ):
        fake_provider.delay = 0.05

        first, second = await asyncio.gather(
            translation_service.batch_translate(["a", "b"], "en", ["zh-HK"]),
            translation_service.batch_translate(["b", "c"], "en", ["zh-HK"]),
        )

        sent = [text for call in fake_provider.batch_calls for text in call[0]]
        sent += [call[0] for call in fake_provider.translate_calls]
        assert sorted(sent) == ["a", "b", "c"]
        assert first.succeeded_pairs == second.succeeded_pairs == 2
        assert await translation_cache.count() == 3

    @pytest.mark.asyncio
    async def test_failed_chunk_retries_each_claimed_text(self, translation_cache):
        provider = FakeProvider(fail_pairs=[("b", "zh-HK")], delay=0.01)
        service = build_service(build_registry((provider, 1)), translation_cache)

        single, job = await asyncio.gather(
            service.translate("a", "en", "zh-HK"),
            service.batch_translate(["a", "b"], "en", ["zh-HK"]),
        )

        assert single.translated_text == FakeProvider.render("a", "zh-HK")
        assert job.results == {"a": {"zh-HK": single.translated_text}}
        assert [f.text for f in job.failures] == ["b"]
        assert not service._in_flight


# =============================================================================
# MULTILINGUAL CONTENT
# =============================================================================


class TestMultilingualContent:
    @pytest.mark.asyncio
    async def test_missing_languages_are_filled(self, translation_service):
        content = await translation_service.translate_multilingual_content(
            {"en": "Hello"}, ["zh-HK", "zh-CN"]
        )

        assert content == {
            "en": "Hello",
            "zh-HK": FakeProvider.render("Hello", "zh-HK"),
            "zh-CN": FakeProvider.render("Hello", "zh-CN"),
        }

    @pytest.mark.asyncio
    async def test_present_languages_are_never_overwritten(
        self, translation_service, fake_provider
    ):
        content = await translation_service.translate_multilingual_content(
            {"en": "Hello", "zh-HK": "現有內容"}, ["zh-HK", "zh-CN"]
        )

        assert content["zh-HK"] == "現有內容"
        assert [call[2] for call in fake_provider.translate_calls] == ["zh-CN"]

    @pytest.mark.asyncio
    async def test_source_defaults_to_first_supported_language_present(
        self, translation_service, fake_provider
    ):
        await translation_service.translate_multilingual_content(
            {"en": "Hello", "zh-CN": "你好"}, ["zh-HK"]
        )

        assert fake_provider.translate_calls == [("你好", "zh-CN", "zh-HK")]

    @pytest.mark.asyncio
    async def test_explicit_source_is_honoured(self, translation_service, fake_provider):
        await translation_service.translate_multilingual_content(
            {"en": "Hello", "zh-CN": "你好"}, ["zh-HK"], source_language="en"
        )

        assert fake_provider.translate_calls == [("Hello", "en", "zh-HK")]

    @pytest.mark.asyncio
    async def test_failed_language_is_left_missing(self, translation_cache):
        provider = FakeProvider(fail_pairs=[("Hello", "zh-CN")])
        service = build_service(build_registry((provider, 1)), translation_cache)

        content = await service.translate_multilingual_content(
            {"en": "Hello"}, ["zh-HK", "zh-CN"]
        )

        assert "zh-HK" in content
        assert "zh-CN" not in content
        assert service.missing_languages(content) == ["zh-CN"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "content, source",
        [({}, None), ({"en": "  "}, None), ({"en": "Hello"}, "zh-CN")],
    )
    async def test_no_usable_source_is_rejected(self, translation_service, content, source):
        with pytest.raises(ValidationError):
            await translation_service.translate_multilingual_content(
                content, ["zh-HK"], source_language=source
            )

    def test_language_helpers(self, translation_service):
        content = {"zh-HK": "你好", "en": "", "zh-CN": "你好"}

        assert translation_service.available_languages(content) == ["zh-HK", "zh-CN"]
        assert translation_service.missing_languages(content) == ["en"]
        assert translation_service.missing_languages(content, ["zh-CN"]) == []


# =============================================================================
# DETECTION, USAGE AND HOUSEKEEPING
# =============================================================================


class TestHousekeeping:
    @pytest.mark.asyncio
    async def test_detect_language(self, translation_service, fake_provider):
        fake_provider.detected = "zh-HK"

        detected = await translation_service.detect_language("你好")

        assert detected.language == "zh-HK"
        assert detected.provider == "fake"

    @pytest.mark.asyncio
    async def test_available_providers_in_rank_order(self, translation_cache):
        service = build_service(
            build_registry(
                (FakeProvider(name="google-translate"), 2),
                (FakeProvider(name="deepl"), 1),
                (FakeProvider(name="off"), 0, False),
            ),
            translation_cache,
        )

        names = [p["name"] for p in service.get_available_providers()]

        assert names == ["deepl", "google-translate"]

    @pytest.mark.asyncio
    async def test_provider_usage_counts_cached_entries(self, translation_service):
        await translation_service.translate("a", "en", "zh-HK")
        await translation_service.translate("b", "en", "zh-HK")

        assert await translation_service.get_provider_usage() == {"fake": 2}

    @pytest.mark.asyncio
    async def test_expired_entries_are_swept(self, provider_registry, tmp_path):
        now = {"value": datetime(2026, 1, 1, tzinfo=timezone.utc)}
        cache = TranslationCache(str(tmp_path / "sweep.db"), clock=lambda: now["value"])
        service = build_service(provider_registry, cache)
        try:
            await service.translate("old", "en", "zh-HK")
            now["value"] += timedelta(days=25)
            await service.translate("new", "en", "zh-HK")
            now["value"] += timedelta(days=10)

            removed = await service.clear_expired_cache()

            assert removed == 1
            assert await cache.get("old", "en", "zh-HK") is None
            assert await cache.get("new", "en", "zh-HK") is not None
        finally:
            cache.close()

    @pytest.mark.asyncio
    async def test_stats_report_cache_activity(self, translation_service):
        await translation_service.translate("a", "en", "zh-HK")
        await translation_service.translate("a", "en", "zh-HK")

        stats = await translation_service.get_stats()

        assert stats["cache_hits"] == 1
        assert stats["cache_misses"] == 1
        assert stats["cache_hit_ratio"] == 0.5
        assert stats["providers"] == ["fake"]
        assert stats["cache"]["entries"] == 1

    @pytest.mark.asyncio
    async def test_close_releases_providers(self, translation_service, fake_provider):
        await translation_service.close()

        assert fake_provider.closed is True

    @pytest.mark.asyncio
    async def test_zero_retention_sweeps_every_older_entry(self, provider_registry, tmp_path):
        now = {"value": datetime(2026, 1, 1, tzinfo=timezone.utc)}
        cache = TranslationCache(str(tmp_path / "zero.db"), clock=lambda: now["value"])
        service = build_service(provider_registry, cache)
        try:
            await service.translate("a", "en", "zh-HK")
            now["value"] += timedelta(seconds=1)

            assert await service.clear_expired_cache(timedelta(0)) == 1
        finally:
            cache.close()

    @pytest.mark.asyncio
    async def test_failure_after_waiters_are_cancelled_is_not_reported(
        self, translation_cache
    ):
        provider = FakeProvider(delay=0.05)
        provider.errors.append(ProviderError("fake", "bad request", status_code=400))
        service = build_service(build_registry((provider, 1)), translation_cache)
        loop = asyncio.get_running_loop()
        reported = []
        loop.set_exception_handler(lambda _loop, context: reported.append(context))
        try:
            waiter = asyncio.create_task(service.translate("Hello", "en", "zh-HK"))
            while not service._in_flight:
                await asyncio.sleep(0)
            shared = next(iter(service._in_flight.values()))
            waiter.cancel()
            await asyncio.wait([shared])
            await asyncio.sleep(0)

            assert waiter.cancelled()
            del waiter, shared
            gc.collect()

            assert not [c for c in reported if "never retrieved" in c.get("message", "")]
        finally:
            loop.set_exception_handler(None)
