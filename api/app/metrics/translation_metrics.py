"""Prometheus metrics for the translation orchestration and caching pipeline."""

from prometheus_client import Counter, Histogram

provider_requests_total = Counter(
    "translation_provider_requests_total",
    "Provider adapter calls by provider/operation/outcome",
    ["provider", "operation", "outcome"],
)

provider_request_duration_seconds = Histogram(
    "translation_provider_request_duration_seconds",
    "Latency of provider adapter calls",
    ["provider", "operation"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
)

provider_retries_total = Counter(
    "translation_provider_retries_total",
    "Retried provider calls after a retryable failure",
    ["provider"],
)

cache_lookups_total = Counter(
    "translation_cache_lookups_total",
    "Translation cache lookups by result",
    ["result"],
)

cache_evictions_total = Counter(
    "translation_cache_evictions_total",
    "Entries evicted because the cache reached its size limit",
)

cache_purged_total = Counter(
    "translation_cache_purged_total",
    "Entries removed by the expiry sweep",
)

coalesced_requests_total = Counter(
    "translation_coalesced_requests_total",
    "Cache misses that joined an in-flight provider call for the same key",
)

translation_quality_total = Counter(
    "translation_quality_total",
    "Fresh translations by quality level",
    ["level", "needs_review"],
)

batch_pairs_total = Counter(
    "translation_batch_pairs_total",
    "Batch (text, target language) pair outcomes",
    ["outcome"],
)

translation_operation_duration_seconds = Histogram(
    "translation_operation_duration_seconds",
    "Duration of orchestrator operations",
    ["operation"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
)
