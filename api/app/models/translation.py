"""Pydantic models for translation results, cached records and batch jobs."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, computed_field, field_validator

LanguageCode = Literal["zh-HK", "zh-CN", "en"]

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class QualityLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Core data models
# ---------------------------------------------------------------------------


class QualityAssessment(BaseModel):
    """Trust estimate for one machine translation."""

    score: float = Field(..., ge=0.0, le=1.0)
    confidence: float = Field(..., ge=0.0, le=1.0)
    needs_review: bool
    issues: List[str] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def level(self) -> QualityLevel:
        if self.score >= 0.8:
            return QualityLevel.HIGH
        if self.score >= 0.6:
            return QualityLevel.MEDIUM
        return QualityLevel.LOW


class CachedTranslation(BaseModel):
    """Persisted translation keyed by (source_text, source_language, target_language)."""

    id: Optional[int] = None
    source_text: str
    source_language: str
    target_language: str
    translated_text: str
    provider: str
    quality: Optional[QualityAssessment] = None
    created_at: datetime
    last_used_at: datetime
    use_count: int = Field(1, ge=1)


class TranslationResult(BaseModel):
    """Outcome of a single translate call."""

    translated_text: str
    provider: str
    quality: QualityAssessment
    from_cache: bool


class BatchPairFailure(BaseModel):
    text: str
    target_language: str
    provider: Optional[str] = None
    reason: str


class BatchPairRef(BaseModel):
    text: str
    target_language: str


class BatchTranslationJob(BaseModel):
    """One batch request fanned out over texts x target languages.

    ``results`` maps each source text to its successful translations by
    target language; failed pairs are omitted there and listed in ``failures``.
    """

    id: str
    status: JobStatus = JobStatus.PENDING
    source_texts: List[str]
    source_language: str
    target_languages: List[str]
    results: Dict[str, Dict[str, str]] = Field(default_factory=dict)
    failures: List[BatchPairFailure] = Field(default_factory=list)
    review_required: List[BatchPairRef] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_pairs(self) -> int:
        return len(self.source_texts) * len(self.target_languages)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def succeeded_pairs(self) -> int:
        return sum(len(by_language) for by_language in self.results.values())


# ---------------------------------------------------------------------------
# API request / response models
# ---------------------------------------------------------------------------


class TranslateRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=10000)
    source_language: LanguageCode
    target_language: LanguageCode
    provider: Optional[str] = None
    use_cache: bool = True
    force_refresh: bool = False


class BatchTranslateRequest(BaseModel):
    texts: List[str] = Field(..., min_length=1, max_length=100)
    source_language: LanguageCode
    target_languages: List[LanguageCode] = Field(..., min_length=1)
    provider: Optional[str] = None
    use_cache: bool = True
    max_concurrency: Optional[int] = Field(None, ge=1, le=10)

    @field_validator("texts")
    @classmethod
    def validate_texts(cls, v: List[str]) -> List[str]:
        for text in v:
            if not text or len(text) > 10000:
                raise ValueError("each text must be 1-10000 characters")
        return v


class MultilingualTranslateRequest(BaseModel):
    content: Dict[str, str]
    target_languages: List[LanguageCode] = Field(..., min_length=1)
    source_language: Optional[LanguageCode] = None


class MultilingualContentResponse(BaseModel):
    content: Dict[str, str]
    available_languages: List[str]
    missing_languages: List[str]
    is_complete: bool


class DetectLanguageRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=10000)
    provider: Optional[str] = None


class DetectLanguageResponse(BaseModel):
    language: str
    provider: str


class CachePurgeRequest(BaseModel):
    retention_days: Optional[int] = Field(None, ge=1, le=3650)


class CachePurgeResponse(BaseModel):
    removed: int
    retention_days: int
