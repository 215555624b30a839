"""Deterministic quality heuristic for machine translations.

Pure functions: no I/O and no state. The assessment decides whether a machine
translation may be trusted or has to be routed to human review.
"""

import logging
import re
from typing import List, Optional

from app.models.translation import QualityAssessment
from app.services.translation.languages import contains_cjk, is_chinese_script

logger = logging.getLogger(__name__)

REVIEW_THRESHOLD = 0.7
DEFAULT_CONFIDENCE = 0.8

MIN_LENGTH_RATIO = 0.3
MAX_LENGTH_RATIO = 3.0

UNTRANSLATED_PENALTY = 0.3
LENGTH_RATIO_PENALTY = 0.2
ARTIFACT_PENALTY = 0.1
MARKUP_PENALTY = 0.1
MISSING_SCRIPT_PENALTY = 0.3

ISSUE_EMPTY = "Empty translation"
ISSUE_UNTRANSLATED = "Text appears untranslated"
ISSUE_LENGTH_RATIO = "Unusual length ratio"
ISSUE_ARTIFACTS = "Contains translation artifacts"
ISSUE_MARKUP = "HTML markup not preserved"
ISSUE_NO_CHINESE = "No Chinese characters in Chinese translation"

_ARTIFACT_MARKER = "[AUTO-TRANSLATED"
_HTML_TAG = re.compile(r"<[^>]+>")


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def assess_quality(
    source_text: str,
    translated_text: str,
    source_language: str,
    target_language: str,
    provider_confidence: Optional[float] = None,
) -> QualityAssessment:
    """Score a translation, starting from 1.0 and applying ordered penalties.

    Checks, in order:
    1. Empty translation -> score 0, no further checks
    2. Output identical to the source while languages differ
    3. Length ratio outside [0.3, 3.0]
    4. Leftover auto-translation markers
    5. HTML tag count changed
    6. Chinese target without any CJK characters

    Args:
        source_text: Original text
        translated_text: Provider output
        source_language: Source language code
        target_language: Target language code
        provider_confidence: Confidence reported by the provider, if any

    Returns:
        QualityAssessment with score, confidence, review flag and issues
    """
    if not translated_text or not translated_text.strip():
        return QualityAssessment(
            score=0.0,
            confidence=0.0,
            needs_review=True,
            issues=[ISSUE_EMPTY],
        )

    issues: List[str] = []
    score = 1.0

    if translated_text == source_text and source_language != target_language:
        issues.append(ISSUE_UNTRANSLATED)
        score -= UNTRANSLATED_PENALTY

    if source_text:
        length_ratio = len(translated_text) / len(source_text)
        if length_ratio < MIN_LENGTH_RATIO or length_ratio > MAX_LENGTH_RATIO:
            issues.append(ISSUE_LENGTH_RATIO)
            score -= LENGTH_RATIO_PENALTY

    if _ARTIFACT_MARKER in translated_text:
        issues.append(ISSUE_ARTIFACTS)
        score -= ARTIFACT_PENALTY

    if len(_HTML_TAG.findall(source_text)) != len(_HTML_TAG.findall(translated_text)):
        issues.append(ISSUE_MARKUP)
        score -= MARKUP_PENALTY

    if is_chinese_script(target_language) and not contains_cjk(translated_text):
        issues.append(ISSUE_NO_CHINESE)
        score -= MISSING_SCRIPT_PENALTY

    # Round away float noise from the penalty arithmetic
    score = round(_clamp(score), 4)

    if provider_confidence is not None:
        confidence = _clamp(provider_confidence)
    else:
        confidence = min(score, DEFAULT_CONFIDENCE)

    needs_review = score < REVIEW_THRESHOLD or bool(issues)

    if issues:
        logger.debug(
            f"Quality issues for {source_language}->{target_language}: "
            f"{issues} (score={score:.2f})"
        )

    return QualityAssessment(
        score=score,
        confidence=confidence,
        needs_review=needs_review,
        issues=issues,
    )


def should_use_human_review(quality: QualityAssessment) -> bool:
    """Single choke-point before a machine translation is treated as final."""
    return quality.needs_review or quality.score < REVIEW_THRESHOLD


def passthrough_quality() -> QualityAssessment:
    """Assessment for text returned unchanged because source == target."""
    return QualityAssessment(score=1.0, confidence=1.0, needs_review=False, issues=[])
