"""
Public translation routes.
"""

import logging
from typing import Any, Dict, List

from app.models.translation import (
    BatchTranslateRequest,
    BatchTranslationJob,
    DetectLanguageRequest,
    DetectLanguageResponse,
    MultilingualContentResponse,
    MultilingualTranslateRequest,
    TranslateRequest,
    TranslationResult,
)
from app.services.translation.translation_service import TranslationService
from fastapi import APIRouter, Depends, HTTPException, Request, status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/translations", tags=["Translations"])


def get_translation_service(request: Request) -> TranslationService:
    """Get the translation service created during application startup."""
    service = getattr(request.app.state, "translation_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Translation service is not initialized",
        )
    return service


@router.post("/translate", response_model=TranslationResult)
async def translate_text(
    body: TranslateRequest,
    service: TranslationService = Depends(get_translation_service),
):
    """Translate a single text, serving from cache when possible."""
    return await service.translate(
        body.text,
        body.source_language,
        body.target_language,
        provider=body.provider,
        use_cache=body.use_cache,
        force_refresh=body.force_refresh,
    )


@router.post("/batch", response_model=BatchTranslationJob)
async def batch_translate(
    body: BatchTranslateRequest,
    service: TranslationService = Depends(get_translation_service),
):
    """Translate many texts into many languages.

    Individual pair failures are reported in the job's ``failures`` list;
    the request only fails as a whole on invalid input or configuration.
    """
    return await service.batch_translate(
        body.texts,
        body.source_language,
        list(body.target_languages),
        provider=body.provider,
        use_cache=body.use_cache,
        max_concurrency=body.max_concurrency,
    )


@router.post("/multilingual", response_model=MultilingualContentResponse)
async def translate_multilingual(
    body: MultilingualTranslateRequest,
    service: TranslationService = Depends(get_translation_service),
):
    """Fill in the missing languages of a multilingual content map."""
    content = await service.translate_multilingual_content(
        body.content,
        list(body.target_languages),
        source_language=body.source_language,
    )
    missing = service.missing_languages(content, list(body.target_languages))
    return MultilingualContentResponse(
        content=content,
        available_languages=service.available_languages(content),
        missing_languages=missing,
        is_complete=not missing,
    )


@router.post("/detect", response_model=DetectLanguageResponse)
async def detect_language(
    body: DetectLanguageRequest,
    service: TranslationService = Depends(get_translation_service),
):
    return await service.detect_language(body.text, provider=body.provider)


@router.get("/providers")
async def list_providers(
    service: TranslationService = Depends(get_translation_service),
) -> Dict[str, List[Dict[str, Any]]]:
    """Enabled providers in preference order."""
    return {"providers": service.get_available_providers()}
