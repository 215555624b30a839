"""
Admin translation cache and provider usage routes.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from app.core.security import verify_admin_access
from app.models.translation import CachePurgeRequest, CachePurgeResponse
from app.routes.translations import get_translation_service
from app.services.translation.translation_service import TranslationService
from fastapi import APIRouter, Depends

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin/translations",
    tags=["Admin Translations"],
    dependencies=[Depends(verify_admin_access)],
    responses={
        401: {"description": "Unauthorized - Invalid or missing API key"},
        403: {"description": "Forbidden - Insufficient permissions"},
    },
)


@router.get("/usage")
async def get_provider_usage(
    service: TranslationService = Depends(get_translation_service),
) -> Dict[str, Any]:
    """Cached translation count per provider."""
    usage = await service.get_provider_usage()
    return {"usage": usage, "total": sum(usage.values())}


@router.get("/stats")
async def get_translation_stats(
    service: TranslationService = Depends(get_translation_service),
) -> Dict[str, Any]:
    return await service.get_stats()


@router.post("/cache/purge", response_model=CachePurgeResponse)
async def purge_translation_cache(
    body: Optional[CachePurgeRequest] = None,
    service: TranslationService = Depends(get_translation_service),
):
    """Remove cached translations older than the retention horizon.

    ``retention_days`` overrides the configured horizon for this sweep only.
    """
    retention_days = body.retention_days if body else None
    retention = timedelta(days=retention_days) if retention_days else None
    removed = await service.clear_expired_cache(retention)
    effective_days = retention_days or service.cache.retention.days
    logger.info(f"Admin purge removed {removed} cached translations (>{effective_days} days)")
    return CachePurgeResponse(removed=removed, retention_days=effective_days)
