import os
import time

import psutil  # type: ignore[import-untyped]
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter()


def _translation_service_status(request: Request) -> str:
    service = getattr(request.app.state, "translation_service", None)
    if service is None:
        return "initializing"
    if not service.registry.names():
        return "degraded"
    return "healthy"


@router.get("/health")
async def health_check(request: Request):
    """
    Health check endpoint that monitors system resources and service status.

    Reports "degraded" when the service runs without any enabled translation
    provider (cached translations are still served).
    """
    cpu_percent = psutil.cpu_percent()
    memory = psutil.virtual_memory()
    disk = psutil.disk_usage("/")

    translation_status = _translation_service_status(request)
    service = getattr(request.app.state, "translation_service", None)

    # BUILD_ID is injected via Docker build arg from git commit hash
    build_id = os.getenv("BUILD_ID", "unknown")

    return {
        "status": translation_status,
        "timestamp": int(time.time()),
        "build_id": build_id,
        "system": {
            "cpu_percent": cpu_percent,
            "memory_percent": memory.percent,
            "disk_percent": disk.percent,
        },
        "services": {"translation": translation_status},
        "providers": service.registry.names() if service else [],
    }


@router.get("/health/ready")
async def readiness_check(request: Request):
    """
    Readiness probe: ready once the translation service has been created.
    """
    if getattr(request.app.state, "translation_service", None) is None:
        return JSONResponse(status_code=503, content={"status": "initializing"})
    return {"status": "ready"}


@router.get("/health/live")
async def liveness_check():
    """
    Liveness probe that checks if the service is running.
    """
    return {"status": "alive"}
