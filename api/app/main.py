"""
FastAPI application for the marketplace translation service.
This module sets up the API server with routes, middleware, and error handling.
"""

import ipaddress
import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict

from app.core.config import get_settings
from app.core.error_handlers import register_exception_handlers
from app.routes import health, translations
from app.routes.admin import include_admin_routers
from app.services.cache_maintenance_service import CacheMaintenanceService
from app.services.translation.translation_service import TranslationService
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from prometheus_fastapi_instrumentator import Instrumentator
from prometheus_fastapi_instrumentator import metrics as instrumentator_metrics

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger("app.main")

# Settings are initialized lazily on first access, not at import time


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Application startup...")

    settings = get_settings()
    app.state.settings = settings

    logger.info("Creating data directories...")
    settings.ensure_data_dirs()

    logger.info("Initializing TranslationService...")
    translation_service = TranslationService.from_settings(settings)
    app.state.translation_service = translation_service

    logger.info("Starting translation cache maintenance...")
    maintenance_service = CacheMaintenanceService(
        settings=settings, translation_service=translation_service
    )
    app.state.cache_maintenance_service = maintenance_service
    await maintenance_service.start()

    yield

    # Shutdown
    logger.info("Application shutdown...")
    await maintenance_service.stop()
    await translation_service.close()
    app.state.translation_service = None


# Create FastAPI application
app = FastAPI(
    title=get_settings().PROJECT_NAME,
    docs_url="/api/docs",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)


def custom_openapi() -> Dict[str, Any]:
    """Generate the OpenAPI schema with the admin API key scheme applied to /admin routes."""
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )

    openapi_schema["components"] = openapi_schema.get("components", {})
    openapi_schema["components"]["securitySchemes"] = {
        "AdminApiKeyAuth": {
            "type": "apiKey",
            "in": "header",
            "name": "Authorization",
            "description": "Enter the token with the `Bearer ` prefix, e.g. `Bearer abcdef12345`",
        },
        "AdminApiKeyHeader": {
            "type": "apiKey",
            "in": "header",
            "name": "X-API-KEY",
            "description": "Admin API key",
        },
    }

    for path, operations in openapi_schema["paths"].items():
        if not path.startswith("/admin/"):
            continue
        for method, operation in operations.items():
            if method == "parameters" or not isinstance(operation, dict):
                continue
            operation["security"] = [
                {"AdminApiKeyAuth": []},
                {"AdminApiKeyHeader": []},
            ]

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi  # type: ignore[method-assign]

# Configure CORS
# Toggle credentials off when wildcard is used (Starlette forbids wildcard + credentials)
_origins = get_settings().CORS_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=False if _origins == ["*"] else True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Set up Prometheus metrics
# We serve /metrics ourselves instead of calling .expose()
instrumentator = Instrumentator(
    should_group_status_codes=False,
    should_ignore_untemplated=True,
    should_respect_env_var=False,
    should_instrument_requests_inprogress=True,
    excluded_handlers=["/health", "/health/ready", "/health/live", "/metrics"],
    inprogress_name="http_requests_inprogress",
    inprogress_labels=True,
)
instrumentator.add(instrumentator_metrics.default())
instrumentator.add(
    instrumentator_metrics.latency(buckets=(0.05, 0.1, 0.5, 1, 2, 5, 10, 30))
)
instrumentator.instrument(app)
logger.info("Prometheus metrics instrumentation initialized")


def _is_private_client(client_host: str) -> bool:
    if client_host in {"localhost", "testclient"}:
        return True
    host = client_host.strip("[]")
    # "127.0.0.1:8000" -> "127.0.0.1"; bare IPv6 addresses keep their colons
    if host.count(":") == 1:
        host = host.rsplit(":", 1)[0]
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        # Unparsable address - deny (fail closed)
        return False
    return ip.is_private or ip.is_loopback or ip.is_link_local


@app.get("/metrics", include_in_schema=False)
async def metrics(request: Request):
    """
    Prometheus metrics endpoint.

    In production only private and loopback clients are served; everyone
    else gets a 404.
    """
    settings = get_settings()
    if str(settings.ENVIRONMENT).strip().lower() in {"production", "prod"}:
        client_host = (request.client.host if request.client else "") or ""
        if not _is_private_client(client_host):
            raise HTTPException(status_code=404)

    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(translations.router)
include_admin_routers(app)

# Register exception handlers
register_exception_handlers(app)


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    # Bind to 0.0.0.0 only in DEBUG mode (container/development)
    host = "0.0.0.0" if settings.DEBUG else "127.0.0.1"

    uvicorn.run(
        "app.main:app",
        host=host,
        port=8000,
        reload=settings.DEBUG,
    )
