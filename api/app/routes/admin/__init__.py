"""
Admin routes package for the translation service API.

- translations: Provider usage, service statistics and cache purge
"""

from app.routes.admin import translations
from fastapi import FastAPI


def include_admin_routers(app: FastAPI) -> None:
    """Include all admin routers in the FastAPI application.

    Args:
        app: FastAPI application instance
    """
    app.include_router(translations.router)


__all__ = [
    "include_admin_routers",
    "translations",
]
