"""
Security utilities for the translation service API.
"""

import logging
import secrets
from typing import Optional

from app.core.config import get_settings
from fastapi import HTTPException, Request, status

# Minimum length for secure API keys
MIN_API_KEY_LENGTH = 24

logger = logging.getLogger(__name__)


def verify_admin_key(provided_key: str) -> bool:
    """Verify that the provided API key is valid.

    Args:
        provided_key: The API key to verify

    Returns:
        bool: True if the key is valid

    Raises:
        HTTPException: If admin access is not configured
    """
    admin_api_key = get_settings().ADMIN_API_KEY

    if not admin_api_key:
        logger.warning("Admin access attempted but ADMIN_API_KEY is not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin access not configured",
        )

    if len(admin_api_key) < MIN_API_KEY_LENGTH:
        logger.warning(
            f"ADMIN_API_KEY is configured with insecure length: {len(admin_api_key)} (min: {MIN_API_KEY_LENGTH})"
        )

    return secrets.compare_digest(provided_key, admin_api_key)


def _extract_api_key(request: Request) -> Optional[str]:
    authorization = request.headers.get("Authorization", "")
    if authorization.startswith("Bearer "):
        return authorization[len("Bearer ") :]
    return request.headers.get("X-API-KEY")


def verify_admin_access(request: Request) -> bool:
    """Verify that the request carries the admin API key.

    The key is accepted from the ``X-API-KEY`` header or a ``Bearer``
    Authorization header.

    Args:
        request: The FastAPI request object

    Returns:
        bool: True if access is granted

    Raises:
        HTTPException: If access is denied with appropriate status code
    """
    client_host = request.client.host if request.client else "unknown"
    provided_key = _extract_api_key(request)

    if provided_key:
        if verify_admin_key(provided_key):
            logger.debug(f"Admin access granted via header from {client_host}")
            return True

        logger.warning(f"Invalid admin credentials provided from {client_host}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin credentials",
        )

    logger.warning(f"Missing admin authentication from {client_host}")
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin authentication required"
    )
