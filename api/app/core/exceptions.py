"""
Custom exception hierarchy for the translation service.

This module defines a standardized exception hierarchy for consistent
error handling across the application.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class BaseAppException(HTTPException):
    """Base exception for all application errors."""

    def __init__(
        self,
        detail: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        headers: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code or self.__class__.__name__


# Data Validation Exceptions


class ValidationError(BaseAppException):
    """Raised when data validation fails."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = (
            f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        )
        super().__init__(
            detail, status.HTTP_422_UNPROCESSABLE_ENTITY, error_code=error_code
        )
        self.field = field


# Translation Exceptions


class TranslationError(BaseAppException):
    """Raised when a translation cannot be produced."""

    def __init__(
        self,
        detail: str,
        status_code: int = status.HTTP_502_BAD_GATEWAY,
        error_code: Optional[str] = None,
    ):
        super().__init__(
            detail, status_code, error_code=error_code or "TRANSLATION_ERROR"
        )


class ProviderError(TranslationError):
    """Raised when an external translation backend fails.

    Always attributable to one named provider. ``retryable`` marks failures
    that may succeed on a later attempt (timeouts, transport errors, 408/429/5xx).
    """

    def __init__(
        self,
        provider: str,
        reason: str,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        detail = f"Provider '{provider}' failed: {reason}"
        if status_code is not None:
            detail = f"{detail} (HTTP {status_code})"
        super().__init__(detail, error_code="PROVIDER_ERROR")
        self.provider = provider
        self.reason = reason
        self.provider_status = status_code
        self.retryable = retryable


class UnsupportedLanguagePairError(TranslationError):
    """Raised when no enabled provider supports the requested language pair."""

    def __init__(self, source_language: str, target_language: str):
        super().__init__(
            f"No enabled translation provider supports "
            f"'{source_language}' -> '{target_language}'",
            status.HTTP_400_BAD_REQUEST,
            error_code="UNSUPPORTED_LANGUAGE_PAIR",
        )
        self.source_language = source_language
        self.target_language = target_language


class ProviderNotAvailableError(TranslationError):
    """Raised when a requested provider is unknown or disabled."""

    def __init__(self, provider: str):
        super().__init__(
            f"Translation provider '{provider}' not available",
            status.HTTP_400_BAD_REQUEST,
            error_code="PROVIDER_NOT_AVAILABLE",
        )
        self.provider = provider


# Storage Exceptions


class CacheError(BaseAppException):
    """Raised when the translation cache cannot be read or written."""

    def __init__(self, detail: str, operation: str):
        # Map to controlled vocabulary to prevent high cardinality
        operation_map = {
            "lookup": "LOOKUP",
            "store": "STORE",
            "purge": "PURGE",
            "read": "READ",
            "init": "INIT",
        }
        normalized_op = operation_map.get(operation.lower(), "UNKNOWN")
        super().__init__(
            f"Translation cache {operation} failed: {detail}",
            status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code=f"CACHE_{normalized_op}_ERROR",
        )
        self.operation = operation
