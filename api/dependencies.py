"""
Dependency injection utilities for FastAPI.

This module provides reusable dependencies for the core services,
authentication, and other cross-cutting concerns.
"""

import logging
from fastapi import Depends, HTTPException, Header, status

from api.config import settings
from services.evaluation_service import CircularPolicy, FormulaEvaluator
from services.pattern_service import PatternDetector, ValueGenerator
from services.workbook_service import WorkbookService

logger = logging.getLogger(__name__)


def get_evaluator() -> FormulaEvaluator:
    """
    Get a formula evaluator configured from settings.

    The evaluator is stateless, so a new one per request is cheap.

    Usage:
        @app.post("/endpoint")
        def endpoint(evaluator: FormulaEvaluator = Depends(get_evaluator)):
            pass
    """
    try:
        policy = CircularPolicy(settings.CIRCULAR_REFERENCE_MODE.lower())
    except ValueError:
        logger.warning(f"Unknown CIRCULAR_REFERENCE_MODE "
                       f"{settings.CIRCULAR_REFERENCE_MODE!r}, using 'zero'")
        policy = CircularPolicy.ZERO
    return FormulaEvaluator(circular_policy=policy)


def get_pattern_detector() -> PatternDetector:
    """Get the fill-down pattern detector."""
    return PatternDetector()


def get_value_generator() -> ValueGenerator:
    """Get the fill-down value generator with the configured threshold."""
    return ValueGenerator(min_confidence=settings.MIN_PATTERN_CONFIDENCE)


def get_workbook_service() -> WorkbookService:
    """Get the workbook file adapter."""
    return WorkbookService()


def get_api_key(
    x_api_key: str = Header(None, alias=settings.API_KEY_HEADER)
) -> str:
    """
    Validate API key from header.

    Args:
        x_api_key: API key from request header

    Returns:
        Validated API key

    Raises:
        HTTPException: If API key is invalid or missing
    """
    if not settings.ENABLE_API_KEY_AUTH:
        # API key auth disabled - allow all requests
        return "public"

    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required",
            headers={"WWW-Authenticate": "ApiKey"}
        )

    if settings.API_KEYS and x_api_key not in settings.API_KEYS:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key"
        )

    return x_api_key


def get_current_user(api_key: str = Depends(get_api_key)) -> str:
    """
    Get current user from API key.

    Args:
        api_key: Validated API key

    Returns:
        User identifier (the API key itself)
    """
    return api_key


def verify_file_size(file_size: int) -> bool:
    """
    Verify uploaded file size is within limit.

    Args:
        file_size: File size in bytes

    Returns:
        True if size is acceptable

    Raises:
        HTTPException: If file is too large
    """
    max_size_bytes = settings.MAX_FILE_SIZE_MB * 1024 * 1024

    if file_size > max_size_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File size ({file_size / 1024 / 1024:.1f} MB) exceeds maximum allowed "
                   f"({settings.MAX_FILE_SIZE_MB} MB)"
        )

    return True


def verify_file_extension(filename: str) -> bool:
    """
    Verify file has allowed extension.

    Args:
        filename: Name of uploaded file

    Returns:
        True if extension is allowed

    Raises:
        HTTPException: If extension is not allowed
    """
    from pathlib import Path

    ext = Path(filename or '').suffix.lower()

    if ext not in [e.lower() for e in settings.ALLOWED_EXTENSIONS]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File extension '{ext}' not allowed. "
                   f"Allowed extensions: {', '.join(settings.ALLOWED_EXTENSIONS)}"
        )

    return True
