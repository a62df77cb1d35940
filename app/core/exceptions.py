"""
Custom exceptions for the Interview Analysis service.

This module defines a hierarchy of exceptions so every failure in the analysis
pipeline carries an HTTP status and a message that is safe to show to the end
user. Internal diagnostic detail stays in ``message``/``details`` and is only
ever logged.
"""
import logging
from typing import Optional
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ============================================================================
# Custom Exception Classes
# ============================================================================

class AppError(Exception):
    """Base exception for all application errors."""
    status_code: int = 500
    default_user_message: str = "Something went wrong. Please try again."

    def __init__(self, message: str, details: Optional[dict] = None, user_message: Optional[str] = None):
        self.message = message
        self.details = details or {}
        self.user_message = user_message or self.default_user_message
        super().__init__(self.message)


class InvalidInputError(AppError):
    """Caller input was rejected locally, before any network call."""
    status_code = 400

    def __init__(self, message: str, details: Optional[dict] = None):
        # The reason is about the caller's own input, so it is safe to echo.
        super().__init__(message, details, user_message=message)


class RateLimitedError(AppError):
    """The caller's request budget for a namespace is exhausted."""
    status_code = 429
    default_user_message = "Too many requests. Please wait a moment and try again."


class TranscriptNotReadyError(AppError):
    """The transcript was still being processed after the last poll."""
    status_code = 503
    default_user_message = "Transcript is not yet available. Please wait a moment and try again."


class UpstreamError(AppError):
    """An external collaborator returned a hard error."""
    status_code = 502
    default_user_message = "Failed to fetch transcript"


class ConversationNotFoundError(UpstreamError):
    """The transcript source does not know the conversation."""
    status_code = 404
    default_user_message = "Conversation not found"


class UpstreamUnavailableError(UpstreamError):
    """An external collaborator could not be reached at all."""
    status_code = 503
    default_user_message = "Network error. Please check your connection and try again."


class ScoringValidationError(AppError):
    """The scoring payload violated the result schema. Never shown to users."""
    status_code = 500
    default_user_message = "Failed to score the interview"


class ScoringFailedError(AppError):
    """Opaque scoring failure surfaced to the caller."""
    status_code = 500
    default_user_message = "Failed to score the interview"


class ConfigurationError(AppError):
    """Exception raised when configuration is invalid or missing."""
    status_code = 500
    default_user_message = "Service configuration error"


class PipelineStateError(RuntimeError):
    """Illegal phase transition or reuse of a finished pipeline."""
    pass


# ============================================================================
# FastAPI Exception Handlers
# ============================================================================

async def app_exception_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc.message} {exc.details or ''}".rstrip())
    else:
        logger.warning(f"{type(exc).__name__}: {exc.message}")
    headers = {"Retry-After": "60"} if isinstance(exc, RateLimitedError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.user_message},
        headers=headers,
    )


async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error"},
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    logger.warning(f"HTTP exception: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )
