from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
import traceback
from .logger import logger
from .schemas import ApiError


QUOTA_EXCEEDED_MESSAGE = "AI usage limit exceeded. Please try again later."


class IffyBaseException(Exception):
    """Base exception for the gift recommender"""
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(self.message)


class CatalogUnavailable(IffyBaseException):
    """Raised when the gift sheet cannot be read or is empty"""
    def __init__(self, message: str = "Gift catalog is unavailable"):
        super().__init__(message, "CATALOG_UNAVAILABLE", 503)


class AnalysisError(IffyBaseException):
    """Raised when photo classification fails"""
    def __init__(self, message: str = "Failed to analyze photo"):
        super().__init__(message, "ANALYSIS_ERROR", 502)


class RecommendationError(IffyBaseException):
    """Raised when the recommendation model call fails"""
    def __init__(self, message: str = "Failed to get a gift recommendation", code: str = "RECOMMENDATION_ERROR", status_code: int = 502):
        super().__init__(message, code, status_code)


class QuotaExceededError(RecommendationError):
    """Raised when the model provider rejects us for quota or rate limits"""
    def __init__(self, message: str = QUOTA_EXCEEDED_MESSAGE):
        super().__init__(message, "QUOTA_EXCEEDED", 500)


class CatalogEntryMissing(IffyBaseException):
    """Raised when the designated default entry is not in the sheet"""
    def __init__(self, name: str):
        super().__init__(f"Default catalog entry '{name}' not found", "CATALOG_ENTRY_MISSING", 500)


class NoCandidateAvailable(IffyBaseException):
    """Raised when neither the model pick nor any fallback yields a gift"""
    def __init__(self, selected_name: str):
        super().__init__(
            f"No catalog entry for '{selected_name}' and no fallback candidate",
            "NO_CANDIDATE_AVAILABLE",
            500,
        )


class StorageError(IffyBaseException):
    """Raised when S3 operations fail"""
    def __init__(self, message: str = "S3 storage operation failed"):
        super().__init__(message, "STORAGE_ERROR", 502)


class PersistenceError(IffyBaseException):
    """Raised when the record store cannot be written or read"""
    def __init__(self, message: str = "Database operation failed"):
        super().__init__(message, "PERSISTENCE_ERROR", 500)


class GenerationTriggerError(IffyBaseException):
    """Raised when the stylization task cannot be enqueued"""
    def __init__(self, message: str = "Failed to start image generation"):
        super().__init__(message, "GENERATION_TRIGGER_ERROR", 502)


class IffyNotFoundError(IffyBaseException):
    """Raised when a record id is unknown"""
    def __init__(self, iffy_id: str):
        super().__init__(f"Iffy {iffy_id} not found", "IFFY_NOT_FOUND", 404)


class PersistenceFailed(IffyBaseException):
    """
    Raised by the selection procedure when the record could not be saved.

    Carries the unpersisted error payload so the id still reaches the client.
    """
    def __init__(self, payload: dict, cause: PersistenceError):
        self.payload = payload
        super().__init__(cause.message, cause.code, 500)


async def iffy_exception_handler(request: Request, exc: IffyBaseException):
    """Handle custom application exceptions"""
    logger.error(
        f"Application exception: {exc.code} - {exc.message}",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "request_path": request.url.path,
        }
    )
    if isinstance(exc, PersistenceFailed):
        return JSONResponse(status_code=exc.status_code, content=exc.payload)
    return JSONResponse(
        status_code=exc.status_code,
        content=ApiError(error=exc.code, message=exc.message, status_code=exc.status_code).model_dump(),
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions"""
    logger.warning(
        f"HTTP {exc.status_code}: {exc.detail}",
        extra={
            "http_status_code": exc.status_code,
            "http_detail": exc.detail,
            "request_path": request.url.path,
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=ApiError(error="HTTP_ERROR", message=str(exc.detail), status_code=exc.status_code).model_dump(),
    )


async def generic_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions"""
    logger.error(
        f"Unhandled exception: {type(exc).__name__} - {str(exc)}",
        extra={
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
            "request_path": request.url.path,
            "exc_traceback": traceback.format_exc(),
        }
    )
    return JSONResponse(
        status_code=500,
        content=ApiError(
            error="INTERNAL_SERVER_ERROR",
            message="An internal error occurred. Please try again later.",
        ).model_dump(exclude_none=True),
    )
