"""
Error taxonomy for Tweetvault.

Every error raised by the core derives from `TweetvaultError`, which carries a
human readable message, a stable `error_code`, an HTTP status and an optional
`details` dict. The details are meant for logs; API responses only expose the
message and the code (see `tweetvault_exception_handler`).

Hierarchy:
- `ValidationError`: bad caller input.
- `NotFoundError`: a referenced user, tweet or category does not exist.
- `AuthError`: missing, invalid or expired provider credential, or a failed
  token refresh.
- `ProviderError`: the external tweets API failed. Subtypes distinguish
  transient/server failures, rate limiting and permanent 4xx failures.
- `PersistenceError`: the database rejected an operation.
- `ClassificationError`: an unrecoverable classifier backend fault. A backend
  that is simply not configured is not an error.
- `CategorizationError` / `SyncError`: generic failures surfaced by the two
  orchestrators after logging their context.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class TweetvaultError(Exception):
    """Base exception class for Tweetvault"""

    status_code = 500

    def __init__(
        self,
        message: str,
        error_code: str = "TWEETVAULT_ERROR",
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(TweetvaultError):
    """Raised when input validation fails"""

    status_code = 400

    def __init__(self, message: str, error_code: str = "VALIDATION_ERROR", **details):
        super().__init__(message, error_code, details)


class NotFoundError(TweetvaultError):
    """Raised when a requested record does not exist"""

    status_code = 404

    def __init__(self, resource: str, identifier: Any, error_code: Optional[str] = None):
        super().__init__(
            f"{resource} not found",
            error_code or f"{resource.upper()}_NOT_FOUND",
            {"resource": resource, "identifier": str(identifier)},
        )


class AuthError(TweetvaultError):
    """Raised when a provider credential is missing, invalid or cannot be refreshed"""

    status_code = 401

    def __init__(self, message: str, error_code: str = "INVALID_TOKEN", **details):
        super().__init__(message, error_code, details)


class ProviderError(TweetvaultError):
    """Raised when the external tweets API fails"""

    status_code = 502

    def __init__(
        self,
        message: str,
        provider_status: Optional[int] = None,
        error_code: str = "PROVIDER_ERROR",
        **details,
    ):
        self.provider_status = provider_status
        super().__init__(
            message, error_code, {"provider_status": provider_status, **details}
        )


class TransientProviderError(ProviderError):
    """Server side or transport failure; the request may succeed later"""

    status_code = 503

    def __init__(self, message: str = "Provider temporarily unavailable", provider_status: Optional[int] = None, **details):
        super().__init__(message, provider_status, "PROVIDER_UNAVAILABLE", **details)


class RateLimitError(ProviderError):
    """Raised when the provider reports the request quota is exhausted"""

    status_code = 429

    def __init__(
        self,
        reset_time: Optional[float] = None,
        remaining: Optional[int] = None,
        limit: Optional[int] = None,
    ):
        # reset_time is the provider's epoch timestamp in seconds
        self.reset_time = reset_time
        self.remaining = remaining
        self.limit = limit
        super().__init__(
            "Rate limit exceeded",
            429,
            "RATE_LIMIT",
            reset_time=reset_time,
            remaining=remaining,
            limit=limit,
        )


class PermanentProviderError(ProviderError):
    """4xx failure that retrying will not fix"""

    def __init__(self, message: str, provider_status: Optional[int] = None, **details):
        super().__init__(message, provider_status, "PROVIDER_REJECTED", **details)


class PersistenceError(TweetvaultError):
    """Raised when database operations fail"""

    def __init__(self, operation: str, reason: str):
        super().__init__(
            f"Database operation '{operation}' failed: {reason}",
            "DATABASE_ERROR",
            {"operation": operation, "reason": reason},
        )


class ClassificationError(TweetvaultError):
    """Raised when a classifier backend cannot be used at all"""

    def __init__(self, backend: str, reason: str):
        super().__init__(
            f"Classifier backend '{backend}' failed: {reason}",
            "CLASSIFICATION_ERROR",
            {"backend": backend, "reason": reason},
        )


class CategorizationError(TweetvaultError):
    """Generic categorization failure surfaced to API callers"""

    def __init__(self, message: str = "Categorization failed", **details):
        super().__init__(message, "CATEGORIZATION_FAILED", details)


class SyncError(TweetvaultError):
    """Generic sync failure surfaced to API callers"""

    def __init__(self, message: str = "Sync failed", **details):
        super().__init__(message, "SYNC_FAILED", details)


async def tweetvault_exception_handler(
    request: Request, exc: TweetvaultError
) -> JSONResponse:
    """Render a TweetvaultError as an opaque JSON error; context stays in the logs."""
    logger.error(
        f"{exc.error_code}: {exc.message}",
        extra={
            "event_type": "api.error",
            "error_code": exc.error_code,
            "details": exc.details,
            "request_method": request.method,
            "request_path": request.url.path,
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.message,
            "code": exc.error_code,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
