"""
Structured JSON logging with correlation IDs and sync/provider event helpers.
"""

import logging
import sys
import uuid
from typing import Optional
from datetime import datetime, timezone
from pythonjsonlogger import jsonlogger
from contextvars import ContextVar
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

# Context variable for correlation ID (task-local under asyncio)
correlation_id_var: ContextVar[Optional[str]] = ContextVar(
    "correlation_id", default=None
)

# Context fields promoted to the top level of every JSON record
_CONTEXT_FIELDS = (
    "event_type",
    "event_category",
    "user_id",
    "username",
    "tweet_id",
    "sync_log_id",
    "error_code",
)


class CorrelationIdFilter(logging.Filter):
    """Add correlation ID to log records."""

    def filter(self, record):
        record.correlation_id = correlation_id_var.get() or "none"
        return True


class TweetvaultJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with a stable envelope for sync and provider events."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["correlation_id"] = getattr(record, "correlation_id", "none")
        log_record["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        for field in _CONTEXT_FIELDS:
            if hasattr(record, field):
                log_record[field] = getattr(record, field)

        if hasattr(record, "request_method"):
            log_record["request"] = {
                "method": record.request_method,
                "path": getattr(record, "request_path", "unknown"),
            }
            log_record.pop("request_method", None)
            log_record.pop("request_path", None)


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure structured JSON logging for the whole process."""

    formatter = TweetvaultJsonFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(CorrelationIdFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    # Route uvicorn and apscheduler through the same handler
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error", "apscheduler"):
        named = logging.getLogger(name)
        named.handlers.clear()
        named.addHandler(console_handler)
        named.propagate = False

    return logging.getLogger("tweetvault.sync")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Middleware to add correlation IDs to requests."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        correlation_id_var.set(correlation_id)
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


def new_correlation_id(prefix: str = "job") -> str:
    """Start a fresh correlation ID for work that does not come from a request."""
    correlation_id = f"{prefix}-{uuid.uuid4()}"
    correlation_id_var.set(correlation_id)
    return correlation_id


def log_sync_event(
    user_id: Optional[int],
    action: str,
    message: Optional[str] = None,
    level: int = logging.INFO,
    **extra_fields,
):
    """
    Log a sync pipeline event with structured data.

    Args:
        user_id: Owning user of the sync run, if any
        action: Event name (e.g., "SYNC_START", "SYNC_BATCH")
        message: Human-readable message, defaults to "Sync operation"
        level: Logging level (default: INFO)
        **extra_fields: Counters, durations and other context
    """
    extra = {
        "event_type": f"sync.{action.lower()}",
        "event_category": "sync",
        "user_id": user_id,
    }
    extra.update(extra_fields)
    logging.getLogger("tweetvault.sync").log(
        level, message or f"Sync operation {action}", extra=extra
    )


def log_provider_call(action: str, level: int = logging.INFO, **extra_fields):
    """Log an external tweets API request/response."""
    extra = {"event_type": f"provider.{action.lower()}", "event_category": "provider"}
    extra.update(extra_fields)
    logging.getLogger("tweetvault.provider").log(
        level, f"Twitter API call {action}", extra=extra
    )


def log_auth_event(action: str, user_id: Optional[int] = None, level: int = logging.INFO, **extra_fields):
    """Log a credential lifecycle event (refresh, clear, failure)."""
    extra = {
        "event_type": f"auth.{action.lower()}",
        "event_category": "auth",
        "user_id": user_id,
    }
    extra.update(extra_fields)
    logging.getLogger("tweetvault.auth").log(
        level, f"Auth operation {action}", extra=extra
    )


def log_error(error: BaseException, context: str, **extra_fields):
    """Log an exception with its context; stack traces only ever go to logs."""
    extra = {
        "event_type": f"error.{context}",
        "event_category": "error",
        "error_code": getattr(error, "error_code", type(error).__name__),
    }
    extra.update(extra_fields)
    logging.getLogger("tweetvault.errors").error(
        f"{context}: {error}", exc_info=error, extra=extra
    )
