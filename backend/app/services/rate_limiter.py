"""Rate limit wait and retry backoff for calls to the tweets provider."""

import asyncio
import time
from typing import Awaitable, Callable, Optional, TypeVar
from app.core.config import settings
from app.core.exceptions import RateLimitError
from app.core.logging_config import log_provider_call
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_rate_limit_wait(
    reset_time: Optional[float], now: Optional[float] = None
) -> Optional[float]:
    """
    Seconds to wait before retrying after the provider reported a quota reset.

    Args:
        reset_time: Provider reset timestamp (epoch seconds), if known
        now: Current epoch seconds, defaults to time.time()

    Returns:
        max(minimum wait, seconds until reset) plus the safety margin, or None
        when no reset time is known
    """
    if reset_time is None:
        return None
    if now is None:
        now = time.time()
    until_reset = reset_time - now
    return max(settings.RATE_LIMIT_MIN_WAIT, until_reset) + settings.RATE_LIMIT_SAFETY_MARGIN


def compute_backoff(attempt: int) -> float:
    """Exponential backoff for 1-based ``attempt``: base * 2**(attempt-1), capped."""
    delay = settings.BACKOFF_BASE_SECONDS * (2 ** (attempt - 1))
    return min(delay, settings.BACKOFF_MAX_SECONDS)


async def with_rate_limit_retry(
    call: Callable[[], Awaitable[T]],
    max_retries: Optional[int] = None,
    context: Optional[dict] = None,
) -> T:
    """
    Run ``call`` and retry it while the provider answers with a rate limit.

    Only `RateLimitError` is retried; every other exception propagates on the
    first occurrence. After ``max_retries`` rate limited attempts the last
    `RateLimitError` is raised.

    Args:
        call: Zero argument coroutine factory performing one provider request
        max_retries: Attempts before giving up (defaults to SYNC_MAX_RETRIES)
        context: Extra log fields (user_id, cursor, ...)
    """
    if max_retries is None:
        max_retries = settings.SYNC_MAX_RETRIES
    context = context or {}
    attempt = 0

    while True:
        attempt += 1
        try:
            return await call()
        except RateLimitError as e:
            if attempt >= max_retries:
                log_provider_call(
                    "rate_limit_exhausted",
                    level=logging.ERROR,
                    attempt=attempt,
                    max_retries=max_retries,
                    **context,
                )
                raise

            wait = compute_rate_limit_wait(e.reset_time)
            if wait is None:
                wait = compute_backoff(attempt)

            log_provider_call(
                "rate_limited",
                level=logging.WARNING,
                attempt=attempt,
                max_retries=max_retries,
                wait_seconds=round(wait, 1),
                remaining=e.remaining,
                **context,
            )
            await asyncio.sleep(wait)
