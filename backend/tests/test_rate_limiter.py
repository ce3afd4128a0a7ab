"""Tests for rate limit waits and retries."""

import pytest
from unittest.mock import AsyncMock, patch
from app.core.exceptions import RateLimitError, TransientProviderError
from app.services.rate_limiter import (
    compute_backoff,
    compute_rate_limit_wait,
    with_rate_limit_retry,
)

NOW = 1_700_000_000.0


@pytest.mark.unit
class TestWaitComputation:
    """Wait and backoff arithmetic."""

    def test_wait_until_reset_plus_margin(self):
        assert compute_rate_limit_wait(NOW + 120, now=NOW) == 125

    def test_wait_never_below_minimum(self):
        """A reset that is close (or past) still waits the minimum."""
        assert compute_rate_limit_wait(NOW + 10, now=NOW) == 65
        assert compute_rate_limit_wait(NOW - 30, now=NOW) == 65

    def test_unknown_reset(self):
        assert compute_rate_limit_wait(None, now=NOW) is None

    @pytest.mark.parametrize(
        "attempt,expected", [(1, 10), (2, 20), (3, 40), (5, 160), (6, 300), (10, 300)]
    )
    def test_backoff(self, attempt, expected):
        assert compute_backoff(attempt) == expected


@pytest.mark.unit
class TestRetry:
    """with_rate_limit_retry behaviour."""

    @pytest.mark.asyncio
    async def test_success_without_retry(self):
        call = AsyncMock(return_value="page")

        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            assert await with_rate_limit_retry(call) == "page"

        call.assert_awaited_once()
        mock_sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_retries_after_rate_limit(self):
        """The wait honours the provider's reset time."""
        call = AsyncMock(side_effect=[RateLimitError(reset_time=9_999_999_999), "page"])

        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep, patch(
            "app.services.rate_limiter.time.time", return_value=9_999_999_999 - 100
        ):
            assert await with_rate_limit_retry(call) == "page"

        assert call.await_count == 2
        mock_sleep.assert_awaited_once_with(105)

    @pytest.mark.asyncio
    async def test_backoff_without_reset_time(self):
        call = AsyncMock(side_effect=[RateLimitError(), RateLimitError(), "page"])

        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            assert await with_rate_limit_retry(call) == "page"

        assert [c.args[0] for c in mock_sleep.await_args_list] == [10, 20]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        call = AsyncMock(side_effect=RateLimitError(remaining=0))

        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(RateLimitError):
                await with_rate_limit_retry(call, max_retries=3)

        assert call.await_count == 3
        assert mock_sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        call = AsyncMock(side_effect=TransientProviderError("down", 503))

        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(TransientProviderError):
                await with_rate_limit_retry(call)

        call.assert_awaited_once()
        mock_sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_zero_retries_makes_a_single_attempt(self):
        """An explicit zero is not replaced by the configured default."""
        call = AsyncMock(side_effect=RateLimitError())

        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(RateLimitError):
                await with_rate_limit_retry(call, max_retries=0)

        call.assert_awaited_once()
        mock_sleep.assert_not_called()
