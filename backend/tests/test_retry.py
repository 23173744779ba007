"""
Tests for the retry policy.
"""

import asyncio

import pytest

from scraper.retry import RetryPolicy


class TestRetryPolicy:
    """Test bounded retries with linear backoff."""

    def test_backoff_grows_per_attempt(self):
        policy = RetryPolicy(base_delay=2.0)
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [2.0, 4.0, 6.0]

    def test_backoff_capped(self):
        assert RetryPolicy(base_delay=10.0, max_delay=15.0).delay_for(3) == 15.0

    def test_succeeds_after_failures(self, no_sleep):
        """Test that a later success is returned and earlier failures backed off."""
        attempts = []

        async def flaky(attempt):
            attempts.append(attempt)
            if attempt < 3:
                raise RuntimeError(f"boom {attempt}")
            return "ok"

        result = asyncio.run(RetryPolicy(max_attempts=3, base_delay=2.0).run(flaky, sleep=no_sleep))

        assert result == "ok"
        assert attempts == [1, 2, 3]
        assert no_sleep.delays == [2.0, 4.0]

    def test_raises_last_error(self, no_sleep):
        """Test that exhausting attempts re-raises the final error without a trailing sleep."""
        async def always_fails(attempt):
            raise ValueError(f"failure {attempt}")

        with pytest.raises(ValueError, match="failure 3"):
            asyncio.run(RetryPolicy(max_attempts=3).run(always_fails, sleep=no_sleep))
        assert len(no_sleep.delays) == 2

    def test_on_retry_called(self, no_sleep):
        seen = []

        async def always_fails(attempt):
            raise RuntimeError("nope")

        with pytest.raises(RuntimeError):
            asyncio.run(RetryPolicy(max_attempts=2).run(
                always_fails, sleep=no_sleep, on_retry=lambda n, e: seen.append(n),
            ))
        assert seen == [1, 2]

    def test_non_retryable_error_propagates_immediately(self, no_sleep):
        calls = []

        async def fails(attempt):
            calls.append(attempt)
            raise KeyError("fatal")

        policy = RetryPolicy(max_attempts=3, retry_on=(ValueError,))
        with pytest.raises(KeyError):
            asyncio.run(policy.run(fails, sleep=no_sleep))
        assert calls == [1]
