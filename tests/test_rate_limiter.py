"""Tests for the failed-login rate limiter."""

import pytest

from security.errors import AuthError, AuthErrorKind
from services.cache import InMemoryCache
from services.rate_limiter import LoginRateLimiter

from tests.fakes import ManualClock, UnavailableCache

EMAIL = "ada@shopdev.com"


async def _fail(limiter: LoginRateLimiter, times: int, client: str = "10.0.0.1") -> None:
    for _ in range(times):
        await limiter.check(EMAIL, client)
        await limiter.record_failure(EMAIL, client)


async def test_blocks_after_max_attempts_with_retry_after():
    clock = ManualClock()
    limiter = LoginRateLimiter(InMemoryCache(clock=clock), window_seconds=900, max_attempts=5)

    await _fail(limiter, 5)
    clock.advance(60)

    with pytest.raises(AuthError) as exc_info:
        await limiter.check(EMAIL, "10.0.0.1")

    assert exc_info.value.kind == AuthErrorKind.RATE_LIMITED
    assert exc_info.value.status_code == 429
    assert exc_info.value.retry_after == 840


async def test_window_expiry_unblocks():
    clock = ManualClock()
    limiter = LoginRateLimiter(InMemoryCache(clock=clock), window_seconds=900, max_attempts=5)

    await _fail(limiter, 5)
    clock.advance(900)
    await limiter.check(EMAIL, "10.0.0.1")


async def test_counters_are_per_client():
    limiter = LoginRateLimiter(InMemoryCache(), max_attempts=5, lockout_max_attempts=10)

    await _fail(limiter, 5, client="10.0.0.1")
    await limiter.check(EMAIL, "10.0.0.2")


async def test_identity_lockout_across_clients():
    limiter = LoginRateLimiter(InMemoryCache(), max_attempts=5, lockout_max_attempts=10)

    await _fail(limiter, 4, client="10.0.0.1")
    await _fail(limiter, 4, client="10.0.0.2")
    await _fail(limiter, 2, client="10.0.0.3")

    with pytest.raises(AuthError) as exc_info:
        await limiter.check(EMAIL, "10.0.0.4")
    assert exc_info.value.kind == AuthErrorKind.RATE_LIMITED


async def test_clear_resets_counters():
    limiter = LoginRateLimiter(InMemoryCache(), max_attempts=5)

    await _fail(limiter, 4)
    await limiter.clear(EMAIL, "10.0.0.1")
    await _fail(limiter, 4)
    await limiter.check(EMAIL, "10.0.0.1")


async def test_fails_open_when_cache_is_down():
    limiter = LoginRateLimiter(UnavailableCache(), max_attempts=1)

    await _fail(limiter, 10)
    await limiter.clear(EMAIL, "10.0.0.1")
