"""Tests for identity checks and the token bucket rate limiter."""

import asyncio
import pytest

from pocketbook.services.access import (
    TokenBucketRateLimiter,
    UnauthorizedError,
    require_identity,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestRequireIdentity:

    @pytest.mark.parametrize("identity", [None, "", "   "])
    def test_missing(self, identity):
        with pytest.raises(UnauthorizedError):
            require_identity(identity)

    def test_present(self):
        assert require_identity("idp|123") == "idp|123"


class TestTokenBucket:

    def test_defaults_from_settings(self):
        limiter = TokenBucketRateLimiter()
        assert limiter.capacity == 10

    def test_burst_then_denied(self):
        clock = FakeClock()
        limiter = TokenBucketRateLimiter(capacity=3, refill_rate=3, interval_seconds=3600, clock=clock)

        async def run():
            return [await limiter.protect("u1") for _ in range(4)]

        decisions = asyncio.run(run())

        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert decisions[2].remaining == 0
        assert decisions[3].is_rate_limit
        assert decisions[3].reset_in_seconds == 1200

    def test_refills_over_time(self):
        clock = FakeClock()
        limiter = TokenBucketRateLimiter(capacity=2, refill_rate=2, interval_seconds=100, clock=clock)

        async def run():
            await limiter.protect("u1")
            await limiter.protect("u1")
            denied = await limiter.protect("u1")
            clock.now += 50
            allowed = await limiter.protect("u1")
            return denied, allowed

        denied, allowed = asyncio.run(run())

        assert not denied.allowed
        assert allowed.allowed

    def test_users_have_separate_buckets(self):
        limiter = TokenBucketRateLimiter(capacity=1, refill_rate=1, interval_seconds=3600, clock=FakeClock())

        async def run():
            return await limiter.protect("u1"), await limiter.protect("u2")

        first, second = asyncio.run(run())
        assert first.allowed and second.allowed

    def test_oversized_request_is_blocked(self):
        limiter = TokenBucketRateLimiter(capacity=2, refill_rate=2, interval_seconds=60, clock=FakeClock())

        decision = asyncio.run(limiter.protect("u1", requested=5))

        assert not decision.allowed
        assert not decision.is_rate_limit

    def test_explicit_zero_capacity_is_not_replaced_by_default(self):
        limiter = TokenBucketRateLimiter(capacity=0, refill_rate=1, interval_seconds=60, clock=FakeClock())

        decision = asyncio.run(limiter.protect("u1"))

        assert limiter.capacity == 0
        assert not decision.allowed

    def test_zero_refill_rate_rejected(self):
        with pytest.raises(ValueError):
            TokenBucketRateLimiter(capacity=1, refill_rate=0, interval_seconds=60)

    def test_refilled_buckets_are_forgotten(self):
        clock = FakeClock()
        limiter = TokenBucketRateLimiter(capacity=2, refill_rate=2, interval_seconds=100, clock=clock)

        async def run():
            for user_id in ("u1", "u2", "u3"):
                await limiter.protect(user_id)
            before = limiter.tracked_users
            clock.now += 100
            await limiter.protect("u4")
            return before

        before = asyncio.run(run())

        assert before == 3
        assert limiter.tracked_users == 1
