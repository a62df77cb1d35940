"""
Tests for the sliding-window rate limiter.
Covers admission accounting, window expiry, namespace isolation, the periodic
sweep, and concurrent callers on a single key.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest

from app.core.exceptions import RateLimitedError
from app.services.tools.rate_limiter import (
    RateLimitPolicy,
    SlidingWindowRateLimiter,
    default_policies,
)


class TestAdmission:
    """Test basic admit/deny behaviour on one key."""

    def test_burst_of_n_plus_one_denies_only_the_last(self, rate_limiter):
        """N admissions succeed with decreasing remaining; the N+1th is denied."""
        max_requests = 5
        decisions = [rate_limiter.admit("score", "1.2.3.4", max_requests, 60) for _ in range(max_requests + 1)]

        assert [d.allowed for d in decisions] == [True] * max_requests + [False]
        assert [d.remaining for d in decisions[:-1]] == [4, 3, 2, 1, 0]
        assert decisions[-1].remaining == 0

    def test_admits_again_after_window_elapses(self, rate_limiter, clock):
        """Once the window has fully passed the key has its whole budget back."""
        for _ in range(3):
            assert rate_limiter.admit("score", "ip", 3, 60).allowed
        assert not rate_limiter.admit("score", "ip", 3, 60).allowed

        clock.advance(60)

        decision = rate_limiter.admit("score", "ip", 3, 60)
        assert decision.allowed is True
        assert decision.remaining == 2

    def test_window_slides_rather_than_resetting(self, rate_limiter, clock):
        """Only timestamps older than the window free up budget; denials are not recorded."""
        assert rate_limiter.admit("ns", "ip", 2, 60).allowed      # t=0
        clock.advance(10)
        assert rate_limiter.admit("ns", "ip", 2, 60).allowed      # t=10
        clock.advance(10)
        assert not rate_limiter.admit("ns", "ip", 2, 60).allowed  # t=20, denied
        clock.advance(40)
        assert rate_limiter.admit("ns", "ip", 2, 60).allowed      # t=60, t=0 expired
        clock.advance(1)
        assert not rate_limiter.admit("ns", "ip", 2, 60).allowed  # t=61, holds 10 and 60
        clock.advance(9)
        assert rate_limiter.admit("ns", "ip", 2, 60).allowed      # t=70, t=10 expired

    def test_namespaces_and_identifiers_are_independent(self, rate_limiter):
        """Exhausting one budget leaves other namespaces and callers untouched."""
        assert rate_limiter.admit("conversations", "ip-a", 1, 60).allowed
        assert not rate_limiter.admit("conversations", "ip-a", 1, 60).allowed

        assert rate_limiter.admit("score-interview", "ip-a", 1, 60).allowed
        assert rate_limiter.admit("conversations", "ip-b", 1, 60).allowed

    def test_require_raises_when_denied(self, rate_limiter):
        policy = RateLimitPolicy("upload", 1, 60)
        assert rate_limiter.require(policy, "ip").allowed

        with pytest.raises(RateLimitedError) as exc_info:
            rate_limiter.require(policy, "ip")

        assert exc_info.value.status_code == 429
        assert exc_info.value.user_message == "Too many requests. Please wait a moment and try again."
        assert exc_info.value.details["namespace"] == "upload"


class TestSweep:
    """Test the periodic sweep that bounds memory."""

    def test_sweep_removes_fully_expired_keys(self, clock):
        limiter = SlidingWindowRateLimiter(sweep_interval=3, clock=clock)

        limiter.admit("ns", "a", 10, 1)
        clock.advance(5)
        limiter.admit("ns", "b", 10, 60)
        assert limiter.tracked_keys() == 2

        # Third call triggers the sweep: "a" is expired under its own 1s window
        limiter.admit("ns", "c", 10, 60)
        assert limiter.tracked_keys() == 2

    def test_sweep_keeps_keys_with_live_timestamps(self, clock):
        limiter = SlidingWindowRateLimiter(sweep_interval=2, clock=clock)

        limiter.admit("ns", "a", 2, 60)
        clock.advance(30)
        limiter.admit("ns", "b", 2, 60)

        assert limiter.tracked_keys() == 2
        # "a" still holds its timestamp after the sweep
        assert limiter.admit("ns", "a", 2, 60).remaining == 0

    def test_reset_clears_everything(self, rate_limiter):
        rate_limiter.admit("ns", "a", 1, 60)
        rate_limiter.reset()
        assert rate_limiter.tracked_keys() == 0
        assert rate_limiter.admit("ns", "a", 1, 60).allowed


class TestConcurrency:
    """Concurrent callers on one key must never over-admit."""

    def test_threads_never_exceed_budget(self):
        limiter = SlidingWindowRateLimiter()
        max_requests = 100

        with ThreadPoolExecutor(max_workers=32) as pool:
            decisions = list(pool.map(
                lambda _: limiter.admit("score-interview", "shared", max_requests, 60),
                range(500),
            ))

        assert sum(d.allowed for d in decisions) == max_requests

    @pytest.mark.asyncio
    async def test_coroutines_never_exceed_budget(self):
        limiter = SlidingWindowRateLimiter()

        async def attempt():
            await asyncio.sleep(0)
            return limiter.admit("conversations", "shared", 30, 60)

        decisions = await asyncio.gather(*(attempt() for _ in range(100)))

        assert sum(d.allowed for d in decisions) == 30


def test_default_policies_match_operation_budgets():
    policies = default_policies()

    assert policies["conversations"].max_requests == 200
    assert policies["score-interview"].max_requests == 30
    assert policies["upload"].max_requests == 100
    assert all(p.window_seconds == 60 for p in policies.values())
