"""
Access Control

Identity checks and request rate limiting for the ledger flows.

DESIGN DECISION: The rate limiter is a collaborator behind an interface.
The default is an in-process token bucket per user; a hosted limiter can
be swapped in without touching the flows.

A denial is always raised before any write.
"""

import asyncio
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from pocketbook.config import get_settings
from pocketbook.errors import PocketbookError


class AccessError(PocketbookError):
    """Base exception for access control."""
    pass


class UnauthorizedError(AccessError):
    """No authenticated identity was supplied."""

    user_message = "Please sign in to continue."


class RateLimitedError(AccessError):
    """The user has used up their request allowance."""

    user_message = "Too many requests. Please try again later."

    def __init__(self, remaining: int = 0, reset_in_seconds: int = 0):
        self.remaining = remaining
        self.reset_in_seconds = reset_in_seconds
        super().__init__(
            f"Rate limit exceeded (remaining={remaining}, reset_in={reset_in_seconds}s)"
        )


class RequestBlockedError(AccessError):
    """The request was denied for a reason other than rate limiting."""

    user_message = "Request blocked"


def require_identity(identity_id: Optional[str]) -> str:
    """
    Return the identity id, or raise if the caller is not signed in.

    Raises:
        UnauthorizedError: If identity_id is missing or blank
    """
    if not identity_id or not str(identity_id).strip():
        raise UnauthorizedError("Unauthorized")
    return str(identity_id)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one rate-limit check."""

    allowed: bool
    reason: str = "allowed"
    remaining: int = 0
    reset_in_seconds: int = 0

    @property
    def is_rate_limit(self) -> bool:
        return not self.allowed and self.reason == "rate_limit"


class RateLimiterInterface(ABC):
    """Decides whether a user's request may proceed."""

    @abstractmethod
    async def protect(self, user_id: str, requested: int = 1) -> RateLimitDecision:
        """Consume `requested` units for user_id and report the decision."""
        pass


class TokenBucketRateLimiter(RateLimiterInterface):
    """
    Token bucket per user.

    Each bucket starts full. `refill_rate` tokens are added every
    `interval_seconds`, continuously, up to `capacity`.
    """

    def __init__(
        self,
        capacity: Optional[int] = None,
        refill_rate: Optional[int] = None,
        interval_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = get_settings().rate_limit
        self._capacity = settings.capacity if capacity is None else capacity
        self._refill_rate = settings.refill_rate if refill_rate is None else refill_rate
        self._interval = settings.interval_seconds if interval_seconds is None else interval_seconds
        if self._refill_rate <= 0 or self._interval <= 0:
            raise ValueError("refill_rate and interval_seconds must be positive")
        self._clock = clock
        self._buckets: dict[str, tuple[float, float]] = {}
        self._lock = asyncio.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def tracked_users(self) -> int:
        return len(self._buckets)

    def _prune(self, now: float) -> None:
        """Forget buckets that have refilled; a missing bucket starts full."""
        full = [
            user_id
            for user_id, (tokens, last) in self._buckets.items()
            if tokens + max(0.0, now - last) * self._refill_rate / self._interval >= self._capacity
        ]
        for user_id in full:
            del self._buckets[user_id]

    def _refill(self, user_id: str) -> float:
        now = self._clock()
        self._prune(now)
        tokens, last = self._buckets.get(user_id, (float(self._capacity), now))
        elapsed = max(0.0, now - last)
        tokens = min(
            float(self._capacity),
            tokens + elapsed * self._refill_rate / self._interval,
        )
        self._buckets[user_id] = (tokens, now)
        return tokens

    def _seconds_until(self, tokens: float, needed: float) -> int:
        missing = max(0.0, needed - tokens)
        return math.ceil(missing * self._interval / self._refill_rate)

    async def protect(self, user_id: str, requested: int = 1) -> RateLimitDecision:
        if requested > self._capacity:
            return RateLimitDecision(allowed=False, reason="too_large")

        async with self._lock:
            tokens = self._refill(user_id)
            if tokens < requested:
                return RateLimitDecision(
                    allowed=False,
                    reason="rate_limit",
                    remaining=int(tokens),
                    reset_in_seconds=self._seconds_until(tokens, requested),
                )

            tokens -= requested
            self._buckets[user_id] = (tokens, self._clock())
            return RateLimitDecision(
                allowed=True,
                remaining=int(tokens),
                reset_in_seconds=self._seconds_until(tokens, self._capacity),
            )
