"""Identity and rate-limit checks."""

from pocketbook.services.access.rate_limiter import (
    AccessError,
    RateLimitDecision,
    RateLimitedError,
    RateLimiterInterface,
    RequestBlockedError,
    TokenBucketRateLimiter,
    UnauthorizedError,
    require_identity,
)

__all__ = [
    "AccessError",
    "RateLimitDecision",
    "RateLimitedError",
    "RateLimiterInterface",
    "RequestBlockedError",
    "TokenBucketRateLimiter",
    "UnauthorizedError",
    "require_identity",
]
