"""Shared tools for the interview analysis service."""
from .extractors import (
    file_text_extractor,
)
from .rate_limiter import (
    RateLimitDecision,
    RateLimitPolicy,
    SlidingWindowRateLimiter,
    default_policies,
)

__all__ = [
    "file_text_extractor",
    "RateLimitDecision",
    "RateLimitPolicy",
    "SlidingWindowRateLimiter",
    "default_policies",
]
