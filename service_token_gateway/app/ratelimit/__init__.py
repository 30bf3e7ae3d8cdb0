"""
Rate limiting package for the Token Gateway.

Holds the fixed-window limiters (in-memory and Redis-backed) and the
middleware that enforces a per-client request budget on every route.
"""

from .fixed_window import (
    InMemoryRateLimiter,
    RateLimitDecision,
    RateLimitMiddleware,
    RedisRateLimiter,
    create_rate_limiter,
    get_client_id,
)

__all__ = [
    "InMemoryRateLimiter",
    "RateLimitDecision",
    "RateLimitMiddleware",
    "RedisRateLimiter",
    "create_rate_limiter",
    "get_client_id",
]
