"""
Fixed-window rate limiter for the Token Gateway.
"""

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import redis.asyncio as redis
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match

from shared.config import TokenGatewayConfig
from shared.errors import RateLimitError
from shared.logging import get_logger
from shared.metrics import MetricsCollector


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of counting one request against a client's window."""

    allowed: bool
    limit: int
    current_count: int
    reset_in_seconds: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.current_count)


class InMemoryRateLimiter:
    """Process-local fixed-window counter keyed by client identity.

    Counters live in this process only; several server processes each
    enforce their own budget. Use RedisRateLimiter to share one.
    """

    backend = "memory"

    def __init__(self, max_requests: int, window_seconds: int,
                 clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._lock = asyncio.Lock()
        self._next_sweep = clock() + window_seconds
        self.logger = get_logger("gateway.rate_limiter")

    async def hit(self, client_id: str) -> RateLimitDecision:
        """Count a request for client_id and decide whether it may proceed."""
        async with self._lock:
            now = self._clock()
            if now >= self._next_sweep:
                self._sweep(now)

            window_start, count = self._windows.get(client_id, (now, 0))
            if now - window_start >= self.window_seconds:
                window_start, count = now, 0

            count += 1
            self._windows[client_id] = (window_start, count)

        reset_in = math.ceil(window_start + self.window_seconds - now)
        return RateLimitDecision(
            allowed=count <= self.max_requests,
            limit=self.max_requests,
            current_count=count,
            reset_in_seconds=max(reset_in, 0),
        )

    async def reset(self, client_id: str) -> None:
        async with self._lock:
            self._windows.pop(client_id, None)

    def _sweep(self, now: float) -> None:
        """Drop windows that have already expired."""
        expired = [
            client_id for client_id, (window_start, _) in self._windows.items()
            if now - window_start >= self.window_seconds
        ]
        for client_id in expired:
            del self._windows[client_id]
        self._next_sweep = now + self.window_seconds
        if expired:
            self.logger.debug("Expired rate limit windows swept", count=len(expired))

    async def check_health(self) -> str:
        return "ok"

    async def close(self) -> None:
        return None


class RedisRateLimiter:
    """Fixed-window counter shared between processes through Redis.

    Uses INCR so concurrent requests never undercount. When Redis is
    unreachable the request is allowed and the failure logged.
    """

    backend = "redis"

    def __init__(self, redis_url: str, max_requests: int, window_seconds: int):
        self.redis_url = redis_url
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.logger = get_logger("gateway.rate_limiter")
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)
        return self._redis

    def _make_key(self, client_id: str) -> str:
        """Generate rate limit key."""
        return f"rate_limit:{client_id}"

    async def hit(self, client_id: str) -> RateLimitDecision:
        key = self._make_key(client_id)

        try:
            redis_client = await self._get_redis()
            count = await redis_client.incr(key)
            if count == 1:
                await redis_client.expire(key, self.window_seconds)
                ttl = self.window_seconds
            else:
                ttl = await redis_client.ttl(key)
                if ttl is None or ttl < 0:
                    # Key survived without an expiry; restart its window
                    await redis_client.expire(key, self.window_seconds)
                    ttl = self.window_seconds
        except Exception as e:
            self.logger.error("Rate limit check error", error=str(e), client_id=client_id)
            return RateLimitDecision(
                allowed=True,
                limit=self.max_requests,
                current_count=0,
                reset_in_seconds=self.window_seconds,
            )

        return RateLimitDecision(
            allowed=count <= self.max_requests,
            limit=self.max_requests,
            current_count=int(count),
            reset_in_seconds=int(ttl),
        )

    async def reset(self, client_id: str) -> None:
        redis_client = await self._get_redis()
        await redis_client.delete(self._make_key(client_id))
        self.logger.info("Rate limit reset", client_id=client_id)

    async def check_health(self) -> str:
        try:
            redis_client = await self._get_redis()
            await redis_client.ping()
            return "ok"
        except Exception as e:
            self.logger.warning("Redis health check failed", error=str(e))
            return "error"

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


def create_rate_limiter(config: TokenGatewayConfig):
    """Pick the rate limiter backend from configuration."""
    if config.rate_limit_redis_url:
        return RedisRateLimiter(
            config.rate_limit_redis_url,
            max_requests=config.rate_limit_max_requests,
            window_seconds=config.rate_limit_window_seconds,
        )
    return InMemoryRateLimiter(
        max_requests=config.rate_limit_max_requests,
        window_seconds=config.rate_limit_window_seconds,
    )


def get_client_id(request: Request, trust_proxy_headers: bool = False) -> str:
    """Extract the caller identity (source address) from the request."""
    if trust_proxy_headers:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

    return request.client.host if request.client else "unknown"


def route_label(request: Request) -> str:
    """Route template the request would hit; routing has not run yet in middleware."""
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", "unmatched")
    return "unmatched"


def set_rate_limit_headers(headers, decision: RateLimitDecision) -> None:
    """Propagate rate limiting metadata via standard headers."""
    headers["X-RateLimit-Limit"] = str(decision.limit)
    headers["X-RateLimit-Remaining"] = str(decision.remaining)
    headers["X-RateLimit-Reset"] = str(decision.reset_in_seconds)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rejects requests over budget before any route runs."""

    def __init__(self, app, rate_limiter, trust_proxy_headers: bool = False,
                 metrics: Optional[MetricsCollector] = None):
        super().__init__(app)
        self.rate_limiter = rate_limiter
        self.trust_proxy_headers = trust_proxy_headers
        self.metrics = metrics
        self.logger = get_logger("gateway.rate_limit_middleware")

    async def dispatch(self, request: Request, call_next):
        client_id = get_client_id(request, self.trust_proxy_headers)
        decision = await self.rate_limiter.hit(client_id)

        if not decision.allowed:
            self.logger.warning(
                "Rate limit exceeded",
                client_id=client_id,
                path=request.url.path,
                current_count=decision.current_count,
                limit=decision.limit
            )
            if self.metrics is not None:
                self.metrics.record_rate_limit_rejection(route_label(request))

            error = RateLimitError(details={
                "limit": decision.limit,
                "reset_in_seconds": decision.reset_in_seconds,
            })
            response = JSONResponse(
                status_code=error.status_code,
                content=error.to_response().model_dump()
            )
            set_rate_limit_headers(response.headers, decision)
            response.headers["Retry-After"] = str(decision.reset_in_seconds)
            return response

        response = await call_next(request)
        set_rate_limit_headers(response.headers, decision)
        return response
