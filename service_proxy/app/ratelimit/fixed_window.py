"""
Fixed-window rate limiter for the Proxy service.
"""

import time
from typing import Any, Callable, Dict, Optional, Tuple

import redis.asyncio as redis
from fastapi import Request

from shared.logging import get_logger


class FixedWindowRateLimiter:
    """Distributed per-client fixed-window limiter using Redis.

    Each client gets ``permits`` requests per ``window_seconds``; the window
    starts with the client's first request. Backend failures fail open.
    """

    def __init__(self, redis_url: str, permits: int = 100, window_seconds: int = 60):
        self.redis_url = redis_url
        self.permits = permits
        self.window_seconds = window_seconds
        self.logger = get_logger("proxy.rate_limiter")
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)
        return self._redis

    def _make_key(self, client_id: str) -> str:
        """Generate rate limit key."""
        return f"rate_limit:{client_id}"

    async def check_rate_limit(self, client_id: str) -> Dict[str, Any]:
        """Count this request against the client's window."""
        key = self._make_key(client_id)

        try:
            redis_client = await self._get_redis()
            async with redis_client.pipeline() as pipeline:
                pipeline.incr(key)
                pipeline.ttl(key)
                current_count, ttl = await pipeline.execute()

            if ttl is None or ttl < 0:
                await redis_client.expire(key, self.window_seconds)
                ttl = self.window_seconds

        except Exception as e:
            self.logger.error("Rate limit check error", error=str(e))
            return self._fail_open(str(e))

        return self._decide(client_id, int(current_count), int(ttl))

    def _decide(self, client_id: str, current_count: int, reset_in: int) -> Dict[str, Any]:
        if current_count > self.permits:
            self.logger.warning(
                "Rate limit exceeded",
                client_id=client_id,
                current_count=current_count,
                limit=self.permits
            )
            return {
                "allowed": False,
                "current_count": current_count,
                "limit": self.permits,
                "remaining": 0,
                "reset_in_seconds": reset_in,
                "retry_after": reset_in
            }

        return {
            "allowed": True,
            "current_count": current_count,
            "limit": self.permits,
            "remaining": max(0, self.permits - current_count),
            "reset_in_seconds": reset_in
        }

    def _fail_open(self, error: str) -> Dict[str, Any]:
        return {
            "allowed": True,
            "current_count": 0,
            "limit": self.permits,
            "remaining": self.permits,
            "reset_in_seconds": self.window_seconds,
            "error": error
        }

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


class InMemoryRateLimiter(FixedWindowRateLimiter):
    """Single-process variant with the same window semantics."""

    def __init__(self, permits: int = 100, window_seconds: int = 60,
                 clock: Callable[[], float] = time.monotonic):
        super().__init__("memory://", permits=permits, window_seconds=window_seconds)
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}

    async def check_rate_limit(self, client_id: str) -> Dict[str, Any]:
        now = self._clock()
        self._prune(now)
        started, count = self._windows.get(client_id, (now, 0))

        count += 1
        self._windows[client_id] = (started, count)
        reset_in = max(0, int(round(self.window_seconds - (now - started))))
        return self._decide(client_id, count, reset_in)

    def _prune(self, now: float) -> None:
        """Forget clients whose window has closed."""
        expired = [
            client_id for client_id, (started, _) in self._windows.items()
            if now - started >= self.window_seconds
        ]
        for client_id in expired:
            del self._windows[client_id]

    def __len__(self) -> int:
        return len(self._windows)

    async def close(self) -> None:
        self._windows.clear()


class AdmissionControl:
    """Per-client admission in front of the proxy handler."""

    def __init__(self, rate_limiter: FixedWindowRateLimiter, trust_forwarded_headers: bool = False):
        self.rate_limiter = rate_limiter
        self.trust_forwarded_headers = trust_forwarded_headers
        self.logger = get_logger("proxy.admission_control")

    async def check_request(self, request: Request) -> Dict[str, Any]:
        """Check rate limit for request."""
        client_id = self.get_client_id(request)
        return await self.rate_limiter.check_rate_limit(client_id)

    def get_client_id(self, request: Request) -> str:
        """Extract client ID from request.

        The peer address is used unless forwarding headers are trusted, since
        any caller can set them.
        """
        if self.trust_forwarded_headers:
            forwarded_for = request.headers.get('X-Forwarded-For')
            if forwarded_for:
                return forwarded_for.split(',')[0].strip()

            real_ip = request.headers.get('X-Real-IP')
            if real_ip:
                return real_ip

        return request.client.host if request.client else 'anonymous'
