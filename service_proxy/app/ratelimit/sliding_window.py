"""
Sliding window rate limiter for the Proxy service.
"""

import math
import time
import uuid
from typing import Optional

import redis.asyncio as redis
from fastapi import Request
from redis.exceptions import RedisError

from shared.logging import get_logger
from shared.errors import StoreUnavailableError
from ..domain.models import RateLimitDecision


class SlidingWindowRateLimiter:
    """Distributed sliding window rate limiter using a Redis sorted set.

    Each admission check records the request timestamp, prunes entries that
    fell out of the window, counts what is left and refreshes the key TTL.
    All of it runs in one MULTI/EXEC so concurrent requests from the same
    client cannot slip past the limit.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        prefix: str = "proxy",
        default_limit: int = 60,
        default_window_seconds: int = 60,
        fail_open: bool = True,
    ):
        self.redis = redis_client
        self.prefix = prefix
        self.default_limit = default_limit
        self.default_window_seconds = default_window_seconds
        self.fail_open = fail_open
        self.logger = get_logger("proxy.rate_limiter")

    def _make_key(self, client_id: str) -> str:
        """Generate rate limit key."""
        return f"ratelimit:{self.prefix}:{client_id}"

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)

    async def admit(
        self,
        client_id: str,
        limit: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ) -> RateLimitDecision:
        """Record one request for the client and decide whether to admit it."""
        limit = self.default_limit if limit is None else limit
        window_seconds = self.default_window_seconds if window_seconds is None else window_seconds
        window_ms = window_seconds * 1000

        key = self._make_key(client_id)
        now_ms = self._now_ms()
        # Unique member so requests landing on the same millisecond all count
        member = f"{now_ms}-{uuid.uuid4().hex[:12]}"

        try:
            async with self.redis.pipeline(transaction=True) as pipeline:
                pipeline.zadd(key, {member: now_ms})
                pipeline.zremrangebyscore(key, "-inf", f"({now_ms - window_ms}")
                pipeline.zcard(key)
                pipeline.expire(key, window_seconds)
                pipeline.zrange(key, 0, 0, withscores=True)
                results = await pipeline.execute()
        except (RedisError, OSError) as e:
            if not self.fail_open:
                self.logger.error("Rate limit check failed", client_id=client_id, error=str(e))
                raise StoreUnavailableError("Rate limiter unavailable", details={"error": str(e)}) from e

            self.logger.error("Rate limit check error, admitting request", client_id=client_id, error=str(e))
            return RateLimitDecision(
                allowed=True,
                limit=limit,
                remaining=limit,
                reset_seconds=window_seconds,
                current_count=0,
                error="Redis unavailable",
            )

        count = int(results[2])
        oldest_entries = results[4] or []
        oldest_ms = float(oldest_entries[0][1]) if oldest_entries else float(now_ms)
        reset_seconds = max(0, math.ceil((oldest_ms + window_ms - now_ms) / 1000))

        allowed = count <= limit
        if not allowed:
            self.logger.warning(
                "Rate limit exceeded",
                client_id=client_id,
                current_count=count,
                limit=limit,
            )

        return RateLimitDecision(
            allowed=allowed,
            limit=limit,
            remaining=max(0, limit - count),
            reset_seconds=reset_seconds,
            current_count=count,
        )

    async def reset(self, client_id: str) -> bool:
        """Forget all recorded requests of a client."""
        try:
            await self.redis.delete(self._make_key(client_id))
        except (RedisError, OSError) as e:
            self.logger.error("Rate limit reset error", client_id=client_id, error=str(e))
            return False

        self.logger.info("Rate limit reset", client_id=client_id)
        return True


def client_identifier(request: Request) -> str:
    """Extract the caller identity used as rate limit key."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else "unknown"
