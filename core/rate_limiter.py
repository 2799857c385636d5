# core/rate_limiter.py
"""
Distributed sliding-window rate limiter backed by Redis

Each client identity maps to one Redis key holding a JSON list of recent
request timestamps. Every check round-trips to Redis; nothing is cached
in process between requests.

The read-modify-write is not atomic. Two requests from the same client
landing in the same instant may both be admitted past the limit. The
limiter is a soft abuse deterrent, not a metering system, so this is
accepted. When Redis is unconfigured or unreachable the limiter fails
open and logs a degraded-mode warning.
"""

import json
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

import redis

logger = logging.getLogger(__name__)

KEY_PREFIX = 'rate_limit:form'


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single rate-limit check"""
    allowed: bool
    limit: int
    remaining: int
    reset_time: float  # epoch seconds
    degraded: bool = False

    def retry_after(self, now: float) -> int:
        """Whole seconds until the oldest counted request leaves the window"""
        return max(1, math.ceil(self.reset_time - now))


class RateLimiter:
    """
    Sliding-window limiter over a shared key/value store

    Args:
        redis_client: Client exposing get() and setex(); None disables limiting
        clock: Returns the current time in epoch seconds
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None,
                 clock: Callable[[], float] = time.time):
        self.redis_client = redis_client
        self.clock = clock

    @staticmethod
    def _key(client_id: str) -> str:
        return f"{KEY_PREFIX}:{client_id}"

    def _load(self, key: str) -> List[float]:
        raw = self.redis_client.get(key)
        if raw is None:
            return []
        if isinstance(raw, bytes):
            raw = raw.decode('utf-8')
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding unreadable rate limit entry for {key}")
            return []
        if not isinstance(data, list):
            return []
        return [float(ts) for ts in data if isinstance(ts, (int, float)) and not isinstance(ts, bool)]

    def check(self, client_id: str, limit: int, window_seconds: int) -> RateLimitResult:
        """
        Count one request for client_id against limit per window_seconds

        Args:
            client_id: Client identity (usually the client IP)
            limit: Maximum requests admitted within the window
            window_seconds: Window length; also the key TTL

        Returns:
            RateLimitResult. Not-allowed results carry reset_time equal to the
            oldest surviving timestamp plus the window.
        """
        now = self.clock()

        if self.redis_client is None:
            logger.warning("Rate limiter store not configured, skipping rate limiting (degraded mode)")
            return RateLimitResult(allowed=True, limit=limit, remaining=-1,
                                   reset_time=now + window_seconds, degraded=True)

        key = self._key(client_id)
        try:
            timestamps = self._load(key)
            recent = sorted(ts for ts in timestamps if now - ts < window_seconds)

            if len(recent) >= limit:
                return RateLimitResult(allowed=False, limit=limit, remaining=0,
                                       reset_time=recent[0] + window_seconds)

            recent.append(now)
            # Inactive clients expire after one window
            self.redis_client.setex(key, max(1, int(math.ceil(window_seconds))), json.dumps(recent))

        except redis.RedisError as e:
            logger.warning(f"Rate limiter store unavailable, allowing request (degraded mode): {e}")
            return RateLimitResult(allowed=True, limit=limit, remaining=-1,
                                   reset_time=now + window_seconds, degraded=True)

        return RateLimitResult(allowed=True, limit=limit, remaining=limit - len(recent),
                               reset_time=recent[0] + window_seconds)
