"""Redis client and request rate limiting.

Provides a lazily-created Redis connection and a fixed-window rate limiter
that counts requests per client in Redis so limits hold across workers.
When Redis is disabled or unreachable the limiter keeps its counters in
process memory instead.
"""
import math
import threading
import time
from typing import Dict, Optional, Tuple

import redis

from app.core.logging import get_logger
from app.core.config import settings

logger = get_logger(__name__)

# Redis connection pool (lazy initialization)
_redis_pool: Optional[redis.ConnectionPool] = None
_redis_client: Optional[redis.Redis] = None


def get_redis_client(
    host: Optional[str] = None,
    port: Optional[int] = None,
    db: Optional[int] = None,
    password: Optional[str] = None,
) -> Optional[redis.Redis]:
    """Get or create the Redis client with connection pooling.

    Uses settings from environment variables if not explicitly provided.
    Returns None if Redis is disabled or not reachable (graceful fallback).
    """
    global _redis_pool, _redis_client

    if not settings.redis_enabled:
        return None

    host = host or settings.redis_host
    port = port or settings.redis_port
    db = db if db is not None else settings.redis_db
    password = password or settings.redis_password

    if _redis_client is None:
        logger.info(f"Initializing Redis connection pool: {host}:{port}")

        try:
            _redis_pool = redis.ConnectionPool(
                host=host,
                port=port,
                db=db,
                password=password,
                decode_responses=True,
                max_connections=50,
                socket_connect_timeout=2,
                socket_timeout=2,
            )

            _redis_client = redis.Redis(connection_pool=_redis_pool)
            _redis_client.ping()
            logger.info("Redis connection established successfully")

        except redis.RedisError as e:
            logger.warning(f"Redis unavailable, rate limiting falls back to memory: {e}")
            _redis_client = None
            return None

    return _redis_client


class RateLimitResult:
    """Outcome of a single rate-limit check."""

    __slots__ = ("allowed", "limit", "remaining", "retry_after")

    def __init__(self, allowed: bool, limit: int, remaining: int, retry_after: int):
        self.allowed = allowed
        self.limit = limit
        self.remaining = remaining
        self.retry_after = retry_after


class RateLimiter:
    """Fixed-window request counter keyed by client identifier.

    Example:
        >>> limiter = RateLimiter(window_ms=60000, max_requests=30)
        >>> result = limiter.hit("203.0.113.7")
        >>> result.allowed, result.remaining
        (True, 29)
    """

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        window_ms: int = 60000,
        max_requests: int = 30,
        key_prefix: str = "ratelimit:"
    ):
        """Initialize rate limiter.

        Args:
            redis_client: Redis client; counters are kept in memory when None
            window_ms: Window length in milliseconds
            max_requests: Requests allowed per client per window
            key_prefix: Prefix for Redis keys
        """
        self.redis = redis_client
        self.window_ms = window_ms
        self.max_requests = max_requests
        self.key_prefix = key_prefix
        self._memory: Dict[str, Tuple[int, int]] = {}
        self._memory_window: Optional[int] = None
        self._lock = threading.Lock()

        logger.info(
            f"RateLimiter initialized: {max_requests} requests per {window_ms}ms "
            f"({self.backend} backend)"
        )

    @property
    def backend(self) -> str:
        return "redis" if self.redis is not None else "memory"

    def _window_start(self, now_ms: int) -> int:
        return now_ms - (now_ms % self.window_ms)

    def _make_key(self, client_id: str, window_start: int) -> str:
        return f"{self.key_prefix}{client_id}:{window_start}"

    def _hit_redis(self, client_id: str, window_start: int) -> int:
        key = self._make_key(client_id, window_start)
        pipe = self.redis.pipeline()
        pipe.incr(key)
        pipe.pexpire(key, self.window_ms)
        count, _ = pipe.execute()
        return int(count)

    def _hit_memory(self, client_id: str, window_start: int) -> int:
        with self._lock:
            if self._memory_window is None or window_start > self._memory_window:
                # Window rolled over: counters from older windows are dead
                self._memory = {
                    key: entry for key, entry in self._memory.items()
                    if entry[0] >= window_start
                }
                self._memory_window = window_start
            start, count = self._memory.get(client_id, (window_start, 0))
            if start != window_start:
                count = 0
            count += 1
            self._memory[client_id] = (window_start, count)
            return count

    def hit(self, client_id: str, now_ms: Optional[int] = None) -> RateLimitResult:
        """Count one request for ``client_id`` and report whether it is allowed."""
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        window_start = self._window_start(now_ms)

        count = None
        if self.redis is not None:
            try:
                count = self._hit_redis(client_id, window_start)
            except redis.RedisError as e:
                logger.error(f"Rate limit check failed in Redis, using memory: {e}")
        if count is None:
            count = self._hit_memory(client_id, window_start)

        retry_after = math.ceil((window_start + self.window_ms - now_ms) / 1000)
        return RateLimitResult(
            allowed=count <= self.max_requests,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - count),
            retry_after=max(1, retry_after),
        )

    def reset(self) -> None:
        """Forget in-memory counters."""
        with self._lock:
            self._memory.clear()
            self._memory_window = None


_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Shared limiter configured from settings."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter(
            redis_client=get_redis_client(),
            window_ms=settings.rate_limit_window_ms,
            max_requests=settings.rate_limit_max_requests,
        )
    return _rate_limiter
