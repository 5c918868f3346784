# backend/practice_space/services/cache_service.py
"""
Cache Service for the practice space scheduler.

Holds per-day conflict snapshots as JSON payloads. Redis is used when it is
configured and reachable; a breaker stops hammering it after repeated
failures, and an in-process TTL store takes over when Redis is absent.
Cache errors never reach callers: a failed read is a miss, a failed write is
dropped.
"""

from datetime import date, datetime, time
from enum import Enum
import json
import logging
import threading
from time import monotonic
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar, Union

import redis
from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from ..core.config import settings
from .base import BaseService

logger = logging.getLogger(__name__)

T = TypeVar("T")

KeyPart = Union[str, int, date, datetime, time]


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Stops calling Redis after ``failure_threshold`` consecutive errors.

    After ``recovery_timeout`` seconds one trial call is let through; success
    closes the circuit again.
    """

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60.0) -> None:
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._failures = 0
        self._opened_at: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            if self._opened_at is None:
                return CircuitState.CLOSED
            if monotonic() - self._opened_at >= self.recovery_timeout:
                return CircuitState.HALF_OPEN
            return CircuitState.OPEN

    def call(self, func: Callable[[], T]) -> Tuple[bool, Optional[T]]:
        """Run ``func``; returns (ran, result). Redis errors count as failures and are absorbed."""
        if self.state is CircuitState.OPEN:
            return False, None
        try:
            result = func()
        except RedisError as exc:
            self._record_failure(exc)
            return False, None
        self._record_success()
        return True, result

    def _record_success(self) -> None:
        with self._lock:
            if self._opened_at is not None:
                logger.info("Redis recovered; closing cache circuit")
            self._failures = 0
            self._opened_at = None

    def _record_failure(self, exc: RedisError) -> None:
        with self._lock:
            self._failures += 1
            logger.warning(f"Redis cache call failed ({self._failures}): {exc}")
            if self._failures >= self.failure_threshold:
                if self._opened_at is None:
                    logger.warning(f"Opening cache circuit after {self._failures} failures")
                self._opened_at = monotonic()


class CacheKeyBuilder:
    """Colon-joined keys with short namespace prefixes."""

    PREFIXES = {"conflict": "con", "series": "series"}

    @staticmethod
    def build(namespace: str, *parts: KeyPart) -> str:
        """
        Examples:
            build("conflict", "space", date(2025, 6, 10), "b15") -> "con:space:2025-06-10:b15"
        """
        formatted = [CacheKeyBuilder.PREFIXES.get(namespace, namespace)]
        for part in parts:
            formatted.append(part.isoformat() if isinstance(part, (date, time)) else str(part))
        return ":".join(formatted)


class _MemoryStore:
    """Thread-safe dict with per-key expiry, used when Redis is off."""

    def __init__(self) -> None:
        self._values: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._values.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if monotonic() >= expires_at:
                del self._values[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: int) -> None:
        with self._lock:
            self._values[key] = (value, monotonic() + ttl)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._values.pop(key, None) is not None


class CacheService(BaseService):
    """JSON cache for conflict snapshots, Redis-backed with an in-memory fallback."""

    def __init__(
        self,
        db: Optional[Session] = None,
        redis_client: Optional[Redis] = None,
        *,
        use_redis: Optional[bool] = None,
    ):
        super().__init__(db)  # type: ignore[arg-type]
        self.logger = logging.getLogger(__name__)
        self.circuit_breaker = CircuitBreaker()
        self._memory = _MemoryStore()

        if use_redis is None:
            use_redis = settings.cache_redis_enabled and not settings.is_testing
        self.redis: Optional[Redis] = redis_client
        if self.redis is None and use_redis:
            self.redis = self._connect()

    @staticmethod
    def _connect() -> Optional[Redis]:
        try:
            client = redis.from_url(
                settings.redis_url or "redis://localhost:6379",
                decode_responses=True,
                socket_connect_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
            client.ping()
        except (RedisError, ConnectionError) as e:
            logger.warning(f"Redis not available: {e}. Using in-memory snapshot cache.")
            return None
        logger.info("Connected to Redis for snapshot caching")
        return client

    @property
    def backend(self) -> str:
        return "redis" if self.redis is not None else "memory"

    @BaseService.measure_operation("cache_get")
    def get(self, key: str) -> Optional[Any]:
        client = self.redis
        if client is None:
            return self._memory.get(key)

        ran, raw = self.circuit_breaker.call(lambda: client.get(key))
        if not ran or raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            self.logger.warning(f"Ignoring non-JSON cache entry {key}")
            return None

    @BaseService.measure_operation("cache_set")
    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        ttl = ttl or settings.conflict_snapshot_ttl_seconds
        serialized = json.dumps(value, default=str)
        client = self.redis
        if client is None:
            # Decoded copy so both backends hand back the same shape.
            self._memory.set(key, json.loads(serialized), ttl)
            return True

        ran, _ = self.circuit_breaker.call(lambda: client.setex(key, ttl, serialized))
        return ran

    @BaseService.measure_operation("cache_delete")
    def delete(self, key: str) -> bool:
        client = self.redis
        if client is None:
            return self._memory.delete(key)

        ran, removed = self.circuit_breaker.call(lambda: client.delete(key))
        return bool(ran and removed)
