from __future__ import annotations

from contextlib import ExitStack, contextmanager
from datetime import date
import logging
import threading
import time
from typing import Dict, Iterable, Iterator, List, Optional
import uuid

from redis import Redis

from ..monitoring.prometheus_metrics import prometheus_metrics
from .config import settings
from .exceptions import ServiceException

logger = logging.getLogger(__name__)

RESOURCE_KIND = "space"

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_FAILED_AT: Optional[float] = None
_SYNC_REDIS_LOCK = threading.Lock()
_REDIS_RETRY_SECONDS = 30.0
_LOCAL_LOCKS: Dict[str, threading.Lock] = {}
_LOCAL_LOCKS_GUARD = threading.Lock()

_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


def day_lock_key(day: date) -> str:
    return f"lock:{RESOURCE_KIND}:{day.isoformat()}"


def _get_local_lock(key: str) -> threading.Lock:
    with _LOCAL_LOCKS_GUARD:
        lock = _LOCAL_LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _LOCAL_LOCKS[key] = lock
        return lock


def _get_sync_redis() -> Optional[Redis]:
    global _SYNC_REDIS, _SYNC_REDIS_FAILED_AT
    if not settings.cache_redis_enabled or settings.is_testing:
        return None
    if _SYNC_REDIS is not None:
        return _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        if _SYNC_REDIS is not None:
            return _SYNC_REDIS
        # Skip reconnecting for a while after a failed attempt.
        if (
            _SYNC_REDIS_FAILED_AT is not None
            and time.monotonic() - _SYNC_REDIS_FAILED_AT < _REDIS_RETRY_SECONDS
        ):
            return None
        try:
            client = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=2,
            )
            client.ping()
        except Exception as exc:
            logger.warning("day_lock_redis_unavailable: %s", exc)
            _SYNC_REDIS_FAILED_AT = time.monotonic()
            return None
        _SYNC_REDIS = client
        _SYNC_REDIS_FAILED_AT = None
        return _SYNC_REDIS


def _acquire_redis(client: Redis, key: str, token: str, ttl_s: int, deadline: float) -> bool:
    while True:
        if client.set(key, token, nx=True, ex=ttl_s):
            return True
        if time.monotonic() >= deadline:
            return False
        time.sleep(0.05)


def _release_redis(client: Redis, key: str, token: str) -> None:
    try:
        released = client.eval(_RELEASE_SCRIPT, 1, key, token)
        prometheus_metrics.record_day_lock("release", "success" if released else "not_found")
    except Exception as exc:
        prometheus_metrics.record_day_lock("release", "error")
        logger.warning(
            "day_lock_redis_release_failed",
            extra={"lock_key": key, "error": str(exc), "error_type": type(exc).__name__},
        )


@contextmanager
def _single_day_lock(day: date, ttl_s: int, wait_s: float) -> Iterator[str]:
    key = day_lock_key(day)
    deadline = time.monotonic() + wait_s

    local_lock = _get_local_lock(key)
    if not local_lock.acquire(timeout=wait_s):
        prometheus_metrics.record_day_lock("acquire", "timeout")
        raise ServiceException(
            f"Timed out waiting for the schedule of {day.isoformat()}; please retry",
            code="DAY_LOCK_TIMEOUT",
            details={"date": day.isoformat()},
        )

    client = _get_sync_redis()
    token = uuid.uuid4().hex
    redis_held = False
    try:
        if client is not None:
            try:
                redis_held = _acquire_redis(client, key, token, ttl_s, deadline)
            except Exception as exc:
                # Degrade to the process-local lock.
                prometheus_metrics.record_day_lock("acquire", "redis_error")
                logger.warning(
                    "day_lock_redis_acquire_failed",
                    extra={"lock_key": key, "error": str(exc), "error_type": type(exc).__name__},
                )
            else:
                if not redis_held:
                    prometheus_metrics.record_day_lock("acquire", "timeout")
                    raise ServiceException(
                        f"Timed out waiting for the schedule of {day.isoformat()}; please retry",
                        code="DAY_LOCK_TIMEOUT",
                        details={"date": day.isoformat()},
                    )
        prometheus_metrics.record_day_lock(
            "acquire", "success" if redis_held else "local_only"
        )
        yield key
    finally:
        if redis_held and client is not None:
            _release_redis(client, key, token)
        local_lock.release()


@contextmanager
def resource_day_lock(
    days: Iterable[date],
    ttl_s: Optional[int] = None,
    wait_s: Optional[float] = None,
) -> Iterator[List[str]]:
    """
    Serialize writers for one or more resource-days.

    Days are locked in ascending order so two writers touching the same pair of
    days cannot deadlock. Acquisition blocks up to ``wait_s`` seconds and then
    raises ServiceException; it never proceeds without the lock.
    """
    ttl = ttl_s if ttl_s is not None else settings.day_lock_ttl_seconds
    wait = wait_s if wait_s is not None else settings.day_lock_wait_seconds
    keys: List[str] = []
    with ExitStack() as stack:
        for day in sorted(set(days)):
            keys.append(stack.enter_context(_single_day_lock(day, ttl, wait)))
        yield keys
