from datetime import date
import json
from unittest.mock import MagicMock, patch

from redis.exceptions import ConnectionError as RedisConnectionError

from practice_space.services.cache_service import (
    CacheKeyBuilder,
    CacheService,
    CircuitBreaker,
    CircuitState,
)


class TestCacheKeyBuilder:
    def test_conflict_snapshot_key(self) -> None:
        assert (
            CacheKeyBuilder.build("conflict", "space", date(2025, 6, 10), "b15")
            == "con:space:2025-06-10:b15"
        )

    def test_unknown_namespace_is_kept(self) -> None:
        assert CacheKeyBuilder.build("misc", 3) == "misc:3"


class TestMemoryBackend:
    def test_round_trip_returns_decoded_json(self) -> None:
        cache = CacheService(use_redis=False)

        cache.set("k", {"day": date(2031, 3, 11), "n": 1}, ttl=60)

        assert cache.backend == "memory"
        assert cache.get("k") == {"day": "2031-03-11", "n": 1}

    def test_expired_entry_is_a_miss(self) -> None:
        cache = CacheService(use_redis=False)
        with patch("practice_space.services.cache_service.monotonic", return_value=1000.0):
            cache.set("k", [1], ttl=30)
        with patch("practice_space.services.cache_service.monotonic", return_value=1031.0):
            assert cache.get("k") is None

    def test_delete(self) -> None:
        cache = CacheService(use_redis=False)
        cache.set("k", 1, ttl=60)

        assert cache.delete("k") is True
        assert cache.delete("k") is False
        assert cache.get("k") is None


class TestRedisBackend:
    def test_values_are_stored_as_json_with_ttl(self) -> None:
        client = MagicMock()
        cache = CacheService(redis_client=client)

        assert cache.set("k", {"a": 1}, ttl=1800) is True

        client.setex.assert_called_once_with("k", 1800, json.dumps({"a": 1}))

    def test_get_decodes_json(self) -> None:
        client = MagicMock()
        client.get.return_value = '{"a": 1}'
        cache = CacheService(redis_client=client)

        assert cache.get("k") == {"a": 1}

    def test_redis_errors_read_as_misses(self) -> None:
        client = MagicMock()
        client.get.side_effect = RedisConnectionError("down")
        cache = CacheService(redis_client=client)

        assert cache.get("k") is None

    def test_circuit_opens_after_repeated_failures(self) -> None:
        client = MagicMock()
        client.get.side_effect = RedisConnectionError("down")
        cache = CacheService(redis_client=client)

        for _ in range(cache.circuit_breaker.failure_threshold):
            cache.get("k")
        cache.get("k")

        assert cache.circuit_breaker.state is CircuitState.OPEN
        assert client.get.call_count == cache.circuit_breaker.failure_threshold


class TestCircuitBreaker:
    def test_half_open_after_recovery_timeout_and_closes_on_success(self) -> None:
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=10)

        def fail():
            raise RedisConnectionError("down")

        with patch("practice_space.services.cache_service.monotonic", return_value=100.0):
            assert breaker.call(fail) == (False, None)
            assert breaker.state is CircuitState.OPEN
        with patch("practice_space.services.cache_service.monotonic", return_value=111.0):
            assert breaker.state is CircuitState.HALF_OPEN
            assert breaker.call(lambda: "ok") == (True, "ok")
        assert breaker.state is CircuitState.CLOSED
