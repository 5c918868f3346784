from __future__ import annotations

from datetime import date
import threading
import time
from unittest.mock import MagicMock, patch

import pytest

from practice_space.core import day_lock
from practice_space.core.day_lock import day_lock_key, resource_day_lock
from practice_space.core.exceptions import ServiceException

DAY = date(2031, 3, 11)
NEXT_DAY = date(2031, 3, 12)


def test_day_lock_key_format() -> None:
    assert day_lock_key(DAY) == "lock:space:2031-03-11"


def test_locks_days_in_ascending_order() -> None:
    with resource_day_lock([NEXT_DAY, DAY, NEXT_DAY]) as keys:
        assert keys == [day_lock_key(DAY), day_lock_key(NEXT_DAY)]


def test_lock_is_released_after_block() -> None:
    with resource_day_lock([DAY]):
        pass
    with resource_day_lock([DAY], wait_s=0.1) as keys:
        assert keys == [day_lock_key(DAY)]


def test_lock_is_released_when_block_raises() -> None:
    with pytest.raises(RuntimeError):
        with resource_day_lock([DAY]):
            raise RuntimeError("boom")
    with resource_day_lock([DAY], wait_s=0.1):
        pass


def test_contended_lock_times_out_instead_of_proceeding() -> None:
    held = threading.Event()
    release = threading.Event()

    def holder() -> None:
        with resource_day_lock([DAY]):
            held.set()
            release.wait(5)

    thread = threading.Thread(target=holder)
    thread.start()
    try:
        assert held.wait(5)
        with pytest.raises(ServiceException) as exc_info:
            with resource_day_lock([DAY], wait_s=0.05):
                pytest.fail("entered a day that another writer holds")
        assert exc_info.value.code == "DAY_LOCK_TIMEOUT"
    finally:
        release.set()
        thread.join(5)


def test_different_days_do_not_block_each_other() -> None:
    with resource_day_lock([DAY]):
        with resource_day_lock([NEXT_DAY], wait_s=0.05) as keys:
            assert keys == [day_lock_key(NEXT_DAY)]


def test_redis_lock_taken_and_released_with_token() -> None:
    client = MagicMock()
    client.set.return_value = True
    client.eval.return_value = 1

    with patch.object(day_lock, "_get_sync_redis", return_value=client):
        with resource_day_lock([DAY], ttl_s=7):
            _, kwargs = client.set.call_args
            assert kwargs == {"nx": True, "ex": 7}

    args = client.eval.call_args[0]
    assert args[2] == day_lock_key(DAY)
    assert args[3] == client.set.call_args[0][1]


def test_redis_contention_fails_closed() -> None:
    client = MagicMock()
    client.set.return_value = None

    started = time.monotonic()
    with patch.object(day_lock, "_get_sync_redis", return_value=client):
        with pytest.raises(ServiceException):
            with resource_day_lock([DAY], wait_s=0.1):
                pytest.fail("proceeded without the Redis lock")
    assert time.monotonic() - started < 5
    client.eval.assert_not_called()


def test_redis_error_degrades_to_local_lock() -> None:
    client = MagicMock()
    client.set.side_effect = ConnectionError("redis down")

    with patch.object(day_lock, "_get_sync_redis", return_value=client):
        with resource_day_lock([DAY], wait_s=0.1) as keys:
            assert keys == [day_lock_key(DAY)]
    client.eval.assert_not_called()


def test_failed_redis_connect_is_not_retried_until_backoff_expires(monkeypatch) -> None:
    monkeypatch.setattr(day_lock, "_SYNC_REDIS", None)
    monkeypatch.setattr(day_lock, "_SYNC_REDIS_FAILED_AT", None)
    monkeypatch.setattr(day_lock.settings, "cache_redis_enabled", True)
    monkeypatch.setattr(day_lock.settings, "is_testing", False)
    client = MagicMock()
    client.ping.side_effect = ConnectionError("redis down")

    with patch.object(day_lock.Redis, "from_url", return_value=client) as from_url:
        with patch.object(day_lock.time, "monotonic", return_value=1000.0):
            assert day_lock._get_sync_redis() is None
            assert day_lock._get_sync_redis() is None
        assert from_url.call_count == 1

        with patch.object(day_lock.time, "monotonic", return_value=1031.0):
            assert day_lock._get_sync_redis() is None
        assert from_url.call_count == 2
