"""
Tests for the Redis store and the lock helpers built on it
"""

from datetime import date
from unittest.mock import MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core import locks
from app.core.redis_store import RedisStore


@pytest.fixture
def redis_client():
    client = MagicMock()
    client.set.return_value = True
    return client


class TestRedisStore:
    """Test cases for RedisStore"""

    def test_acquire_and_release_lock(self, redis_client):
        store = RedisStore(client=redis_client)

        assert store.acquire_lock("experiment_lock:exp_1", timeout_seconds=10, block_seconds=0) is True

        key, token = redis_client.set.call_args[0]
        assert key == "experiment_lock:exp_1"
        assert redis_client.set.call_args[1] == {"nx": True, "ex": 10}

        store.release_lock("experiment_lock:exp_1")

        # Released with the token it was taken with
        args = redis_client.eval.call_args[0]
        assert args[1:] == (1, "experiment_lock:exp_1", token)

    def test_lock_held_elsewhere_times_out(self, redis_client):
        redis_client.set.return_value = None
        store = RedisStore(client=redis_client)

        assert store.acquire_lock("experiment_lock:exp_1", timeout_seconds=10, block_seconds=0) is False

        store.release_lock("experiment_lock:exp_1")
        redis_client.eval.assert_not_called()

    def test_set_if_absent(self, redis_client):
        store = RedisStore(client=redis_client)

        assert store.set_if_absent("reminder_sent:u1:2024-01-01:20", ttl_seconds=60) is True
        redis_client.set.return_value = None
        assert store.set_if_absent("reminder_sent:u1:2024-01-01:20", ttl_seconds=60) is False

    def test_unavailable_redis(self):
        with patch("app.core.redis_store.redis.from_url", side_effect=RedisConnectionError("refused")):
            store = RedisStore()

            assert store.acquire_lock("experiment_lock:exp_1", block_seconds=0) is False
            assert store.set_if_absent("reminder_sent:u1:2024-01-01:20", ttl_seconds=60) is None
            store.delete("reminder_sent:u1:2024-01-01:20")

    def test_error_mid_operation_marks_disconnected(self, redis_client):
        redis_client.set.side_effect = RedisConnectionError("reset")
        store = RedisStore(client=redis_client)

        assert store.set_if_absent("k", ttl_seconds=60) is None
        assert store._connected is False


class TestLockHelpers:
    """Test cases for the helpers in app.core.locks"""

    def test_lock_released_after_block(self, mock_store):
        with locks.experiment_lock("exp_1") as held:
            assert held is True

        mock_store.release_lock.assert_called_once_with("experiment_lock:exp_1")

    def test_lock_released_on_error(self, mock_store):
        with pytest.raises(RuntimeError):
            with locks.create_lock("user_1"):
                raise RuntimeError("boom")

        mock_store.release_lock.assert_called_once_with("experiment_create_lock:user_1")

    def test_block_runs_without_lock(self, mock_store):
        mock_store.acquire_lock.return_value = False

        with locks.experiment_lock("exp_1") as held:
            assert held is False

        mock_store.release_lock.assert_not_called()

    def test_claim_reminder(self, mock_store):
        assert locks.claim_reminder("u1", date(2024, 1, 6), 8) is True
        assert mock_store.set_if_absent.call_args[0][0] == "reminder_sent:u1:2024-01-06:08"
        assert mock_store.set_if_absent.call_args[1]["ttl_seconds"] == 26 * 3600

        mock_store.set_if_absent.return_value = False
        assert locks.claim_reminder("u1", date(2024, 1, 6), 8) is False

        mock_store.set_if_absent.return_value = None
        assert locks.claim_reminder("u1", date(2024, 1, 6), 8) is True
