import logging
from contextlib import contextmanager
from datetime import date
from typing import Optional
from app.core.config import settings
from app.core.redis_store import RedisStore

logger = logging.getLogger(__name__)


# Global store instance
_store_instance: Optional[RedisStore] = None


def get_store() -> RedisStore:
    """Get global Redis store instance"""
    global _store_instance
    if _store_instance is None:
        _store_instance = RedisStore()
    return _store_instance


def experiment_lock_key(experiment_id: str) -> str:
    return f"experiment_lock:{experiment_id}"


def create_lock_key(user_id: str) -> str:
    return f"experiment_create_lock:{user_id}"


def reminder_marker_key(user_id: str, day: date, hour: int) -> str:
    return f"reminder_sent:{user_id}:{day.isoformat()}:{hour:02d}"


@contextmanager
def distributed_lock(lock_key: str):
    """
    Hold a Redis lock for the duration of the block.

    If the lock cannot be acquired (Redis down or contention past the block
    timeout) the block still runs; the caller's database transaction is then
    the only guard.

    Yields:
        True if the lock is held, False otherwise
    """
    store = get_store()
    lock_acquired = store.acquire_lock(
        lock_key,
        timeout_seconds=settings.experiment_lock_timeout_seconds,
        block_seconds=settings.experiment_lock_block_seconds,
    )
    if not lock_acquired:
        logger.warning(f"distributed_lock: Could not acquire lock - {lock_key}")

    try:
        yield lock_acquired
    finally:
        if lock_acquired:
            store.release_lock(lock_key)


def experiment_lock(experiment_id: str):
    """Serialize mutations of a single experiment"""
    return distributed_lock(experiment_lock_key(experiment_id))


def create_lock(user_id: str):
    """Serialize the tier check and insert of a new experiment for one user"""
    return distributed_lock(create_lock_key(user_id))


def claim_reminder(user_id: str, day: date, hour: int) -> bool:
    """
    Claim the reminder slot for (user, day, hour).

    Returns False only when the slot was already claimed by an earlier tick.
    With Redis unavailable the claim succeeds, so a reminder may repeat
    rather than be lost.
    """
    claimed = get_store().set_if_absent(
        reminder_marker_key(user_id, day, hour),
        ttl_seconds=settings.reminder_dedup_ttl_hours * 3600,
    )
    return claimed is not False


def release_reminder(user_id: str, day: date, hour: int):
    """Give a claimed slot back after a failed delivery so the next tick retries it"""
    get_store().delete(reminder_marker_key(user_id, day, hour))
