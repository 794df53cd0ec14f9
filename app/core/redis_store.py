import logging
import time
import uuid
from typing import Optional, Dict
import redis
from redis.exceptions import RedisError
from app.core.config import settings

logger = logging.getLogger(__name__)

# Compare-and-delete so a lock that expired and was re-acquired elsewhere is left alone
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


class RedisStore:
    """Redis-backed coordination for per-experiment locks and reminder dedup markers"""

    def __init__(self, client: Optional[redis.Redis] = None):
        """Initialize Redis store (lazy connection unless a client is given)"""
        self._client: Optional[redis.Redis] = client
        self._connected = client is not None
        self._lock_tokens: Dict[str, str] = {}

    def _connect(self):
        """Connect to Redis server"""
        try:
            client_kwargs = {
                'decode_responses': False,
                'socket_connect_timeout': 2,
                'socket_timeout': 2,
                'retry_on_timeout': False,
                'health_check_interval': 0,
                'db': settings.redis_db,  # a db in the URL path wins
            }
            # settings.redis_password takes precedence over a password in the URL
            if settings.redis_password:
                client_kwargs['password'] = settings.redis_password

            self._client = redis.from_url(settings.redis_url, **client_kwargs)
            self._client.ping()
            self._connected = True
            logger.info("RedisStore: Connected to Redis")
        except (RedisError, ValueError) as e:
            error_msg = str(e)
            if 'auth' in error_msg.lower() or 'password' in error_msg.lower():
                logger.error(f"RedisStore: Authentication failed - {error_msg}. Check REDIS_PASSWORD or the password in REDIS_URL.")
            else:
                logger.warning(f"RedisStore: Connection failed - {error_msg}")
            self._connected = False
            self._client = None

    def _ensure_connected(self) -> bool:
        """Ensure Redis connection is established, returns False when Redis is unavailable"""
        if self._connected and self._client is not None:
            return True
        self._connect()
        return self._client is not None

    def acquire_lock(self, lock_key: str, timeout_seconds: int = 10, block_seconds: int = 5) -> bool:
        """
        Acquire a distributed lock using Redis.

        Args:
            lock_key: Unique key for the lock
            timeout_seconds: How long the lock will be held (auto-release)
            block_seconds: How long to wait trying to acquire the lock

        Returns:
            True if lock acquired, False otherwise
        """
        if not self._ensure_connected():
            logger.warning(f"RedisStore: Cannot acquire lock {lock_key} - Redis not available")
            return False

        try:
            end_time = time.monotonic() + block_seconds
            lock_value = str(uuid.uuid4())

            while True:
                # SET key value NX EX timeout - atomic operation
                if self._client.set(lock_key, lock_value, nx=True, ex=timeout_seconds):
                    self._lock_tokens[lock_key] = lock_value
                    logger.debug(f"RedisStore: Lock acquired - {lock_key}")
                    return True
                if time.monotonic() >= end_time:
                    break
                time.sleep(0.05)

            logger.debug(f"RedisStore: Failed to acquire lock - {lock_key}")
            return False
        except RedisError as e:
            logger.error(f"RedisStore: Error acquiring lock {lock_key}: {e}")
            self._connected = False
            return False

    def release_lock(self, lock_key: str):
        """Release a distributed lock held by this store"""
        lock_value = self._lock_tokens.pop(lock_key, None)
        if lock_value is None or not self._ensure_connected():
            return

        try:
            self._client.eval(_RELEASE_SCRIPT, 1, lock_key, lock_value)
            logger.debug(f"RedisStore: Lock released - {lock_key}")
        except RedisError as e:
            logger.error(f"RedisStore: Error releasing lock {lock_key}: {e}")
            self._connected = False

    def set_if_absent(self, key: str, ttl_seconds: int) -> Optional[bool]:
        """
        Set a marker key only if it does not exist yet.

        Returns:
            True if the marker was created, False if it already existed,
            None if Redis is unavailable
        """
        if not self._ensure_connected():
            logger.warning(f"RedisStore: Cannot set marker {key} - Redis not available")
            return None

        try:
            return bool(self._client.set(key, b"1", nx=True, ex=ttl_seconds))
        except RedisError as e:
            logger.error(f"RedisStore: Error setting marker {key}: {e}")
            self._connected = False
            return None

    def delete(self, key: str):
        """Delete a key"""
        if not self._ensure_connected():
            logger.warning(f"RedisStore: Cannot delete key {key} - Redis not available")
            return

        try:
            self._client.delete(key)
        except RedisError as e:
            logger.error(f"RedisStore: Error deleting key {key}: {e}")
            self._connected = False
