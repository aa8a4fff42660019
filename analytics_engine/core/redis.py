"""
Redis caching utilities for the analytics engine.
Memoizes aggregation results; every failure degrades to a cache miss.
"""
import redis
import json
import logging
from typing import Optional, Any

logger = logging.getLogger(__name__)

# Characters with special meaning in Redis MATCH patterns
_GLOB_SPECIAL = "*?[]\\"


def escape_pattern(text: str) -> str:
    """Escape glob metacharacters so text matches literally in SCAN MATCH."""
    return "".join(f"\\{ch}" if ch in _GLOB_SPECIAL else ch for ch in text)


class RedisCache:
    """Redis cache manager with connection pooling."""

    def __init__(
        self,
        url: str,
        socket_timeout: float = 5.0,
        max_connections: int = 20,
    ):
        """Remember connection parameters; call connect() before use."""
        self._url = url
        self._socket_timeout = socket_timeout
        self._max_connections = max_connections
        self._pool: Optional[redis.ConnectionPool] = None
        self._client: Optional[redis.Redis] = None
        self._connected = False

    def connect(self):
        """
        Connect to Redis server.
        Safe to call multiple times - will reuse existing connection.
        """
        if self._connected and self._client:
            return

        try:
            self._pool = redis.ConnectionPool.from_url(
                self._url,
                max_connections=self._max_connections,
                decode_responses=True,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_timeout,
            )
            self._client = redis.Redis(connection_pool=self._pool)

            # Test connection
            self._client.ping()
            self._connected = True
            logger.info("Redis cache connected successfully")
        except redis.RedisError as e:
            logger.warning(f"Redis connection failed: {e}. Caching disabled.")
            self._connected = False
            self._client = None

    def disconnect(self):
        """Disconnect from Redis."""
        if self._pool:
            self._pool.disconnect()
        self._connected = False
        self._client = None
        logger.info("Redis cache disconnected")

    @property
    def is_connected(self) -> bool:
        """Check if Redis is connected."""
        return self._connected and self._client is not None

    def ping(self) -> bool:
        """Round-trip to the server; False when unreachable."""
        if not self.is_connected:
            return False
        try:
            return bool(self._client.ping())
        except redis.RedisError as e:
            logger.warning(f"Redis PING error: {e}")
            return False

    def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found/error
        """
        if not self.is_connected:
            return None

        try:
            value = self._client.get(key)
            if value is None:
                return None
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                logger.warning(f"Discarding undecodable cache entry '{key}'")
                return None
        except redis.RedisError as e:
            logger.warning(f"Redis GET error for key '{key}': {e}")
            return None

    def set(self, key: str, value: Any, ttl: int) -> bool:
        """
        Set value in cache with TTL.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Time to live in seconds

        Returns:
            True if successful, False otherwise
        """
        if not self.is_connected:
            return False

        try:
            self._client.setex(key, ttl, json.dumps(value))
            return True
        except (redis.RedisError, TypeError, ValueError) as e:
            logger.warning(f"Redis SET error for key '{key}': {e}")
            return False

    def delete(self, key: str) -> bool:
        """
        Delete key from cache.

        Returns:
            True if deleted, False otherwise
        """
        if not self.is_connected:
            return False

        try:
            self._client.delete(key)
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis DELETE error for key '{key}': {e}")
            return False

    def incr(self, key: str) -> Optional[int]:
        """
        Atomically increment an integer counter (created at 0).

        Returns:
            New value, or None on error or no connection
        """
        if not self.is_connected:
            return None

        try:
            return int(self._client.incr(key))
        except redis.RedisError as e:
            logger.warning(f"Redis INCR error for key '{key}': {e}")
            return None

    def delete_prefix(self, prefix: str) -> bool:
        """
        Delete all keys starting with prefix.

        Args:
            prefix: Literal key prefix (e.g., "analytics:<app>:event-summary:")

        Returns:
            True when the sweep completed, False on error or no connection
        """
        if not self.is_connected:
            return False

        try:
            keys = list(self._client.scan_iter(match=f"{escape_pattern(prefix)}*", count=500))
            if keys:
                self._client.delete(*keys)
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis DELETE_PREFIX error for prefix '{prefix}': {e}")
            return False
