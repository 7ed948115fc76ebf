"""Device-scoped key-value storage for anonymous carts."""
from typing import Dict, Optional, Protocol

from upstash_redis import Redis

from storefront.db import RedisKeys, TTL, get_redis_sync
from storefront.logging import get_logger, sanitize_id_for_logging

logger = get_logger(__name__)


class LocalStore(Protocol):
    """Synchronous blob storage scoped to one device."""

    def read(self, key: str) -> Optional[str]: ...

    def write(self, key: str, value: str) -> None: ...


class RedisLocalStore:
    """
    Local persistence backed by Upstash Redis.

    Keys are namespaced by device id so two devices never share a cart.
    Writes are best effort: failures are logged and the caller carries on.
    """

    def __init__(self, device_id: str, redis: Optional[Redis] = None, ttl: int = TTL.ANONYMOUS_CART):
        if not device_id:
            raise ValueError("device_id must be a non-empty string")
        self.device_id = device_id
        self.ttl = ttl
        self._redis = redis

    @property
    def redis(self) -> Redis:
        """Get Redis client (lazy initialization)."""
        if self._redis is None:
            self._redis = get_redis_sync()
        return self._redis

    def _key(self, key: str) -> str:
        return RedisKeys.device_key(self.device_id, key)

    def read(self, key: str) -> Optional[str]:
        try:
            value = self.redis.get(self._key(key))
        except Exception as e:
            logger.warning(
                "Failed to read %s for device %s: %s",
                key,
                sanitize_id_for_logging(self.device_id),
                type(e).__name__,
            )
            return None
        if value is None:
            return None
        return value.decode() if isinstance(value, bytes) else str(value)

    def write(self, key: str, value: str) -> None:
        try:
            self.redis.set(self._key(key), value, ex=self.ttl)
        except Exception as e:
            logger.warning(
                "Failed to write %s for device %s: %s",
                key,
                sanitize_id_for_logging(self.device_id),
                type(e).__name__,
            )


class MemoryLocalStore:
    """In-process storage, for tests and embedding without Redis."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._store: Dict[str, str] = dict(initial or {})

    def read(self, key: str) -> Optional[str]:
        return self._store.get(key)

    def write(self, key: str, value: str) -> None:
        self._store[key] = value
