"""
Backing store adapters for conversation buffers.

The engine only needs get / set-with-TTL / delete. Expiry is the store's job:
the engine never polls for stale buffers.
"""
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

import redis

from config.settings import RedisConfig
from smart_buffer.utils import setup_logger, StoreUnavailableError


logger = setup_logger(__name__)


class BufferStore(ABC):
    """Key-value store with per-key TTL."""

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Return the stored value, or None when absent or expired."""

    @abstractmethod
    def set_with_ttl(self, key: str, value: bytes, ttl_seconds: int) -> None:
        """Store value and (re)start its expiry clock."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove key; returns True if something was deleted."""

    @abstractmethod
    def ttl(self, key: str) -> Optional[int]:
        """Remaining life in seconds, None when the key does not exist."""

    def ping(self) -> bool:
        return True


class RedisStore(BufferStore):
    """Redis-backed store; every operation is bounded by socket timeouts."""

    def __init__(self, redis_config: RedisConfig, client: Optional[redis.Redis] = None):
        self.config = redis_config

        if client is not None:
            self.client = client
        else:
            if not redis_config.url:
                raise StoreUnavailableError("REDIS_URL is not configured")
            options = {
                'db': redis_config.db,
                'socket_timeout': redis_config.socket_timeout,
                'socket_connect_timeout': redis_config.connect_timeout,
            }
            if redis_config.password:
                options['password'] = redis_config.password
            self.client = redis.Redis.from_url(redis_config.url, **options)

    def get(self, key: str) -> Optional[bytes]:
        try:
            return self.client.get(key)
        except redis.RedisError as e:
            logger.error(f"Redis GET failed for {key}: {e}")
            raise StoreUnavailableError(f"Redis GET failed: {e}")

    def set_with_ttl(self, key: str, value: bytes, ttl_seconds: int) -> None:
        try:
            self.client.setex(key, max(1, int(ttl_seconds)), value)
        except redis.RedisError as e:
            logger.error(f"Redis SETEX failed for {key}: {e}")
            raise StoreUnavailableError(f"Redis SETEX failed: {e}")

    def delete(self, key: str) -> bool:
        try:
            return bool(self.client.delete(key))
        except redis.RedisError as e:
            logger.error(f"Redis DEL failed for {key}: {e}")
            raise StoreUnavailableError(f"Redis DEL failed: {e}")

    def ttl(self, key: str) -> Optional[int]:
        try:
            remaining = self.client.ttl(key)
        except redis.RedisError as e:
            raise StoreUnavailableError(f"Redis TTL failed: {e}")
        # -2: no such key, -1: key without expiry
        if remaining is None or remaining == -2:
            return None
        return remaining

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return False


class InMemoryStore(BufferStore):
    """Process-local store used when Redis is not configured, and in tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[bytes, float]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str) -> Optional[Tuple[bytes, float]]:
        # Caller holds _lock
        item = self._data.get(key)
        if item is None:
            return None
        if item[1] <= self._clock():
            del self._data[key]
            return None
        return item

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            item = self._live(key)
            return item[0] if item else None

    def set_with_ttl(self, key: str, value: bytes, ttl_seconds: int) -> None:
        with self._lock:
            self._data[key] = (value, self._clock() + max(1, int(ttl_seconds)))

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def ttl(self, key: str) -> Optional[int]:
        with self._lock:
            item = self._live(key)
            if item is None:
                return None
            return int(round(item[1] - self._clock()))

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for _, expires_at in self._data.values() if expires_at > now)
