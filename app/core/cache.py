from __future__ import annotations

# redis backed one-time key store (nonce replay guard)
import time
from threading import Lock
from typing import Callable, Dict, Optional

from redis import Connection, ConnectionPool, Redis, SSLConnection
from redis.exceptions import RedisError

from app.core.config import settings


class HybridCacheManager:
    """One-time key store with Redis + in-memory fallback.

    `add(key, ttl)` records a key only if it is not already present, so the
    first caller wins and every later caller within the TTL is refused.
    Redis is used when reachable (SET NX EX); otherwise a locked in-process
    dict with per-key expiry takes over.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        *,
        timer: Callable[[], float] = time.time,
    ):
        self._timer = timer
        self.memory_cache: Dict[str, float] = {}
        self._memory_lock = Lock()
        self._last_redis_check: Optional[float] = None
        self.redis_available = False
        if host is None or host.strip() == "":
            self.pool = None
            return
        self.pool = ConnectionPool(
            host=host,
            port=port or 6379,
            socket_connect_timeout=0.05,
            socket_timeout=5,
            retry_on_timeout=False,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            connection_class=SSLConnection if settings.REDIS_SSL else Connection
        )

    def redis_connect(self) -> Optional[Redis]:
        """Connect to Redis, with a recheck cooldown when unavailable"""
        # If Redis is not configured, skip
        if self.pool is None:
            return None

        # If Redis was available, try immediately
        if self.redis_available:
            try:
                rc = Redis(connection_pool=self.pool)
                if rc.ping():
                    return rc
            except RedisError:
                pass
            self.redis_available = False
            self._last_redis_check = self._timer()
            return None

        now = self._timer()
        if self._last_redis_check is not None:
            if now - self._last_redis_check < settings.REDIS_RECHECK_INTERVAL:
                return None

        # Time to recheck Redis connection
        self._last_redis_check = now
        try:
            rc = Redis(connection_pool=self.pool)
            if rc.ping():
                self.redis_available = True
                return rc
        except RedisError:
            pass

        return None

    def add(self, key: str, ttl_seconds: int) -> bool:
        """Record key for ttl_seconds. Returns False if it was already recorded."""
        ttl_seconds = max(int(ttl_seconds), 1)
        added = self._add_redis(key, ttl_seconds)
        if added is not None:
            return added
        return self._add_memory(key, ttl_seconds)

    def _add_redis(self, key: str, ttl_seconds: int) -> Optional[bool]:
        rc = self.redis_connect()
        if rc is None:
            return None
        try:
            return bool(rc.set(key, b"1", nx=True, ex=ttl_seconds))
        except RedisError:
            return None
        finally:
            rc.close()

    def discard(self, key: str) -> None:
        """Forget a recorded key so it can be added again."""
        rc = self.redis_connect()
        if rc is not None:
            try:
                rc.delete(key)
            except RedisError:
                pass
            finally:
                rc.close()
        with self._memory_lock:
            self.memory_cache.pop(key, None)

    def _add_memory(self, key: str, ttl_seconds: int) -> bool:
        now = self._timer()
        with self._memory_lock:
            # purge expired entries
            expired = [k for k, exp in self.memory_cache.items() if exp <= now]
            for k in expired:
                self.memory_cache.pop(k, None)

            if key in self.memory_cache:
                return False
            self.memory_cache[key] = now + ttl_seconds
            return True


# Global instance
nonce_store = HybridCacheManager(settings.REDIS_HOST, settings.REDIS_PORT)
