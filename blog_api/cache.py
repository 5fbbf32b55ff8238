import hashlib
import json
import logging

import redis.asyncio as redis

from blog_api.config import settings

logger = logging.getLogger(__name__)

LIST_KEY_PREFIX = "posts:list"


class CacheManager:
    """
    Cache-aside manager backed by Redis.

    Every public method tolerates Redis being down or unconfigured: reads
    count as misses and writes are skipped, so the API keeps serving from
    the database.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None
        self._hits: int = 0
        self._misses: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection pool.  Called once at application startup."""
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except (redis.RedisError, OSError) as exc:  # pragma: no cover
            logger.warning("Redis ping failed, cache disabled: %s", exc)
            await self._redis.aclose()
            self._redis = None

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Core cache operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> dict | list | None:
        """Return the cached value for *key*, or None on a miss / error."""
        if not self._redis:
            self._misses += 1
            return None
        try:
            data = await self._redis.get(key)
        except (redis.RedisError, OSError) as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            self._misses += 1
            return None
        if data is None:
            self._misses += 1
            return None
        self._hits += 1
        return json.loads(data)

    async def set(self, key: str, value: dict | list, ttl: int | None = None) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl)
        except (redis.RedisError, OSError) as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def delete_pattern(self, pattern: str) -> None:
        """Delete all keys matching *pattern* using SCAN (avoids blocking KEYS)."""
        if not self._redis:
            return
        try:
            keys: list[str] = [key async for key in self._redis.scan_iter(match=pattern)]
            if keys:
                await self._redis.delete(*keys)
                logger.debug("Cache invalidated %d key(s) matching %r", len(keys), pattern)
        except (redis.RedisError, OSError) as exc:
            logger.debug("Cache DELETE_PATTERN error for pattern=%r: %s", pattern, exc)

    # ------------------------------------------------------------------
    # Domain-level helpers
    # ------------------------------------------------------------------

    @staticmethod
    def list_key(*parts) -> str:
        """
        Build a list-page key from the normalised filter *parts*.

        The parts are JSON-encoded and hashed, so user text containing the
        key separator cannot make two different filters share a key.
        """
        encoded = json.dumps(list(parts), separators=(",", ":"), default=str)
        return f"{LIST_KEY_PREFIX}:{hashlib.sha256(encoded.encode()).hexdigest()}"

    async def invalidate_lists(self) -> None:
        """
        Purge every cached post list.

        Called after any write that can change list membership, order or
        the derived counts shown in list items.
        """
        await self.delete_pattern(f"{LIST_KEY_PREFIX}:*")

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "connected": self._redis is not None,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }


# Module-level singleton shared across all request handlers.
cache = CacheManager()
