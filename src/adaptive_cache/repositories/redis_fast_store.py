"""Redis implementation of FastStore.

Plain string keys with native Redis expiry; no index is involved. Every
Redis failure is surfaced as ``AdapterUnavailableError`` so the service
can disable the fast path.
"""

import redis

from adaptive_cache.config import get_redis_client
from adaptive_cache.errors import AdapterUnavailableError

_GLOB_SPECIALS = "\\*?[]"


def escape_glob(value: str) -> str:
    """Escape Redis MATCH glob metacharacters in ``value``."""
    return "".join(f"\\{ch}" if ch in _GLOB_SPECIALS else ch for ch in value)


class RedisFastStore:
    """Redis key-value store used for exact-match hits.

    This class satisfies the FastStore protocol through structural
    typing - no explicit inheritance needed.
    """

    ADAPTER = "fast_store"

    def __init__(self, redis_client: redis.Redis | None = None, scan_count: int = 500) -> None:
        """Initialize the fast store.

        Args:
            redis_client: Redis client instance. If None, creates default.
            scan_count: SCAN batch size hint for prefix operations.
        """
        self._client = redis_client or get_redis_client()
        self._scan_count = scan_count

    @classmethod
    def create(cls, redis_client: redis.Redis | None = None) -> "RedisFastStore":
        """Factory method to create RedisFastStore with defaults."""
        return cls(redis_client=redis_client)

    def get(self, key: str) -> bytes | None:
        try:
            value = self._client.get(key)
        except redis.RedisError as e:
            raise AdapterUnavailableError(self.ADAPTER, f"GET failed: {e}") from e
        if value is None:
            return None
        return value if isinstance(value, bytes) else str(value).encode("utf-8")

    def set_with_ttl(self, key: str, value: bytes, ttl: int) -> None:
        try:
            self._client.setex(key, ttl, value)
        except redis.RedisError as e:
            raise AdapterUnavailableError(self.ADAPTER, f"SETEX failed: {e}") from e

    def list_keys(self, prefix: str) -> list[str]:
        try:
            keys = self._client.scan_iter(match=f"{escape_glob(prefix)}*", count=self._scan_count)
            return [k.decode() if isinstance(k, bytes) else k for k in keys]
        except redis.RedisError as e:
            raise AdapterUnavailableError(self.ADAPTER, f"SCAN failed: {e}") from e

    def delete_by_prefix(self, prefix: str) -> int:
        keys = self.list_keys(prefix)
        if not keys:
            return 0
        try:
            deleted: int = self._client.delete(*keys)  # type: ignore[assignment]
        except redis.RedisError as e:
            raise AdapterUnavailableError(self.ADAPTER, f"DEL failed: {e}") from e
        return deleted

    def health_check(self) -> bool:
        """Check if Redis is accessible.

        Returns:
            True if healthy, False otherwise
        """
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False

    @property
    def client(self) -> redis.Redis:
        """Get the Redis client."""
        return self._client
