"""
Process-local TTL cache.
"""

from datetime import timedelta
from typing import Any, Optional

from devhub.core.logging import get_logger
from devhub.db.models import utcnow

logger = get_logger(__name__)


class InMemoryCacheRepository:
    """
    In-memory cache with per-entry expiry.

    Used for upstream listings that are expensive to fetch and change
    slowly, such as an organisation's repositories.
    """

    def __init__(self, default_ttl_seconds: int = 300) -> None:
        """
        Initialize the cache.

        Args:
            default_ttl_seconds: TTL used when set() is called without one
        """
        self._cache: dict[str, dict[str, Any]] = {}
        self.default_ttl = default_ttl_seconds

    async def get(self, key: str) -> Optional[Any]:
        """Get a value, dropping it if expired."""
        entry = self._cache.get(key)
        if entry is None:
            return None

        if entry["expires_at"] < utcnow():
            del self._cache[key]
            return None

        return entry["value"]

    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: Optional[int] = None,
    ) -> None:
        await self.clear_expired()
        ttl = ttl_seconds or self.default_ttl
        now = utcnow()
        self._cache[key] = {
            "value": value,
            "expires_at": now + timedelta(seconds=ttl),
            "created_at": now,
        }
        logger.debug("Cache set", key=key, ttl=ttl)

    async def clear_expired(self) -> int:
        """Drop every expired entry; runs on each write."""
        now = utcnow()
        expired = [key for key, entry in self._cache.items() if entry["expires_at"] < now]
        for key in expired:
            del self._cache[key]

        if expired:
            logger.debug("Cleared expired cache entries", count=len(expired))
        return len(expired)

    async def delete(self, key: str) -> bool:
        return self._cache.pop(key, None) is not None

    async def clear(self) -> None:
        self._cache.clear()
        logger.info("Cache cleared")
