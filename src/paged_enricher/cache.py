"""Disk caching of enrichment lookups using diskcache."""

from typing import Any, Optional
import diskcache as dc
from .config import settings
from .logging_config import get_logger
from .utils.typing import Enricher, Record

logger = get_logger(__name__)

# Global cache instance
_cache: Optional[dc.Cache] = None


def get_cache() -> dc.Cache:
    """Get or create the global cache instance."""
    global _cache
    if _cache is None:
        _cache = dc.Cache(
            directory=settings.cache_dir,
            size_limit=1024 * 1024 * 1024,  # 1GB
            eviction_policy="least-recently-used",
        )
    return _cache


class CachedEnricher:
    """
    Wrap an enricher so repeated lookups hit disk.

    Keys come from the wrapped enricher's ``cache_key(record)`` when it has
    one (``HttpEnricher`` uses the request URL). Otherwise they combine
    ``key_prefix``, the enricher class and the record id, so enrichers
    without a ``cache_key`` sharing one cache need distinct prefixes.

    Only successful lookups are cached; failures propagate unchanged so the
    enrichment stage still sees them.
    """

    def __init__(
        self,
        enricher: Enricher,
        cache: Optional[dc.Cache] = None,
        ttl_seconds: Optional[int] = None,
        key_prefix: str = "enrich",
    ):
        self.enricher = enricher
        self.cache = cache
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.cache_ttl_days * 24 * 60 * 60
        self.key_prefix = key_prefix
        self.hits = 0
        self.misses = 0

    def _key(self, record: Record) -> str:
        key_for = getattr(self.enricher, "cache_key", None)
        if key_for is not None:
            return f"{self.key_prefix}:{key_for(record)}"
        return f"{self.key_prefix}:{type(self.enricher).__qualname__}:{record.id!r}"

    async def enrich(self, record: Record) -> Any:
        cache = self.cache if self.cache is not None else get_cache()
        key = self._key(record)

        result = cache.get(key)
        if result is not None:
            self.hits += 1
            return result

        self.misses += 1
        result = await self.enricher.enrich(record)
        cache.set(key, result, expire=self.ttl_seconds)
        return result


def clear_cache() -> None:
    """Clear all cached data."""
    cache = get_cache()
    cache.clear()


def cache_stats() -> dict[str, Any]:
    """Get cache statistics."""
    cache = get_cache()
    return {
        "size": len(cache),
        "volume": cache.volume(),
        "statistics": cache.stats(enable=True),
    }
