"""In-memory response caching and request coalescing."""

from spotmeta.cache.service import ResponseCache, ResponseCacheService, SingleFlight

__all__ = ["ResponseCache", "ResponseCacheService", "SingleFlight"]
