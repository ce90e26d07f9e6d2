"""Response caching for search results."""

from .keys import make_cache_key
from .response_cache import CacheEntry, ResponseCache
from .storage import SqliteCacheStorage

__all__ = ["CacheEntry", "ResponseCache", "SqliteCacheStorage", "make_cache_key"]
