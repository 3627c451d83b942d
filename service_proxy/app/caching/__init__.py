"""
Proxy caching package.

Fingerprints inbound requests and stores origin responses keyed by those
fingerprints. Entries expire logically at read time and are overwritten,
never deleted.
"""

from .fingerprint import CacheKeyBuilder, SKIP_HEADERS, forwardable_headers, should_skip_header
from .models import CacheEntry
from .store import CacheStore, InMemoryCacheStore, RedisCacheStore, create_cache_store

__all__ = [
    "CacheKeyBuilder",
    "SKIP_HEADERS",
    "forwardable_headers",
    "should_skip_header",
    "CacheEntry",
    "CacheStore",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "create_cache_store",
]
