from asktennis.services.cache.query_cache import CacheEntry, QueryCache, fingerprint

__all__ = ["CacheEntry", "QueryCache", "fingerprint"]
