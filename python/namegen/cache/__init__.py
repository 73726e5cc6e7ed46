from namegen.cache.store import CacheStore, ResponseCache

__all__ = ["CacheStore", "ResponseCache"]
