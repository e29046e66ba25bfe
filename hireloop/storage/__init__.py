from .cache import CacheKeys, TTLCache, cache, cache_keys
from .session_store import SessionStore

__all__ = ["CacheKeys", "SessionStore", "TTLCache", "cache", "cache_keys"]
