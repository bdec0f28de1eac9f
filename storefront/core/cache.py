# storefront/core/cache.py

import functools
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


class ResponseCache:
    """
    In-process TTL cache for GET responses.

    Entries are keyed by request URL plus the authenticated user id and are
    evicted either lazily on expiry or explicitly by substring match.
    State is local to this process and is not shared between instances.
    """

    def __init__(self, default_ttl: int = DEFAULT_TTL_SECONDS):
        self.default_ttl = default_ttl
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self.cache_stats = {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "evictions": 0
        }

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.cache_stats["misses"] += 1
                return None
            expires_at, value = entry
            if expires_at <= time.monotonic():
                del self._entries[key]
                self.cache_stats["evictions"] += 1
                self.cache_stats["misses"] += 1
                logger.debug(f"Expired cache entry removed: {key}")
                return None
            self.cache_stats["hits"] += 1
            return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = (time.monotonic() + ttl, value)
            self.cache_stats["sets"] += 1

    def clear(self, pattern: str) -> int:
        """Remove every entry whose key contains ``pattern``."""
        with self._lock:
            matching = [key for key in self._entries if pattern in key]
            for key in matching:
                del self._entries[key]
            self.cache_stats["evictions"] += len(matching)
        if matching:
            logger.info(f"Cleared {len(matching)} cache entries matching '{pattern}'")
        return len(matching)

    def clear_all(self) -> None:
        with self._lock:
            self._entries.clear()
            for name in self.cache_stats:
                self.cache_stats[name] = 0
        logger.info("All cache cleared")

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self.cache_stats["hits"] + self.cache_stats["misses"]
            return {
                "keys": len(self._entries),
                "hits": self.cache_stats["hits"],
                "misses": self.cache_stats["misses"],
                "sets": self.cache_stats["sets"],
                "evictions": self.cache_stats["evictions"],
                "hitRate": round(self.cache_stats["hits"] / lookups, 4) if lookups else 0.0,
            }


response_cache = ResponseCache()


def build_cache_key(request, user_id: Optional[int] = None) -> str:
    key = f"cache_{request.url.path}"
    if request.url.query:
        key += f"?{request.url.query}"
    if user_id is not None:
        key += f"_user_{user_id}"
    return key


def clear_cache(pattern: str) -> int:
    return response_cache.clear(pattern)


def cached(ttl: int = DEFAULT_TTL_SECONDS) -> Callable:
    """
    Cache the JSON-encoded result of an async GET endpoint.

    The endpoint must accept ``request``; when it also takes ``current_user``
    the cache entry is scoped to that user. A ``response`` parameter, if
    present, receives an ``X-Cache`` header.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            request = kwargs.get("request")
            if request is None or request.method != "GET":
                return await func(*args, **kwargs)

            user = kwargs.get("current_user")
            key = build_cache_key(request, getattr(user, "id", None))
            response = kwargs.get("response")

            hit = response_cache.get(key)
            if hit is not None:
                if response is not None:
                    response.headers["X-Cache"] = "HIT"
                return hit

            result = jsonable_encoder(await func(*args, **kwargs), by_alias=True)
            response_cache.set(key, result, ttl)
            if response is not None:
                response.headers["X-Cache"] = "MISS"
            return result

        return wrapper
    return decorator
