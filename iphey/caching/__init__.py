"""Cache stores with fresh/stale semantics and backend selection."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy.engine import Engine

from .kv import KvCacheStore, create_kv_engine
from .store import CacheEntry, CacheLookup, CacheStore, Clock, MemoryCacheStore

T = TypeVar("T")

LOGGER = logging.getLogger("iphey.cache")


def create_cache(
    namespace: str,
    *,
    backend: str,
    ttl_ms: int,
    stale_ttl_ms: int,
    engine: Optional[Engine] = None,
    serializer: Callable[[T], Any] | None = None,
    deserializer: Callable[[Any], T] | None = None,
    clock: Clock | None = None,
) -> CacheStore[T]:
    """Build the configured backend; callers never branch on the result."""
    name = (backend or "memory").strip().lower()
    if name == "kv":
        if engine is None:
            raise ValueError("kv cache backend requires a database engine")
        store: CacheStore[T] = KvCacheStore(
            namespace,
            engine,
            ttl_ms=ttl_ms,
            stale_ttl_ms=stale_ttl_ms,
            serializer=serializer,
            deserializer=deserializer,
            clock=clock,
        )
    else:
        if name != "memory":
            LOGGER.warning("Unknown cache backend %r, falling back to memory", backend)
        store = MemoryCacheStore(namespace, ttl_ms=ttl_ms, stale_ttl_ms=stale_ttl_ms, clock=clock)
    LOGGER.info(
        "Cache '%s' configured: backend=%s ttl=%sms stale_ttl=%sms",
        namespace,
        store.backend,
        store.ttl_ms,
        store.stale_ttl_ms,
    )
    return store


__all__ = [
    "CacheEntry",
    "CacheLookup",
    "CacheStore",
    "KvCacheStore",
    "MemoryCacheStore",
    "create_cache",
    "create_kv_engine",
]
