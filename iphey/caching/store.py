"""TTL cache with a "stale but usable" window.

Every backend shares one contract: ``get`` returns only fresh entries,
``get_with_stale`` also returns entries past their TTL but inside the stale
window, and anything older is treated exactly like a miss.  Timings are fixed
per store, never per entry.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

T = TypeVar("T")

Clock = Callable[[], float]


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    data: T
    stored_at: float


@dataclass(frozen=True, slots=True)
class CacheLookup(Generic[T]):
    entry: Optional[CacheEntry[T]]
    is_stale: bool = False

    @property
    def hit(self) -> bool:
        return self.entry is not None


MISS: CacheLookup[Any] = CacheLookup(entry=None, is_stale=False)


class CacheStore(Generic[T]):
    """Base class holding the freshness arithmetic shared by backends.

    Parameters
    ----------
    namespace:
        Prefix applied to every key so several caches can share a backend.
    ttl_ms:
        Fresh window in milliseconds.
    stale_ttl_ms:
        Usable window in milliseconds; clamped to be at least ``ttl_ms``.
    clock:
        Callable returning epoch seconds; injectable for tests.
    """

    backend = "abstract"

    def __init__(
        self,
        namespace: str,
        *,
        ttl_ms: int,
        stale_ttl_ms: int,
        clock: Clock | None = None,
    ) -> None:
        self.namespace = namespace
        self.ttl_ms = max(0, int(ttl_ms))
        self.stale_ttl_ms = max(self.ttl_ms, int(stale_ttl_ms))
        self._clock: Clock = clock or time.time

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def _age_ms(self, entry: CacheEntry[T]) -> float:
        return (self._clock() - entry.stored_at) * 1000.0

    def is_fresh(self, entry: CacheEntry[T]) -> bool:
        return self._age_ms(entry) <= self.ttl_ms

    def is_usable(self, entry: CacheEntry[T]) -> bool:
        return self._age_ms(entry) <= self.stale_ttl_ms

    def _read(self, key: str) -> Optional[CacheEntry[T]]:
        raise NotImplementedError

    def _write(self, key: str, entry: CacheEntry[T]) -> None:
        raise NotImplementedError

    def _remove(self, key: str) -> None:
        raise NotImplementedError

    def _discard(self, key: str, entry: CacheEntry[T]) -> None:
        """Remove *entry* only if it is still the one stored under *key*."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[CacheEntry[T]]:
        """Return the entry only while it is fresh."""
        lookup = self.get_with_stale(key)
        if lookup.entry is None or lookup.is_stale:
            return None
        return lookup.entry

    def get_with_stale(self, key: str) -> CacheLookup[T]:
        """Return the entry and whether it is past its TTL.

        Entries older than the stale window are dropped and reported as a miss.
        """
        full_key = self._key(key)
        entry = self._read(full_key)
        if entry is None:
            return MISS
        if not self.is_usable(entry):
            self._discard(full_key, entry)
            return MISS
        return CacheLookup(entry=entry, is_stale=not self.is_fresh(entry))

    def set(self, key: str, value: T) -> None:
        """Replace the entry under *key* as a whole."""
        self._write(self._key(key), CacheEntry(data=value, stored_at=self._clock()))

    def delete(self, key: str) -> None:
        self._remove(self._key(key))

    def clear(self) -> None:
        raise NotImplementedError

    def stats(self) -> dict[str, Any]:
        return {
            "backend": self.backend,
            "namespace": self.namespace,
            "ttl_ms": self.ttl_ms,
            "stale_ttl_ms": self.stale_ttl_ms,
        }


class MemoryCacheStore(CacheStore[T]):
    """Process-local backend; contents are lost on restart."""

    backend = "memory"

    def __init__(
        self,
        namespace: str,
        *,
        ttl_ms: int,
        stale_ttl_ms: int,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(namespace, ttl_ms=ttl_ms, stale_ttl_ms=stale_ttl_ms, clock=clock)
        self._store: Dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()

    def _read(self, key: str) -> Optional[CacheEntry[T]]:
        with self._lock:
            return self._store.get(key)

    def _write(self, key: str, entry: CacheEntry[T]) -> None:
        with self._lock:
            self._store[key] = entry

    def _remove(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def _discard(self, key: str, entry: CacheEntry[T]) -> None:
        with self._lock:
            if self._store.get(key) is entry:
                del self._store[key]

    def clear(self) -> None:
        """Drop all entries."""
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def stats(self) -> dict[str, Any]:
        data = super().stats()
        data["items"] = len(self)
        return data
