"""Durable key-value cache backend on top of SQLAlchemy.

Rows are visible to every worker process that points at the same database
URL.  Each row carries its own ``expires_at`` set to the end of the stale
window, so the row outlives the fresh window but not the usable one.  Expired
rows are removed lazily on read.
"""

from __future__ import annotations

import contextlib
import json
import logging
from typing import Any, Callable, Iterator, Optional, TypeVar

from sqlalchemy import Float, String, Text, create_engine, delete, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from .store import CacheEntry, CacheStore, Clock

T = TypeVar("T")

LOGGER = logging.getLogger("iphey.cache")


class Base(DeclarativeBase):
    """Declarative base for cache tables."""


class KvCacheRow(Base):
    __tablename__ = "iphey_cache_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    stored_at: Mapped[float] = mapped_column(Float, nullable=False)
    expires_at: Mapped[float] = mapped_column(Float, nullable=False, index=True)


def create_kv_engine(url: str, echo: bool = False) -> Engine:
    """Create the engine and make sure the cache table exists."""
    kwargs: dict[str, Any] = {"echo": echo, "future": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in {"sqlite://", "sqlite:///:memory:"}:
            kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)
    Base.metadata.create_all(engine)
    return engine


class KvCacheStore(CacheStore[T]):
    """Cross-process backend; slower than memory, eventually consistent.

    Values are converted with *serializer* / *deserializer* to JSON-friendly
    objects.  Database failures are logged and degrade to a miss (reads) or a
    dropped write, never to an exception in the caller.
    """

    backend = "kv"

    def __init__(
        self,
        namespace: str,
        engine: Engine,
        *,
        ttl_ms: int,
        stale_ttl_ms: int,
        serializer: Callable[[T], Any] | None = None,
        deserializer: Callable[[Any], T] | None = None,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(namespace, ttl_ms=ttl_ms, stale_ttl_ms=stale_ttl_ms, clock=clock)
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        self._serialize = serializer or (lambda value: value)
        self._deserialize = deserializer or (lambda value: value)

    @contextlib.contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _read(self, key: str) -> Optional[CacheEntry[T]]:
        try:
            with self._session() as session:
                row = session.get(KvCacheRow, key)
                if row is None:
                    return None
                stored_at = row.stored_at
                if row.expires_at < self._clock():
                    session.execute(self._delete_row(key, stored_at))
                    return None
                payload = json.loads(row.payload)
        except SQLAlchemyError as exc:
            LOGGER.warning("KV cache read failed for %s: %s", key, exc)
            return None
        except ValueError as exc:
            LOGGER.warning("KV cache row %s is corrupt, dropping: %s", key, exc)
            self._discard_row(key, stored_at)
            return None
        try:
            data = self._deserialize(payload)
        except (TypeError, ValueError) as exc:
            LOGGER.warning("KV cache row %s could not be decoded: %s", key, exc)
            self._discard_row(key, stored_at)
            return None
        return CacheEntry(data=data, stored_at=stored_at)

    @staticmethod
    def _delete_row(key: str, stored_at: float):
        # a concurrent writer bumps stored_at, so its row survives
        return delete(KvCacheRow).where(KvCacheRow.key == key, KvCacheRow.stored_at == stored_at)

    def _discard_row(self, key: str, stored_at: float) -> None:
        try:
            with self._session() as session:
                session.execute(self._delete_row(key, stored_at))
        except SQLAlchemyError as exc:
            LOGGER.warning("KV cache delete failed for %s: %s", key, exc)

    def _discard(self, key: str, entry: CacheEntry[T]) -> None:
        self._discard_row(key, entry.stored_at)

    def _write(self, key: str, entry: CacheEntry[T]) -> None:
        row = KvCacheRow(
            key=key,
            payload=json.dumps(self._serialize(entry.data), ensure_ascii=False),
            stored_at=entry.stored_at,
            expires_at=entry.stored_at + self.stale_ttl_ms / 1000.0,
        )
        try:
            with self._session() as session:
                session.merge(row)
        except SQLAlchemyError as exc:
            LOGGER.warning("KV cache write failed for %s: %s", key, exc)

    def _remove(self, key: str) -> None:
        try:
            with self._session() as session:
                session.execute(delete(KvCacheRow).where(KvCacheRow.key == key))
        except SQLAlchemyError as exc:
            LOGGER.warning("KV cache delete failed for %s: %s", key, exc)

    def clear(self) -> None:
        """Drop every row belonging to this namespace."""
        try:
            with self._session() as session:
                session.execute(delete(KvCacheRow).where(KvCacheRow.key.like(f"{self.namespace}:%")))
        except SQLAlchemyError as exc:
            LOGGER.warning("KV cache clear failed for %s: %s", self.namespace, exc)

    def stats(self) -> dict[str, Any]:
        data = super().stats()
        try:
            with self._session() as session:
                data["items"] = session.scalar(
                    select(func.count()).select_from(KvCacheRow).where(KvCacheRow.key.like(f"{self.namespace}:%"))
                )
        except SQLAlchemyError as exc:
            LOGGER.warning("KV cache stats failed: %s", exc)
            data["items"] = None
        return data
