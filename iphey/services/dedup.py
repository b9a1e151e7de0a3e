"""In-process request deduplication (single-flight per key)."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, Optional, TypeVar

T = TypeVar("T")

LOGGER = logging.getLogger("iphey.dedup")


@dataclass(slots=True)
class DedupTicket(Generic[T]):
    key: str
    future: Future = field(default_factory=Future)
    waiters: int = 0


class RequestDeduplicator:
    """Ensure only one resolution per key is in flight at a time.

    The first caller for a key runs ``factory`` on its own thread; callers that
    arrive before it settles block on the same future and receive the same
    value or exception.  The ticket is dropped the moment the factory settles,
    so the next call always starts a fresh resolution.

    *waiter_error* builds the exception each waiter raises from the owner's
    failure (chained with ``from``), so waiters never share one traceback.
    Returning the original exception re-raises it unchanged.
    """

    def __init__(self, waiter_error: Optional[Callable[[BaseException], BaseException]] = None) -> None:
        self._waiter_error = waiter_error
        self._pending: Dict[str, DedupTicket] = {}
        self._lock = threading.Lock()

    def deduplicate(self, key: str, factory: Callable[[], T]) -> T:
        with self._lock:
            ticket = self._pending.get(key)
            owner = ticket is None
            if owner:
                ticket = DedupTicket(key=key)
                self._pending[key] = ticket
            else:
                ticket.waiters += 1

        if not owner:
            LOGGER.debug("Joining in-flight resolution for %s", key)
            try:
                return ticket.future.result()
            except BaseException as exc:
                fresh = self._waiter_error(exc) if self._waiter_error else exc
                if fresh is exc:
                    raise
                raise fresh from exc

        try:
            value = factory()
        except BaseException as exc:
            self._settle(key)
            ticket.future.set_exception(exc)
            raise
        self._settle(key)
        ticket.future.set_result(value)
        return value

    def _settle(self, key: str) -> None:
        with self._lock:
            self._pending.pop(key, None)

    def in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._pending

    def waiters(self, key: str) -> int:
        """Number of callers attached to the in-flight resolution of *key*."""
        with self._lock:
            ticket = self._pending.get(key)
            return ticket.waiters if ticket else 0

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)
