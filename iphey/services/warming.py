"""Best-effort cache warming for a fixed list of frequently requested IPs."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

LOGGER = logging.getLogger("iphey.warming")

# Public resolvers and CDN anycast addresses that show up in most reports.
DEFAULT_WARM_IPS: tuple[str, ...] = (
    "8.8.8.8",
    "8.8.4.4",
    "1.1.1.1",
    "1.0.0.1",
    "9.9.9.9",
    "149.112.112.112",
    "208.67.222.222",
    "208.67.220.220",
    "94.140.14.14",
    "76.76.2.0",
)


@dataclass(slots=True)
class WarmRun:
    started_at: float
    finished_at: float | None = None
    succeeded: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "succeeded": self.succeeded,
            "failed": self.failed,
        }


class CacheWarmer:
    """Sequentially pre-populates the cache: ``idle -> warming -> idle``.

    Lookups run one at a time with a pause between them to stay inside
    upstream rate limits.
    """

    def __init__(
        self,
        candidates: Sequence[str] = DEFAULT_WARM_IPS,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.candidates = tuple(candidates)
        self._sleep = sleep
        self._lock = threading.Lock()
        self._in_progress = False
        self._warmed_count = 0
        self.last_run: Optional[WarmRun] = None

    def is_in_progress(self) -> bool:
        with self._lock:
            return self._in_progress

    def get_warmed_count(self) -> int:
        with self._lock:
            return self._warmed_count

    def warm_cache(
        self,
        lookup_fn: Callable[[str], Any],
        *,
        enabled: bool = True,
        delay_between_requests_ms: int = 100,
    ) -> Optional[WarmRun]:
        if not enabled:
            LOGGER.debug("Cache warming disabled")
            return None
        with self._lock:
            if self._in_progress:
                LOGGER.info("Cache warming already in progress, skipping")
                return None
            self._in_progress = True

        run = WarmRun(started_at=time.time())
        LOGGER.info("Cache warming started for %s IPs", len(self.candidates))
        try:
            for idx, ip in enumerate(self.candidates):
                try:
                    lookup_fn(ip)
                except Exception as exc:  # noqa: BLE001
                    run.failed += 1
                    LOGGER.warning("Cache warming failed for %s: %s", ip, exc)
                else:
                    run.succeeded += 1
                    with self._lock:
                        self._warmed_count += 1
                if delay_between_requests_ms > 0 and idx < len(self.candidates) - 1:
                    self._sleep(delay_between_requests_ms / 1000.0)
        finally:
            run.finished_at = time.time()
            with self._lock:
                self._in_progress = False
                self.last_run = run
        LOGGER.info("Cache warming finished: %s ok, %s failed", run.succeeded, run.failed)
        return run

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "warmingInProgress": self._in_progress,
                "warmedCount": self._warmed_count,
                "lastRun": self.last_run.to_dict() if self.last_run else None,
            }
