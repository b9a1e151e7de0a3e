"""IP insight lookup: cache, single-flight resolution and provider failover.

``lookup_ip_insight`` serves fresh cache hits directly, serves stale hits
immediately while a background job refreshes them, and resolves misses through
the deduplicator so a burst of requests for one address costs one upstream
call.  Providers are tried strictly in order; the secondary is a fallback, not
a competitor.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Mapping, Optional, Protocol

from iphey.caching import CacheStore
from iphey.middleware.errors import UpstreamUnavailableError

from .dedup import RequestDeduplicator
from .normalization import NormalizedIpInsight, normalize_ipinfo, normalize_radar
from .providers import ProviderClient, ProviderError

LOGGER = logging.getLogger("iphey.insight")

Normalizer = Callable[[Mapping[str, Any], Optional[str]], NormalizedIpInsight]


class BackgroundRunner(Protocol):
    def submit(self, func: Callable[..., Any], *args: Any, description: str | None = None, **kwargs: Any) -> Any:
        ...


def dedup_key(ip: str) -> str:
    return f"ip:{ip}"


def waiter_error(exc: BaseException) -> BaseException:
    """Fresh 502 per joined caller; anything else is re-raised as is."""
    if isinstance(exc, UpstreamUnavailableError):
        return UpstreamUnavailableError(exc.message, exc.details)
    return exc


class IpInsightService:
    def __init__(
        self,
        cache: CacheStore[NormalizedIpInsight],
        primary: ProviderClient,
        secondary: ProviderClient,
        background: BackgroundRunner,
        *,
        deduplicator: RequestDeduplicator | None = None,
    ) -> None:
        self.cache = cache
        self.primary = primary
        self.secondary = secondary
        self.background = background
        self.deduplicator = deduplicator or RequestDeduplicator(waiter_error=waiter_error)
        self._chain: tuple[tuple[ProviderClient, Normalizer], ...] = (
            (primary, normalize_ipinfo),
            (secondary, normalize_radar),
        )
        self._revalidating: set[str] = set()
        self._revalidating_lock = threading.Lock()

    def lookup_ip_insight(self, ip: str) -> NormalizedIpInsight:
        lookup = self.cache.get_with_stale(ip)
        if lookup.entry is not None:
            if lookup.is_stale:
                self._schedule_revalidation(ip)
            return lookup.entry.data
        return self.deduplicator.deduplicate(dedup_key(ip), lambda: self._resolve_locked(ip))

    def _resolve_locked(self, ip: str) -> NormalizedIpInsight:
        # another waiter may have populated the cache while we queued
        lookup = self.cache.get_with_stale(ip)
        if lookup.entry is not None:
            return lookup.entry.data

        insight = self._resolve_from_providers(ip, phase="lookup")
        if insight is None:
            raise UpstreamUnavailableError()
        self.cache.set(ip, insight)
        return insight

    def _resolve_from_providers(self, ip: str, *, phase: str) -> Optional[NormalizedIpInsight]:
        for client, normalize in self._chain:
            try:
                raw = client.fetch(ip)
            except ProviderError as exc:
                LOGGER.warning("%s %s failed for %s: %s", client.name, phase, ip, exc)
                continue
            if raw is None:
                LOGGER.debug("%s not configured, skipping", client.name)
                continue
            return normalize(raw, ip)
        return None

    def _schedule_revalidation(self, ip: str) -> None:
        with self._revalidating_lock:
            if ip in self._revalidating:
                return
            self._revalidating.add(ip)
        LOGGER.debug("Serving stale data for %s, revalidating in background", ip)
        try:
            self.background.submit(self._revalidate, ip, description=f"revalidate-{ip}")
        except Exception as exc:  # noqa: BLE001
            self._release_revalidation(ip)
            LOGGER.warning("Could not schedule revalidation for %s: %s", ip, exc)

    def _release_revalidation(self, ip: str) -> None:
        with self._revalidating_lock:
            self._revalidating.discard(ip)

    def _revalidate(self, ip: str) -> None:
        """Refresh a stale entry; failures leave the stale entry in place."""
        try:
            insight = self._resolve_from_providers(ip, phase="revalidation")
            if insight is None:
                LOGGER.warning("Background revalidation for %s produced no data", ip)
                return
            self.cache.set(ip, insight)
            LOGGER.debug("Background revalidation completed for %s", ip)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Background revalidation error for %s: %s", ip, exc)
        finally:
            self._release_revalidation(ip)

    def revalidation_pending(self, ip: str) -> bool:
        with self._revalidating_lock:
            return ip in self._revalidating

    def verify_radar_token(self) -> bool:
        return self.secondary.verify_token()

    @property
    def ipinfo_configured(self) -> bool:
        return self.primary.configured

    @property
    def radar_configured(self) -> bool:
        return self.secondary.configured

    def stats(self) -> dict[str, Any]:
        return {
            "cache": self.cache.stats(),
            "in_flight": self.deduplicator.pending_count(),
        }
