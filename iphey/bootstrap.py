"""Bootstrap helpers that assemble all runtime components."""

from __future__ import annotations

import logging
from typing import Optional

from requests import Session
from sqlalchemy.engine import Engine

from .caching import CacheStore, create_cache, create_kv_engine
from .config import AppConfig
from .services.http import HttpSettings, configure_http
from .services.insight import IpInsightService
from .services.normalization import NormalizedIpInsight
from .services.providers import IpInfoClient, RadarClient
from .services.report import ReportService, Scorer
from .services.scheduler import SchedulerService
from .services.tasks import TaskQueue
from .services.warming import CacheWarmer

LOGGER = logging.getLogger("iphey.bootstrap")


class BootstrapContext:
    def __init__(
        self,
        config: AppConfig,
        insight: IpInsightService,
        warmer: CacheWarmer,
        tasks: TaskQueue,
        scheduler: SchedulerService,
        reports: ReportService,
        engine: Optional[Engine] = None,
    ) -> None:
        self.config = config
        self.insight = insight
        self.warmer = warmer
        self.tasks = tasks
        self.scheduler = scheduler
        self.reports = reports
        self.engine = engine

    def warm(self) -> None:
        """Run one warm-up pass with the configured pacing."""
        self.warmer.warm_cache(
            self.insight.lookup_ip_insight,
            enabled=True,
            delay_between_requests_ms=self.config.cache_warming_delay_ms,
        )

    def start_background(self) -> None:
        """Cold-start warming plus the optional periodic re-warm."""
        if self.config.cache_warming_enabled:
            self.tasks.submit(self.warm, description="cache-warming")
        interval = self.config.cache_warming_interval_seconds
        if interval > 0:
            self.scheduler.add_task("cache_rewarm", interval=interval, handler=self._schedule_warm)
            self.scheduler.start()

    def _schedule_warm(self) -> None:
        if self.warmer.is_in_progress():
            LOGGER.info("Skipping scheduled re-warm, previous run still active")
            return
        self.tasks.submit(self.warm, description="cache-rewarm")

    def stop(self) -> None:
        self.scheduler.stop()
        self.tasks.shutdown()
        if self.engine is not None:
            self.engine.dispose()


def _build_engine(config: AppConfig) -> Engine:
    url = config.cache_kv_url
    if url.startswith("sqlite:///") and ":memory:" not in url:
        config.data_dir.mkdir(parents=True, exist_ok=True)
    return create_kv_engine(url)


def build_cache(config: AppConfig, engine: Optional[Engine] = None) -> CacheStore[NormalizedIpInsight]:
    return create_cache(
        "ip-insight",
        backend=config.cache_backend,
        ttl_ms=config.cache_ttl_ms,
        stale_ttl_ms=config.cache_stale_ttl_ms,
        engine=engine,
        serializer=NormalizedIpInsight.to_dict,
        deserializer=NormalizedIpInsight.from_dict,
    )


def bootstrap_services(
    config: AppConfig,
    *,
    session: Session | None = None,
    cache: CacheStore[NormalizedIpInsight] | None = None,
    tasks: TaskQueue | None = None,
    scorer: Scorer | None = None,
) -> BootstrapContext:
    """Assemble one Insight Service and its collaborators for this process."""
    if session is None:
        session = configure_http(
            HttpSettings(
                timeout=config.client_timeout,
                retries=config.http_retries,
                backoff_factor=config.http_backoff_factor,
            )
        )

    engine = None
    if cache is None:
        if config.cache_backend == "kv":
            engine = _build_engine(config)
        cache = build_cache(config, engine)

    primary = IpInfoClient(config.ipinfo_token, session=session, timeout=config.client_timeout)
    secondary = RadarClient(
        config.cloudflare_account_id,
        config.cloudflare_radar_token,
        session=session,
        timeout=config.client_timeout,
    )
    tasks = tasks or TaskQueue(name="iphey", max_workers=config.task_workers)
    insight = IpInsightService(cache, primary, secondary, tasks)
    LOGGER.info(
        "IP insight service ready: backend=%s ipinfo=%s radar=%s",
        cache.backend,
        primary.configured,
        secondary.configured,
    )
    return BootstrapContext(
        config=config,
        insight=insight,
        warmer=CacheWarmer(),
        tasks=tasks,
        scheduler=SchedulerService(),
        reports=ReportService(insight.lookup_ip_insight, scorer=scorer),
        engine=engine,
    )
