"""Service layer helpers for IPhey."""

from .logging import JsonFormatter, SensitiveDataFilter, configure_logging, redact_ip
from .http import HttpSettings, configure_http, create_session, get_http_session, http_request
from .normalization import NormalizedIpInsight, normalize_ipinfo, normalize_radar
from .dedup import RequestDeduplicator
from .providers import (
    IpInfoClient,
    ProviderClient,
    ProviderError,
    ProviderRejectedError,
    ProviderTimeoutError,
    RadarClient,
)
from .tasks import TaskQueue
from .scheduler import SchedulerService
from .insight import IpInsightService
from .warming import DEFAULT_WARM_IPS, CacheWarmer
from .report import ReportService

__all__ = [
    "JsonFormatter",
    "SensitiveDataFilter",
    "configure_logging",
    "redact_ip",
    "HttpSettings",
    "configure_http",
    "create_session",
    "get_http_session",
    "http_request",
    "NormalizedIpInsight",
    "normalize_ipinfo",
    "normalize_radar",
    "RequestDeduplicator",
    "IpInfoClient",
    "ProviderClient",
    "ProviderError",
    "ProviderRejectedError",
    "ProviderTimeoutError",
    "RadarClient",
    "TaskQueue",
    "SchedulerService",
    "IpInsightService",
    "DEFAULT_WARM_IPS",
    "CacheWarmer",
    "ReportService",
]
