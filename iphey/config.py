"""Application configuration helpers.

This module encapsulates environment-driven configuration for IPhey so
settings are loaded once into an immutable `AppConfig` dataclass and injected
into every component during application factory bootstrap.  Nothing below the
factory reads the environment directly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

from iphey import __version__

CACHE_BACKENDS = ("memory", "kv")


def _getenv_bool(name: str, default: bool = False) -> bool:
    """Return a boolean flag from environment variables."""
    raw = os.getenv(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {"1", "true", "yes", "on"}


def _getenv_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(float(raw))
    except ValueError:
        return default


def _getenv_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _getenv_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def _load_dotenv(base_dir: Path) -> None:
    env_path = base_dir / ".env"
    if env_path.exists():
        load_dotenv(env_path)


@dataclass(frozen=True)
class AppConfig:
    """Strongly typed application configuration container."""

    base_dir: Path
    ipinfo_token: str = ""
    cloudflare_account_id: str = ""
    cloudflare_radar_token: str = ""
    cache_backend: str = "memory"
    cache_kv_url: str = ""
    cache_ttl_ms: int = 5 * 60 * 1000
    cache_stale_ttl_ms: int = 30 * 60 * 1000
    client_timeout_ms: int = 2500
    http_retries: int = 0
    http_backoff_factor: float = 0.3
    cache_warming_enabled: bool = False
    cache_warming_delay_ms: int = 100
    cache_warming_interval_seconds: int = 0
    task_workers: int = 2
    cors_origin: str = "*"
    log_level: str = "INFO"
    log_file: str = ""
    sentry_dsn: str = ""
    sentry_environment: str = "local"
    environment: str = "development"
    version: str = __version__
    data_dir: Path = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "data_dir", self.base_dir / "data")
        backend = (self.cache_backend or "memory").strip().lower()
        if backend not in CACHE_BACKENDS:
            backend = "memory"
        object.__setattr__(self, "cache_backend", backend)
        if not self.cache_kv_url:
            object.__setattr__(self, "cache_kv_url", f"sqlite:///{self.data_dir / 'iphey_cache.db'}")
        if self.cache_stale_ttl_ms < self.cache_ttl_ms:
            object.__setattr__(self, "cache_stale_ttl_ms", self.cache_ttl_ms)

    @property
    def ipinfo_configured(self) -> bool:
        return bool(self.ipinfo_token)

    @property
    def radar_configured(self) -> bool:
        return bool(self.cloudflare_account_id and self.cloudflare_radar_token)

    @property
    def client_timeout(self) -> float:
        """Provider timeout in seconds, as `requests` expects it."""
        return max(0.001, self.client_timeout_ms / 1000.0)

    @property
    def log_file_path(self) -> Optional[Path]:
        if not self.log_file:
            return None
        path = Path(self.log_file)
        return path if path.is_absolute() else self.base_dir / path

    @classmethod
    def load(cls, base_dir: Optional[Path] = None) -> "AppConfig":
        base_dir = base_dir or Path(os.getenv("IPHEY_HOME", Path.cwd()))
        _load_dotenv(base_dir)

        defaults = cls(base_dir=base_dir)
        return cls(
            base_dir=base_dir,
            ipinfo_token=_getenv_str("IPINFO_TOKEN"),
            cloudflare_account_id=_getenv_str("CLOUDFLARE_ACCOUNT_ID"),
            cloudflare_radar_token=_getenv_str("CLOUDFLARE_RADAR_TOKEN"),
            cache_backend=_getenv_str("CACHE_BACKEND", "memory").lower(),
            cache_kv_url=_getenv_str("CACHE_KV_URL"),
            cache_ttl_ms=_getenv_int("CACHE_TTL_MS", defaults.cache_ttl_ms),
            cache_stale_ttl_ms=_getenv_int("CACHE_STALE_TTL_MS", defaults.cache_stale_ttl_ms),
            client_timeout_ms=_getenv_int("CLIENT_TIMEOUT_MS", defaults.client_timeout_ms),
            http_retries=max(0, _getenv_int("HTTP_RETRIES", defaults.http_retries)),
            http_backoff_factor=_getenv_float("HTTP_BACKOFF", defaults.http_backoff_factor),
            cache_warming_enabled=_getenv_bool("CACHE_WARMING_ENABLED", False),
            cache_warming_delay_ms=_getenv_int("CACHE_WARMING_DELAY_MS", defaults.cache_warming_delay_ms) or 100,
            cache_warming_interval_seconds=max(0, _getenv_int("CACHE_WARMING_INTERVAL_SECONDS", 0)),
            task_workers=max(1, _getenv_int("TASK_WORKERS", defaults.task_workers)),
            cors_origin=_getenv_str("CORS_ORIGIN", "*") or "*",
            log_level=_getenv_str("LOG_LEVEL", "INFO") or "INFO",
            log_file=_getenv_str("LOG_FILE"),
            sentry_dsn=_getenv_str("SENTRY_DSN"),
            sentry_environment=_getenv_str("SENTRY_ENVIRONMENT", "local") or "local",
            environment=_getenv_str("APP_ENV", "development") or "development",
            version=_getenv_str("APP_VERSION", __version__) or __version__,
        )

    def to_flask_config(self) -> Dict[str, object]:
        """Return a dict with settings that should live inside `Flask.config`."""
        return {
            "JSON_AS_ASCII": False,
            "CACHE_BACKEND": self.cache_backend,
            "CACHE_TTL_MS": self.cache_ttl_ms,
            "CACHE_STALE_TTL_MS": self.cache_stale_ttl_ms,
            "CLIENT_TIMEOUT_MS": self.client_timeout_ms,
            "CACHE_WARMING_ENABLED": self.cache_warming_enabled,
            "CACHE_WARMING_DELAY_MS": self.cache_warming_delay_ms,
            "CACHE_WARMING_INTERVAL_SECONDS": self.cache_warming_interval_seconds,
            "CORS_ORIGIN": self.cors_origin,
            "LOG_LEVEL": self.log_level,
            "SENTRY_DSN": self.sentry_dsn,
            "SENTRY_ENVIRONMENT": self.sentry_environment,
        }


def load_app_config(base_dir: Optional[Path] = None) -> AppConfig:
    """Convenience shortcut mirroring legacy callers."""
    return AppConfig.load(base_dir=base_dir)
