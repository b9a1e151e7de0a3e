"""HTTP utility layer with a retry-aware shared session for upstream providers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import requests
from requests import Response, Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


@dataclass(frozen=True)
class HttpSettings:
    """Runtime configuration for provider HTTP requests."""

    timeout: float  # seconds, applied to both connect and read
    retries: int = 0
    backoff_factor: float = 0.3
    status_forcelist: Iterable[int] = (429, 500, 502, 503, 504)


_LOGGER = logging.getLogger("iphey.http")
_SETTINGS = HttpSettings(timeout=2.5)
_SESSION: Session | None = None
_ALLOWED_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def _build_retry(settings: HttpSettings) -> Retry:
    return Retry(
        total=max(0, settings.retries),
        connect=max(0, settings.retries),
        read=max(0, settings.retries),
        backoff_factor=max(0.0, settings.backoff_factor),
        status_forcelist=tuple(settings.status_forcelist),
        allowed_methods=_ALLOWED_METHODS,
        raise_on_status=False,
    )


def create_session(settings: HttpSettings) -> Session:
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=_build_retry(settings))
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"Accept": "application/json", "User-Agent": "iphey/1.0"})
    return session


def configure_http(settings: HttpSettings) -> Session:
    """Update HTTP defaults and rebuild the shared session."""
    global _SETTINGS, _SESSION
    _SETTINGS = settings
    _SESSION = create_session(settings)
    _LOGGER.info(
        "HTTP client configured: timeout=%ss retries=%s backoff=%s",
        settings.timeout,
        settings.retries,
        settings.backoff_factor,
    )
    return _SESSION


def get_http_session() -> Session:
    """Return a lazily initialised shared requests session."""
    global _SESSION
    if _SESSION is None:
        _SESSION = create_session(_SETTINGS)
    return _SESSION


def get_http_settings() -> HttpSettings:
    return _SETTINGS


def http_request(
    method: str,
    url: str,
    *,
    timeout: Any | None = None,
    session: Session | None = None,
    logger: Optional[logging.Logger] = None,
    **kwargs: Any,
) -> Response:
    """Perform an HTTP request with the shared session and logging.

    Parameters
    ----------
    method: HTTP verb (GET/POST/...)
    url: target URL
    timeout: seconds or a (connect, read) tuple. Falls back to the configured default.
    session: optional `requests.Session` to use instead of the shared one.
    logger: logger for error messages (defaults to `iphey.http`).
    kwargs: forwarded to `session.request`.

    Transport errors are logged and re-raised; status codes are left to the caller.
    """

    sess = session or get_http_session()
    timer = timeout if timeout is not None else _SETTINGS.timeout
    log = logger or _LOGGER
    verb = method.upper()
    try:
        return sess.request(verb, url, timeout=timer, **kwargs)
    except requests.RequestException as exc:
        log.warning("HTTP %s %s failed: %s", verb, url, exc)
        raise
