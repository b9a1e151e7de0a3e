"""Shared pytest fixtures for IPhey tests.

Provides a stub HTTP session that quacks like ``requests.Session``, a manual
clock for TTL arithmetic, a recording background runner and a Flask test
application wired with those collaborators.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Callable

import pytest
import requests

from iphey.caching import MemoryCacheStore
from iphey.config import AppConfig


# ---------------------------------------------------------------------------
# HTTP stubs
# ---------------------------------------------------------------------------


class FakeResponse:
    """Minimal mock that quacks like a ``requests.Response``."""

    def __init__(self, payload: Any = None, status_code: int = 200):
        self._payload = payload
        self.status_code = status_code

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    @property
    def content(self) -> bytes:
        if isinstance(self._payload, Exception):
            return b"<html>not json</html>"
        return json.dumps(self._payload).encode("utf-8")

    def iter_content(self, chunk_size: int = 1):
        body = self.content
        for start in range(0, len(body), chunk_size):
            yield body[start : start + chunk_size]

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Routes requests to handlers by URL fragment and records every call."""

    def __init__(self) -> None:
        self.routes: list[tuple[str, Callable[..., Any]]] = []
        self.calls: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def on(self, fragment: str, handler: Callable[..., Any] | FakeResponse | Exception) -> "FakeSession":
        if isinstance(handler, (FakeResponse, Exception)):
            value = handler

            def handler(**_kwargs):  # noqa: F811
                if isinstance(value, Exception):
                    raise value
                return value

        self.routes.append((fragment, handler))
        return self

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        with self._lock:
            self.calls.append({"method": method, "url": url, **kwargs})
        for fragment, handler in self.routes:
            if fragment in url:
                return handler(url=url, **kwargs)
        raise requests.ConnectionError(f"no route for {url}")

    def count(self, fragment: str) -> int:
        with self._lock:
            return sum(1 for call in self.calls if fragment in call["url"])


class ManualClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0


class RecordingRunner:
    """Background runner that records jobs and runs them on demand."""

    def __init__(self) -> None:
        self.jobs: list[tuple[Callable[..., Any], tuple[Any, ...], dict[str, Any], str | None]] = []

    def submit(self, func, *args, description=None, **kwargs):
        self.jobs.append((func, args, kwargs, description))
        return str(len(self.jobs))

    def run_all(self) -> None:
        jobs, self.jobs = self.jobs, []
        for func, args, kwargs, _desc in jobs:
            func(*args, **kwargs)


IPINFO_URL = "ipinfo.io"
RADAR_URL = "intelligence/ip"
RADAR_VERIFY_URL = "tokens/verify"

GOOGLE_IPINFO = {
    "ip": "8.8.8.8",
    "hostname": "dns.google",
    "city": "Mountain View",
    "region": "California",
    "country": "US",
    "loc": "37.4056,-122.0775",
    "org": "AS15169 Google LLC",
    "postal": "94043",
    "timezone": "America/Los_Angeles",
}


def radar_envelope(result: Any, success: bool = True) -> dict[str, Any]:
    return {"success": success, "errors": [], "messages": [], "result": result}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture()
def memory_cache(clock):
    return MemoryCacheStore("ip-insight", ttl_ms=1000, stale_ttl_ms=5000, clock=clock)


@pytest.fixture()
def make_config(tmp_path: Path) -> Callable[..., AppConfig]:
    def _make(**overrides: Any) -> AppConfig:
        values: dict[str, Any] = {
            "base_dir": tmp_path,
            "ipinfo_token": "ipinfo-test-token",
            "cloudflare_account_id": "acct-123",
            "cloudflare_radar_token": "radar-test-token",
            "cache_ttl_ms": 1000,
            "cache_stale_ttl_ms": 5000,
        }
        values.update(overrides)
        return AppConfig(**values)

    return _make


@pytest.fixture()
def app_factory(make_config, fake_session, memory_cache, runner):
    from iphey.app_factory import create_app

    def _create(**overrides: Any):
        cfg = make_config(**overrides)
        app = create_app(
            cfg,
            session=fake_session,
            cache=memory_cache,
            tasks=runner,
            start_background=False,
        )
        app.config["TESTING"] = True
        return app

    return _create


@pytest.fixture()
def app(app_factory):
    return app_factory()


@pytest.fixture()
def client(app):
    """Flask test client for issuing HTTP requests."""
    return app.test_client()
