import sys
from pathlib import Path

import pytest
import requests

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from iphey.services.http import HttpSettings, configure_http, get_http_session, get_http_settings, http_request

from conftest import FakeResponse


def test_configure_http_mounts_retry_policy():
    session = configure_http(HttpSettings(timeout=1.5, retries=2, backoff_factor=0.1))
    try:
        assert get_http_session() is session
        assert get_http_settings().timeout == 1.5
        retry = session.get_adapter("https://ipinfo.io").max_retries
        assert retry.total == 2
        assert retry.backoff_factor == 0.1
        assert 503 in retry.status_forcelist
        assert session.headers["Accept"] == "application/json"
    finally:
        configure_http(HttpSettings(timeout=2.5))


def test_http_request_forwards_timeout_and_reraises(fake_session):
    fake_session.on("ok.example", FakeResponse({"ok": True}))
    resp = http_request("get", "https://ok.example/x", timeout=0.5, session=fake_session)
    assert resp.json() == {"ok": True}
    assert fake_session.calls[0]["method"] == "GET"
    assert fake_session.calls[0]["timeout"] == 0.5

    with pytest.raises(requests.ConnectionError):
        http_request("GET", "https://unrouted.example/", session=fake_session)
