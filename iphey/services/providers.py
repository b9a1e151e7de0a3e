"""HTTP clients for the upstream IP intelligence providers.

Both clients share the same shape: ``fetch(ip)`` returns the provider's raw
payload, or ``None`` when the client lacks credentials (a capability gate, not
an error).  Timeouts, non-success statuses and failure envelopes raise typed
``ProviderError`` subclasses so the caller can log and fall through.

``requests`` applies its timeout per socket operation, so a peer that trickles
bytes never trips it.  Every call therefore also carries a wall-clock deadline
of ``timeout`` seconds: the body is streamed and the call is aborted with
``ProviderTimeoutError`` once the deadline passes.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional
from urllib.parse import quote

import requests
from requests import Response, Session

from .http import http_request

IPINFO_BASE = "https://ipinfo.io"
CF_BASE = "https://api.cloudflare.com/client/v4"
DEFAULT_TIMEOUT_SECONDS = 2.5
# single-byte reads return as soon as any data is buffered
_READ_CHUNK = 1

LOGGER = logging.getLogger("iphey.providers")


class ProviderError(RuntimeError):
    """Upstream call failed; the lookup should try the next provider."""

    def __init__(self, provider: str, message: str, status: int | None = None) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status = status


class ProviderTimeoutError(ProviderError):
    """Upstream exceeded the configured timeout."""


class ProviderRejectedError(ProviderError):
    """Upstream answered with a non-success status or failure envelope."""


@dataclass(frozen=True)
class ProviderResponse:
    """Fully read upstream response."""

    status_code: int
    content: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self) -> Any:
        return json.loads(self.content)


class ProviderClient:
    name = "provider"

    def __init__(self, *, session: Session | None = None, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self._session = session
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        raise NotImplementedError

    def fetch(self, ip: str) -> Optional[Mapping[str, Any]]:
        raise NotImplementedError

    def verify_token(self) -> bool:
        raise NotImplementedError

    def _timed_out(self) -> ProviderTimeoutError:
        return ProviderTimeoutError(self.name, f"timed out after {self.timeout}s")

    def _get(self, url: str, **kwargs: Any) -> ProviderResponse:
        deadline = time.monotonic() + self.timeout
        try:
            response = http_request(
                "GET",
                url,
                timeout=self.timeout,
                session=self._session,
                logger=LOGGER,
                stream=True,
                **kwargs,
            )
        except requests.Timeout as exc:
            raise self._timed_out() from exc
        except requests.RequestException as exc:
            raise ProviderError(self.name, f"request failed: {exc}") from exc
        try:
            content = self._read_body(response, deadline)
        finally:
            response.close()
        return ProviderResponse(status_code=response.status_code, content=content)

    def _read_body(self, response: Response, deadline: float) -> bytes:
        if time.monotonic() > deadline:
            raise self._timed_out()
        chunks: list[bytes] = []
        try:
            for chunk in response.iter_content(chunk_size=_READ_CHUNK):
                chunks.append(chunk)
                if time.monotonic() > deadline:
                    raise self._timed_out()
        except requests.RequestException as exc:
            # a stalled read surfaces as ConnectionError wrapping urllib3's ReadTimeoutError
            if isinstance(exc, requests.Timeout) or time.monotonic() > deadline:
                raise self._timed_out() from exc
            raise ProviderError(self.name, f"reading response failed: {exc}") from exc
        return b"".join(chunks)

    def _json(self, response: ProviderResponse) -> Any:
        if not response.ok:
            raise ProviderRejectedError(
                self.name,
                f"request failed: {response.status_code}",
                status=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderRejectedError(self.name, "response is not JSON", status=response.status_code) from exc


class IpInfoClient(ProviderClient):
    """Primary geo/ASN provider (ipinfo.io)."""

    name = "ipinfo"

    def __init__(
        self,
        token: str,
        *,
        session: Session | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        base_url: str = IPINFO_BASE,
    ) -> None:
        super().__init__(session=session, timeout=timeout)
        self._token = token
        self.base_url = base_url.rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self._token)

    def fetch(self, ip: str) -> Optional[Mapping[str, Any]]:
        if not self.configured:
            return None
        response = self._get(
            f"{self.base_url}/{quote(ip, safe='')}/json",
            params={"token": self._token},
        )
        payload = self._json(response)
        if not isinstance(payload, Mapping):
            raise ProviderRejectedError(self.name, "unexpected payload shape")
        return payload

    def verify_token(self) -> bool:
        if not self.configured:
            return False
        try:
            response = self._get(f"{self.base_url}/me", params={"token": self._token})
            return response.ok
        except ProviderError as exc:
            LOGGER.warning("ipinfo token verification failed: %s", exc)
            return False


class RadarClient(ProviderClient):
    """Secondary threat-intelligence provider (Cloudflare Radar)."""

    name = "radar"

    def __init__(
        self,
        account_id: str,
        token: str,
        *,
        session: Session | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        base_url: str = CF_BASE,
    ) -> None:
        super().__init__(session=session, timeout=timeout)
        self._account_id = account_id
        self._token = token
        self.base_url = base_url.rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self._account_id and self._token)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
        }

    def fetch(self, ip: str) -> Optional[Mapping[str, Any]]:
        if not self.configured:
            return None
        response = self._get(
            f"{self.base_url}/accounts/{self._account_id}/intelligence/ip",
            params={"ip": ip},
            headers=self._headers(),
        )
        payload = self._json(response)
        if not isinstance(payload, Mapping) or not payload.get("success"):
            raise ProviderRejectedError(self.name, "lookup unsuccessful", status=response.status_code)
        result = payload.get("result")
        if isinstance(result, list):
            result = result[0] if result else None
        if not isinstance(result, Mapping):
            raise ProviderRejectedError(self.name, "empty result", status=response.status_code)
        return result

    def verify_token(self) -> bool:
        if not self.configured:
            return False
        try:
            response = self._get(
                f"{self.base_url}/accounts/{self._account_id}/tokens/verify",
                headers=self._headers(),
            )
            if not response.ok:
                return False
            payload = response.json()
            return bool(isinstance(payload, Mapping) and payload.get("success"))
        except (ProviderError, ValueError) as exc:
            LOGGER.warning("Radar token verification failed: %s", exc)
            return False
