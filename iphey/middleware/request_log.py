"""Per-request access logging with redacted client addresses."""

from __future__ import annotations

import logging
import time

from flask import Flask, Response, g, request

from iphey.services.logging import redact_ip

LOGGER = logging.getLogger("iphey.request")


def client_ip_from_request() -> str | None:
    """Best-effort client address: Cloudflare header, proxy chain, then socket."""
    cf_ip = (request.headers.get("CF-Connecting-IP") or "").strip()
    if cf_ip:
        return cf_ip
    forwarded = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    if forwarded:
        return forwarded
    return request.remote_addr


def register_request_logging(app: Flask) -> None:
    @app.before_request
    def _start_timer() -> None:
        g.request_started = time.perf_counter()

    @app.after_request
    def _log_request(response: Response) -> Response:
        started = g.pop("request_started", None)
        duration_ms = round((time.perf_counter() - started) * 1000, 1) if started is not None else None
        LOGGER.info(
            "Request completed: %s %s -> %s in %sms (ip=%s)",
            request.method,
            request.full_path.rstrip("?"),
            response.status_code,
            duration_ms,
            redact_ip(client_ip_from_request()),
        )
        return response
