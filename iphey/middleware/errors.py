"""Error and response helpers.

Any blueprint or service can raise ``ApiError`` and get a consistent JSON
error response; ``register_error_handlers`` wires the mapping into the app.
"""

from __future__ import annotations

import logging
from typing import Any

from flask import Flask, Response, jsonify, make_response, request
from werkzeug.exceptions import HTTPException

LOGGER = logging.getLogger("iphey.errors")


class ApiError(Exception):
    """Exception carrying the HTTP status it should map to."""

    def __init__(self, status: int, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.status = int(status)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class UpstreamUnavailableError(ApiError):
    """Every IP intelligence provider failed or is unconfigured."""

    def __init__(self, message: str = "Unable to fetch IP intelligence", details: Any = None) -> None:
        super().__init__(502, message, details)


def json_error(message: str, status: int = 400):
    """Return a JSON error tuple suitable as a Flask view return value."""
    return jsonify({"error": str(message)}), int(status)


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def _handle_api_error(err: ApiError):
        if err.status >= 500:
            LOGGER.error("API error on %s %s: %s", request.method, request.path, err.message)
        else:
            LOGGER.warning("Handled error on %s %s: %s", request.method, request.path, err.message)
        return jsonify(err.to_dict()), err.status

    @app.errorhandler(HTTPException)
    def _handle_http_error(err: HTTPException):
        return json_error(err.description or err.name, err.code or 500)

    @app.errorhandler(Exception)
    def _handle_unexpected(err: Exception):
        LOGGER.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal Server Error", "message": str(err)}), 500


def add_cors_headers(response: Response, origin: str = "*") -> Response:
    """Add the CORS headers every API response carries."""
    response.headers.setdefault("Access-Control-Allow-Origin", origin)
    response.headers.setdefault("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
    response.headers.setdefault("Access-Control-Allow-Headers", "Content-Type")
    response.headers.setdefault("Access-Control-Max-Age", "86400")
    if origin != "*":
        vary = response.headers.get("Vary")
        response.headers["Vary"] = f"{vary}, Origin" if vary else "Origin"
    return response


def cors_preflight(origin: str = "*") -> Response:
    """Handle an OPTIONS pre-flight request."""
    return add_cors_headers(make_response("", 204), origin)
