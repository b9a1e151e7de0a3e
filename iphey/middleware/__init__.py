"""Middleware utilities for the IPhey Flask application."""

from .errors import (
    ApiError,
    UpstreamUnavailableError,
    add_cors_headers,
    cors_preflight,
    json_error,
    register_error_handlers,
)
from .request_log import client_ip_from_request, register_request_logging

__all__ = [
    "ApiError",
    "UpstreamUnavailableError",
    "add_cors_headers",
    "cors_preflight",
    "json_error",
    "register_error_handlers",
    "client_ip_from_request",
    "register_request_logging",
]
