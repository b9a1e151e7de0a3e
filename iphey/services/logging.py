"""Logging helpers for IPhey."""

from __future__ import annotations

import ipaddress
import json
import logging
import os
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, Optional

from flask import Flask


class SensitiveDataFilter(logging.Filter):
    """Strip provider tokens and credentials from log lines."""

    _PATTERNS: Iterable[tuple[re.Pattern[str], str]] = (
        (re.compile(r"(authorization[=:]\s*)([^\s,]+)", re.I), r"\1***"),
        (re.compile(r"([?&]token=)([^&\s]+)", re.I), r"\1***"),
        (re.compile(r"(api[_-]?key=)([^&\s]+)", re.I), r"\1***"),
        (re.compile(r"(access[_-]?token=)([^&\s]+)", re.I), r"\1***"),
        (re.compile(r"Bearer\s+[A-Za-z0-9._-]+"), "Bearer ***"),
    )

    def __init__(self) -> None:
        super().__init__(name="SensitiveDataFilter")

    @staticmethod
    def _sanitize_value(value: object) -> object:
        if isinstance(value, str):
            sanitized = value
            for pattern, repl in SensitiveDataFilter._PATTERNS:
                sanitized = pattern.sub(repl, sanitized)
            return sanitized
        if isinstance(value, BaseException):
            return SensitiveDataFilter._sanitize_value(str(value))
        if isinstance(value, (list, tuple)):
            return type(value)(SensitiveDataFilter._sanitize_value(v) for v in value)
        if isinstance(value, dict):
            return {k: SensitiveDataFilter._sanitize_value(v) for k, v in value.items()}
        return value

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self._sanitize_value(record.msg)
        if record.args:
            record.args = self._sanitize_value(record.args)
        return True


class JsonFormatter(logging.Formatter):
    """Emit one JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        data = {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        if record.__dict__.get("extra"):
            data["extra"] = record.__dict__["extra"]
        return json.dumps(data, ensure_ascii=False)


def redact_ip(ip: Optional[str]) -> Optional[str]:
    """Mask the host part of a client address before it reaches the logs."""
    if not ip:
        return ip
    try:
        parsed = ipaddress.ip_address(ip)
    except ValueError:
        return "invalid"
    if parsed.version == 4:
        octets = str(parsed).split(".")
        return ".".join(octets[:3] + ["xxx"])
    groups = parsed.exploded.split(":")
    return ":".join(groups[:4] + ["xxxx"] * 4)


def _resolve_level(level: str | int | None) -> int:
    resolved = logging.getLevelName(str(level or "INFO").upper())
    if isinstance(resolved, str):  # unknown name returns string
        return logging.INFO
    return resolved


def configure_logging(
    app: Flask,
    log_file_path: Optional[Path] = None,
    *,
    level: str | int | None = None,
    sentry_dsn: str | None = None,
    sentry_environment: str | None = None,
) -> None:
    """Attach structured handlers to the root and Flask loggers.

    A stream handler is always installed; a rotating file handler is added when
    *log_file_path* is given.  Both redact credentials.
    """

    resolved_level = _resolve_level(level or app.config.get("LOG_LEVEL"))
    root_logger = logging.getLogger()
    root_logger.setLevel(resolved_level)
    app.logger.setLevel(resolved_level)

    handlers: list[logging.Handler] = []
    stream = next((h for h in root_logger.handlers if getattr(h, "_iphey_stream", False)), None)
    if stream is None:
        stream = logging.StreamHandler(sys.stdout)
        stream._iphey_stream = True  # type: ignore[attr-defined]
        root_logger.addHandler(stream)
    handlers.append(stream)

    if log_file_path is not None:
        handler = get_rotating_log_handler(log_file_path)
        if handler is None:
            log_file_path.parent.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(
                log_file_path,
                maxBytes=50 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
            root_logger.addHandler(handler)
        handlers.append(handler)

    for handler in handlers:
        handler.setLevel(resolved_level)
        if not any(isinstance(f, SensitiveDataFilter) for f in handler.filters):
            handler.addFilter(SensitiveDataFilter())
        handler.setFormatter(JsonFormatter())

    if sentry_dsn:
        try:
            import sentry_sdk
            from sentry_sdk.integrations.flask import FlaskIntegration
            from sentry_sdk.integrations.logging import LoggingIntegration

            sentry_logging = LoggingIntegration(
                level=resolved_level,
                event_level=logging.ERROR,
            )
            sentry_sdk.init(
                dsn=sentry_dsn,
                environment=sentry_environment,
                integrations=[FlaskIntegration(), sentry_logging],
                traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0")),
            )
            app.logger.info("Sentry initialised for environment %s", sentry_environment)
        except Exception as exc:  # noqa: BLE001
            app.logger.warning("Failed to initialise Sentry: %s", exc)


def get_rotating_log_handler(log_file_path: Path) -> Optional[RotatingFileHandler]:
    """Return the rotating handler already writing to *log_file_path*, if any."""
    for handler in logging.getLogger().handlers:
        if isinstance(handler, RotatingFileHandler):
            base_filename = getattr(handler, "baseFilename", "")
            if Path(base_filename).resolve() == log_file_path.resolve():
                return handler
    return None
