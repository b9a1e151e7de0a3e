"""Flask application factory for IPhey."""

from __future__ import annotations

import atexit
import logging

import click
from flask import Flask, request
from requests import Session

from iphey.bootstrap import BootstrapContext, bootstrap_services
from iphey.caching import CacheStore
from iphey.config import AppConfig, load_app_config
from iphey.middleware import add_cors_headers, cors_preflight, register_error_handlers, register_request_logging
from iphey.routes import register_blueprints
from iphey.services.logging import configure_logging
from iphey.services.normalization import NormalizedIpInsight
from iphey.services.report import Scorer
from iphey.services.tasks import TaskQueue

LOGGER = logging.getLogger("iphey")


def create_app(
    config: AppConfig | None = None,
    *,
    session: Session | None = None,
    cache: CacheStore[NormalizedIpInsight] | None = None,
    tasks: TaskQueue | None = None,
    scorer: Scorer | None = None,
    start_background: bool = True,
) -> Flask:
    """Instantiate and configure the Flask application.

    Collaborators can be injected (tests pass a stub HTTP session, a cache with
    a controllable clock or a synchronous task runner); everything else is
    built from *config*.
    """
    cfg = config or load_app_config()
    app = Flask(__name__)
    app.config.update(cfg.to_flask_config())
    configure_logging(
        app,
        cfg.log_file_path,
        level=cfg.log_level,
        sentry_dsn=cfg.sentry_dsn or None,
        sentry_environment=cfg.sentry_environment or None,
    )

    ctx = bootstrap_services(cfg, session=session, cache=cache, tasks=tasks, scorer=scorer)
    app.extensions["iphey"] = ctx

    register_error_handlers(app)
    register_request_logging(app)
    register_blueprints(app)
    _register_cors(app, cfg.cors_origin)
    _register_cli(app, ctx)

    if start_background:
        ctx.start_background()
        atexit.register(ctx.stop)
    LOGGER.info("IPhey %s started (%s)", cfg.version, cfg.environment)
    return app


def _register_cors(app: Flask, origin: str) -> None:
    @app.before_request
    def _preflight():
        if request.method == "OPTIONS":
            return cors_preflight(origin)
        return None

    @app.after_request
    def _cors(response):
        return add_cors_headers(response, origin)


def _register_cli(app: Flask, ctx: BootstrapContext) -> None:
    @app.cli.command("warm-cache")
    @click.option("--delay-ms", type=int, default=None, help="Pause between lookups (defaults to CACHE_WARMING_DELAY_MS).")
    def warm_cache_command(delay_ms: int | None) -> None:
        """Pre-populate the IP insight cache once and report the outcome."""
        run = ctx.warmer.warm_cache(
            ctx.insight.lookup_ip_insight,
            enabled=True,
            delay_between_requests_ms=ctx.config.cache_warming_delay_ms if delay_ms is None else delay_ms,
        )
        if run is None:
            click.echo("Cache warming already in progress")
            return
        click.echo(f"Warmed {run.succeeded} IPs ({run.failed} failed)")
