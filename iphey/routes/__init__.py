"""Flask Blueprint registry.

``register_blueprints`` is called from ``create_app()``; blueprints read the
per-process services from ``current_app.extensions["iphey"]``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from flask import current_app

if TYPE_CHECKING:
    from flask import Flask

    from iphey.bootstrap import BootstrapContext


def get_context() -> "BootstrapContext":
    return current_app.extensions["iphey"]


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints that are not yet registered."""
    from .health import health_bp
    from .ip import ip_bp
    from .report import report_bp

    for blueprint in (health_bp, ip_bp, report_bp):
        if blueprint.name not in app.blueprints:
            app.register_blueprint(blueprint)
