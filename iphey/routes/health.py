"""Health and service banner endpoints."""

from __future__ import annotations

import time

from flask import Blueprint, jsonify

from . import get_context

health_bp = Blueprint("health_api", __name__)


@health_bp.route("/api/health", methods=["GET"])
def health():
    ctx = get_context()
    insight = ctx.insight
    radar_healthy = insight.verify_radar_token() if insight.radar_configured else None
    return jsonify(
        {
            "status": "ok",
            "version": ctx.config.version,
            "environment": ctx.config.environment,
            "ipinfoConfigured": insight.ipinfo_configured,
            "radarHealthy": radar_healthy,
            "cache": {
                "backend": insight.cache.backend,
                "warmingEnabled": ctx.config.cache_warming_enabled,
                "warmingInProgress": ctx.warmer.is_in_progress(),
                "warmedCount": ctx.warmer.get_warmed_count(),
            },
            "timestamp": int(time.time() * 1000),
        }
    )


@health_bp.route("/", methods=["GET"])
def index():
    return jsonify(
        {
            "message": "IPhey API Server",
            "endpoints": {
                "health": "/api/health",
                "ipLookup": "/api/v1/ip/<ip>",
                "report": "/api/v1/report (POST)",
            },
        }
    )
