"""IP insight lookup endpoint."""

from __future__ import annotations

import ipaddress

from flask import Blueprint, jsonify

from iphey.middleware.errors import ApiError

from . import get_context

ip_bp = Blueprint("ip_api", __name__)


def parse_ipv4(raw: str) -> str:
    """Return the canonical dotted-quad form or raise a 400."""
    try:
        return str(ipaddress.IPv4Address((raw or "").strip()))
    except ValueError:
        raise ApiError(400, "Invalid IP address") from None


@ip_bp.route("/api/v1/ip/<path:ip>", methods=["GET"])
@ip_bp.route("/api/ip/<path:ip>", methods=["GET"])
def lookup_ip(ip: str):
    address = parse_ipv4(ip)
    insight = get_context().insight.lookup_ip_insight(address)
    return jsonify(insight.to_dict())
