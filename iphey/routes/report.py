"""Fingerprint report endpoint."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from iphey.middleware.request_log import client_ip_from_request

from . import get_context

report_bp = Blueprint("report_api", __name__)


@report_bp.route("/api/v1/report", methods=["POST"])
def create_report():
    body = request.get_json(force=True, silent=True) or {}
    report = get_context().reports.generate(body, client_ip_from_request())
    return jsonify(report)
