"""Trust report assembly around the IP insight lookup.

Panel scoring is pluggable: the service ships without heuristics and only
attaches ``panels``/``verdict`` when a scorer is supplied.
"""

from __future__ import annotations

import ipaddress
import logging
import time
from typing import Any, Callable, Mapping, Optional

from iphey.middleware.errors import ApiError

from .normalization import NormalizedIpInsight

LOGGER = logging.getLogger("iphey.report")

Scorer = Callable[[Mapping[str, Any], Optional[NormalizedIpInsight]], Mapping[str, Any]]


def is_public_ip(ip: Optional[str]) -> bool:
    if not ip:
        return False
    try:
        parsed = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return parsed.is_global


class ReportService:
    def __init__(self, lookup: Callable[[str], NormalizedIpInsight], scorer: Scorer | None = None) -> None:
        self._lookup = lookup
        self._scorer = scorer

    def generate(self, body: Mapping[str, Any], client_ip: Optional[str]) -> dict[str, Any]:
        fingerprint = body.get("fingerprint") if isinstance(body, Mapping) else None
        if not isinstance(fingerprint, Mapping) or not fingerprint:
            raise ApiError(400, "Missing fingerprint data")

        insight: Optional[NormalizedIpInsight] = None
        ip_error: Optional[str] = None
        if is_public_ip(client_ip):
            try:
                insight = self._lookup(client_ip)
            except ApiError as exc:
                LOGGER.warning("IP insight unavailable for report: %s", exc.message)
                ip_error = exc.message
        else:
            LOGGER.debug("Skipping IP lookup for non-public client address")

        report: dict[str, Any] = {
            "clientIP": client_ip,
            "ip": insight.to_dict() if insight else None,
            "fingerprint": {"signals": sorted(str(key) for key in fingerprint.keys())},
            "timestamp": int(time.time() * 1000),
        }
        if ip_error:
            report["ipError"] = ip_error
        if self._scorer is not None:
            scored = self._scorer(fingerprint, insight)
            report["panels"] = scored.get("panels", {})
            if "verdict" in scored:
                report["verdict"] = scored["verdict"]
            if "score" in scored:
                report["score"] = scored["score"]
        return report
