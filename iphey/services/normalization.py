"""Provider-agnostic IP insight record and per-provider normalizers."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Mapping, Optional

INSIGHT_FIELDS = ("ip", "country", "region", "city", "timezone", "org", "loc")


@dataclass(frozen=True, slots=True)
class NormalizedIpInsight:
    """Canonical IP metadata record shared by every provider."""

    ip: str
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    timezone: Optional[str] = None
    org: Optional[str] = None
    loc: Optional[str] = None

    def to_dict(self) -> dict[str, str]:
        """JSON form; absent fields are omitted rather than nulled."""
        return {key: value for key, value in asdict(self).items() if value is not None}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NormalizedIpInsight":
        values = {key: _text(data.get(key)) for key in INSIGHT_FIELDS}
        if values["ip"] is None:
            raise ValueError("insight payload has no ip")
        return cls(**values)


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _first(*values: Any) -> Optional[str]:
    for value in values:
        text = _text(value)
        if text is not None:
            return text
    return None


def normalize_ipinfo(raw: Mapping[str, Any], ip: Optional[str] = None) -> NormalizedIpInsight:
    """Map an ipinfo.io ``/json`` payload."""
    return NormalizedIpInsight(
        ip=_first(raw.get("ip"), ip) or "",
        country=_text(raw.get("country")),
        region=_text(raw.get("region")),
        city=_text(raw.get("city")),
        timezone=_text(raw.get("timezone")),
        org=_text(raw.get("org")),
        loc=_text(raw.get("loc")),
    )


def normalize_radar(raw: Mapping[str, Any], ip: Optional[str] = None) -> NormalizedIpInsight:
    """Map a Cloudflare Radar ``intelligence/ip`` result.

    Radar reports ownership under ``belongs_to_ref`` and, for some accounts,
    geolocation under ``location``.  Coordinates are only emitted when both
    halves are present.
    """
    owner = raw.get("belongs_to_ref") or {}
    location = raw.get("location") or {}
    if not isinstance(owner, Mapping):
        owner = {}
    if not isinstance(location, Mapping):
        location = {}

    loc = None
    latitude = _text(location.get("latitude"))
    longitude = _text(location.get("longitude"))
    if latitude is not None and longitude is not None:
        loc = f"{latitude},{longitude}"

    return NormalizedIpInsight(
        ip=_first(raw.get("ip"), ip) or "",
        country=_first(raw.get("country"), location.get("country"), owner.get("country")),
        region=_first(raw.get("region"), location.get("region")),
        city=_first(raw.get("city"), location.get("city")),
        timezone=_first(raw.get("timezone"), location.get("timezone")),
        org=_first(raw.get("org"), raw.get("asn_org"), owner.get("description")),
        loc=loc,
    )
