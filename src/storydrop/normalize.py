"""
Turning one inbound submission into the records the sink stores.

Every bounded string goes through clamp(); nothing else trims or sanitizes.
"""
from __future__ import annotations

import math
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from storydrop.models import DEFAULT_CHANNEL, CoreEvent, EdgeContext, MetaRecord, Submission

_CONTROL_RE = re.compile(r"[\x00-\x1f]+")
_FLOAT_PREFIX_RE = re.compile(r"\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")

# ----------------------------
# Limits
# ----------------------------
TOKEN_MAX = 32
STORY_MAX = 4000
CITY_MAX = 120
COUNTRY_MAX = 8
CHANNEL_MAX = 64
BATCH_MAX = 64
TIMEZONE_MAX = 64
IP_MAX = 64
HEADER_MAX = 512
ACCEPT_LANGUAGE_MAX = 128
UTM_MAX = 120
CORRELATION_MAX = 64


def _text(value: Any) -> str:
    if value is None or value is False or value == "" or value == 0:
        return ""
    if value is True:
        return "true"
    return str(value)


def clamp(value: Any, limit: int) -> str:
    """Truncate to `limit` characters, then drop ASCII control characters."""
    return _CONTROL_RE.sub("", _text(value)[:limit])


def _leading_float(value: Any) -> Optional[float]:
    m = _FLOAT_PREFIX_RE.match(str(value))
    return float(m.group(0)) if m else None


def round2(value: Any) -> str:
    """
    Two-decimal rendering of a coordinate, ties rounded toward +inf.
      None / "" / garbage -> ""
      "38.72231" -> "38.72", "-0.125" -> "-0.12", 12.5 -> "12.5", "3" -> "3"
    """
    if value is None or value == "" or isinstance(value, bool):
        return ""
    num = _leading_float(value)
    if num is None or not math.isfinite(num):
        return ""
    scaled = num * 100
    if not math.isfinite(scaled):
        return ""
    whole = math.floor(scaled)
    if scaled - whole >= 0.5:
        whole += 1
    out = whole / 100
    if out.is_integer():
        return str(int(out))
    return repr(out)


def new_event_id() -> str:
    return str(uuid.uuid4())


def now_iso(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ----------------------------
# Edge / transport context
# ----------------------------
def client_ip(headers: Mapping[str, str], peer: Optional[str] = None) -> str:
    raw = headers.get("cf-connecting-ip") or headers.get("x-forwarded-for") or peer or ""
    return raw.split(",")[0].strip()


def edge_context(headers: Mapping[str, str], peer: Optional[str] = None) -> EdgeContext:
    """
    Geo comes from Cloudflare visitor-location headers (cf-ipcity, cf-ipcountry, ...).
    Missing headers simply stay empty.
    """
    return EdgeContext(
        city=headers.get("cf-ipcity", ""),
        country=headers.get("cf-ipcountry", ""),
        timezone=headers.get("cf-timezone", ""),
        latitude=headers.get("cf-iplatitude", ""),
        longitude=headers.get("cf-iplongitude", ""),
        ip=client_ip(headers, peer),
        user_agent=headers.get("user-agent", ""),
        referer=headers.get("referer", ""),
        accept_language=headers.get("accept-language", ""),
    )


# ----------------------------
# Records
# ----------------------------
def is_honeypot(sub: Submission) -> bool:
    return _text(sub.honey).strip() != ""


def normalized_token(sub: Submission) -> str:
    return clamp(_text(sub.token_id).upper(), TOKEN_MAX)


def build_core(
    sub: Submission,
    edge: EdgeContext,
    *,
    event_id: Optional[str] = None,
    timestamp_iso: Optional[str] = None,
) -> CoreEvent:
    return CoreEvent(
        event_id=event_id or new_event_id(),
        timestamp_iso=timestamp_iso or now_iso(),
        token_id=normalized_token(sub),
        story=clamp(sub.story, STORY_MAX),
        city=clamp(edge.city, CITY_MAX),
        country=clamp(edge.country, COUNTRY_MAX),
        channel=clamp(_text(sub.channel) or DEFAULT_CHANNEL, CHANNEL_MAX),
        batch=clamp(sub.batch, BATCH_MAX),
        consent_public=_text(sub.consent_public).lower() == "true",
    )


def build_meta(sub: Submission, edge: EdgeContext) -> MetaRecord:
    return MetaRecord(
        timezone_edge=clamp(edge.timezone, TIMEZONE_MAX),
        timezone_client=clamp(sub.timezone_client, TIMEZONE_MAX),
        lat=round2(edge.latitude),
        lon=round2(edge.longitude),
        ip=clamp(edge.ip, IP_MAX),
        user_agent=clamp(edge.user_agent, HEADER_MAX),
        utm_source=clamp(sub.utm_source, UTM_MAX),
        utm_medium=clamp(sub.utm_medium, UTM_MAX),
        utm_campaign=clamp(sub.utm_campaign, UTM_MAX),
        utm_content=clamp(sub.utm_content, UTM_MAX),
        utm_term=clamp(sub.utm_term, UTM_MAX),
        qr_id=clamp(sub.qr_id, CORRELATION_MAX),
        drop_id=clamp(sub.drop_id, CORRELATION_MAX),
        referer=clamp(edge.referer, HEADER_MAX),
        accept_language=clamp(edge.accept_language, ACCEPT_LANGUAGE_MAX),
    )
