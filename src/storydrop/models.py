from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

DEFAULT_CHANNEL = "card"


# ----------------------------
# Inbound
# ----------------------------
class Submission(BaseModel):
    """Caller payload. Values are kept raw; clamp() coerces them later."""
    model_config = ConfigDict(extra="ignore")

    token_id: Any = None
    story: Any = None
    channel: Any = None
    batch: Any = None
    consent_public: Any = None
    timezone_client: Any = None
    utm_source: Any = None
    utm_medium: Any = None
    utm_campaign: Any = None
    utm_content: Any = None
    utm_term: Any = None
    qr_id: Any = None
    drop_id: Any = None
    honey: Any = None


class EdgeContext(BaseModel):
    """What the edge network and transport tell us about the caller."""
    city: str = ""
    country: str = ""
    timezone: str = ""
    latitude: str = ""
    longitude: str = ""
    ip: str = ""
    user_agent: str = ""
    referer: str = ""
    accept_language: str = ""


# ----------------------------
# Outbound
# ----------------------------
class CoreEvent(BaseModel):
    event_id: str
    timestamp_iso: str
    token_id: str
    story: str = ""
    city: str = ""
    country: str = ""
    channel: str = DEFAULT_CHANNEL
    batch: str = ""
    consent_public: bool = False


class MetaRecord(BaseModel):
    # field order is the key order of meta_json
    timezone_edge: str = ""
    timezone_client: str = ""
    lat: str = ""
    lon: str = ""
    ip: str = ""
    user_agent: str = ""
    utm_source: str = ""
    utm_medium: str = ""
    utm_campaign: str = ""
    utm_content: str = ""
    utm_term: str = ""
    qr_id: str = ""
    drop_id: str = ""
    referer: str = ""
    accept_language: str = ""
