from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, ConfigDict


def _optional_float(raw: Optional[str]) -> Optional[float]:
    if raw is None or not raw.strip():
        return None
    return float(raw)


class Settings(BaseModel):
    """
    Deployment configuration, read once at startup and injected into create_app().

    Env:
      STORYDROP_WEBHOOK_URL   sink endpoint (spreadsheet webhook)
      STORYDROP_SECRET        shared secret sent as `_secret`
      STORYDROP_ASSETS_DIR    static site root (defaults to the bundled page)
      STORYDROP_SINK_TIMEOUT  seconds, unset = no timeout
      STORYDROP_ACCESS_LOG    path for JSON access lines, unset = off
    """
    model_config = ConfigDict(frozen=True)

    webhook_url: str = ""
    secret: str = ""
    assets_dir: Optional[str] = None
    sink_timeout: Optional[float] = None
    access_log_path: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            webhook_url=os.getenv("STORYDROP_WEBHOOK_URL", "").strip(),
            secret=os.getenv("STORYDROP_SECRET", ""),
            assets_dir=os.getenv("STORYDROP_ASSETS_DIR") or None,
            sink_timeout=_optional_float(os.getenv("STORYDROP_SINK_TIMEOUT")),
            access_log_path=os.getenv("STORYDROP_ACCESS_LOG") or None,
        )
