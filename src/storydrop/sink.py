from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from storydrop.errors import UpstreamForwardingError
from storydrop.models import CoreEvent, MetaRecord

log = logging.getLogger(__name__)

UNREACHABLE = "upstream unreachable"


def build_payload(core: CoreEvent, meta: MetaRecord, secret: str) -> Dict[str, Any]:
    """Core columns flat, everything else packed into meta_json, plus the secret."""
    payload = core.model_dump()
    payload["meta_json"] = meta.model_dump_json()
    payload["_secret"] = secret
    return payload


class WebhookSink:
    """
    The spreadsheet webhook. One POST per event, no retry: a refused event is gone.

    A fresh AsyncClient is opened per call, so nothing (cookies, connections)
    carries over from one submission to the next. timeout=None means no timeout.
    """
    def __init__(
        self,
        url: str,
        secret: str,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.secret = secret
        self.timeout = timeout
        self.transport = transport

    async def forward(self, core: CoreEvent, meta: MetaRecord) -> int:
        if not self.url:
            raise UpstreamForwardingError("webhook url not configured")

        payload = build_payload(core, meta, self.secret)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                resp = await client.post(
                    self.url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            # the exception text names the webhook url; it stays in the log only
            log.error("sink unreachable for event %s: %s: %s", core.event_id, exc.__class__.__name__, exc)
            raise UpstreamForwardingError(UNREACHABLE) from exc

        if not 200 <= resp.status_code < 300:
            log.warning("sink rejected event %s with status %s", core.event_id, resp.status_code)
            raise UpstreamForwardingError(resp.text, status=resp.status_code)
        return resp.status_code
