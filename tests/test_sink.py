import asyncio
import json

import httpx
import pytest

from conftest import recording_transport
from storydrop.errors import UpstreamForwardingError
from storydrop.models import CoreEvent, MetaRecord
from storydrop.sink import UNREACHABLE, WebhookSink, build_payload

WEBHOOK = "https://sink.example/macros/s/DEPLOYMENT-ID/exec"

META_KEYS = [
    "timezone_edge", "timezone_client", "lat", "lon", "ip", "user_agent",
    "utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term",
    "qr_id", "drop_id", "referer", "accept_language",
]


def make_core():
    return CoreEvent(
        event_id="0f8fad5b-d9cb-469f-a165-70867728950e",
        timestamp_iso="2026-10-18T09:15:02.117Z",
        token_id="ABC123",
        story="hello",
        city="Lisbon",
        country="PT",
        consent_public=True,
    )


def forward(sink):
    return asyncio.run(sink.forward(make_core(), MetaRecord()))


def test_build_payload_shape():
    payload = build_payload(make_core(), MetaRecord(ip="1.2.3.4", lat="38.72"), "s3cret")
    assert payload["token_id"] == "ABC123"
    assert payload["channel"] == "card"
    assert payload["consent_public"] is True
    assert payload["_secret"] == "s3cret"
    assert isinstance(payload["meta_json"], str)
    meta = json.loads(payload["meta_json"])
    assert list(meta) == META_KEYS
    assert meta["ip"] == "1.2.3.4"
    assert meta["lat"] == "38.72"


def test_forward_posts_once_as_json():
    transport, seen = recording_transport(200, "ok")
    sink = WebhookSink(WEBHOOK, "s3cret", transport=transport, timeout=5.0)
    assert forward(sink) == 200

    assert len(seen) == 1
    req = seen[0]
    assert req.method == "POST"
    assert str(req.url) == WEBHOOK
    assert req.headers["content-type"] == "application/json"
    body = json.loads(req.content)
    assert body["_secret"] == "s3cret"
    assert body["token_id"] == "ABC123"


def test_forward_does_not_carry_cookies_between_events():
    transport, seen = recording_transport(200, "ok", headers={"Set-Cookie": "sid=first-request; Path=/"})
    sink = WebhookSink(WEBHOOK, "s3cret", transport=transport)
    forward(sink)
    forward(sink)

    assert len(seen) == 2
    assert "cookie" not in seen[1].headers


def test_forward_follows_redirect():
    seen = []

    def handler(request):
        seen.append(request)
        if request.url.host == "sink.example":
            return httpx.Response(302, headers={"Location": "https://echo.example/result"})
        return httpx.Response(200, text="ok")

    sink = WebhookSink(WEBHOOK, "s3cret", transport=httpx.MockTransport(handler))
    assert forward(sink) == 200
    assert [r.url.host for r in seen] == ["sink.example", "echo.example"]


@pytest.mark.parametrize("status", [400, 403, 500])
def test_forward_non_2xx_raises(status):
    transport, seen = recording_transport(status, "bad secret")
    sink = WebhookSink(WEBHOOK, "s3cret", transport=transport)
    with pytest.raises(UpstreamForwardingError) as info:
        forward(sink)
    assert info.value.upstream_error == "bad secret"
    assert info.value.status == status
    assert info.value.status_code == 502
    assert len(seen) == 1


def test_forward_transport_error_hides_webhook_url():
    exc = httpx.ConnectError(f"connection refused: {WEBHOOK}")
    transport, seen = recording_transport(exc=exc)
    sink = WebhookSink(WEBHOOK, "s3cret", transport=transport)
    with pytest.raises(UpstreamForwardingError) as info:
        forward(sink)
    assert info.value.upstream_error == UNREACHABLE
    assert "DEPLOYMENT-ID" not in json.dumps(info.value.body())
    assert len(seen) == 1


def test_forward_without_url_does_not_post():
    transport, seen = recording_transport()
    sink = WebhookSink("", "s3cret", transport=transport)
    with pytest.raises(UpstreamForwardingError):
        forward(sink)
    assert seen == []
