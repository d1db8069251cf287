import httpx
import pytest
from fastapi.testclient import TestClient

from storydrop.app import create_app
from storydrop.config import Settings
from storydrop.errors import UpstreamForwardingError


class FakeSink:
    def __init__(self, fail_with=None):
        self.calls = []
        self.fail_with = fail_with

    async def forward(self, core, meta):
        self.calls.append((core, meta))
        if self.fail_with is not None:
            raise UpstreamForwardingError(self.fail_with, status=401)
        return 200


def recording_transport(status=200, text="ok", headers=None, exc=None):
    """MockTransport that keeps every request it sees."""
    seen = []

    def handler(request):
        seen.append(request)
        if exc is not None:
            raise exc
        return httpx.Response(status, text=text, headers=headers)

    return httpx.MockTransport(handler), seen


@pytest.fixture
def settings():
    return Settings(webhook_url="https://sink.example/exec", secret="s3cret")


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def client(settings, sink):
    return TestClient(create_app(settings, sink=sink))
