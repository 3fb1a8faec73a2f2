import httpx
import pytest
from fastapi.testclient import TestClient

from hub_mirror.config import Settings
from hub_mirror.main import create_app

BROWSER_UA = "Mozilla/5.0 (X11; Linux x86_64) Gecko/20100101 Firefox/120.0"
DOCKER_UA = "docker/24.0.7 go/go1.20.10 os/linux arch/amd64"


class FakeUpstream:
    """Answers outbound calls from `handler` and keeps every request it saw."""

    def __init__(self, handler):
        self.handler = handler
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def to(self, host):
        return [r for r in self.requests if r.url.host == host]


def token_ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"token": "anon-token", "expires_in": 300})


@pytest.fixture
def make_client():
    def _make(handler, base_url="http://testserver", **overrides):
        upstream = FakeUpstream(handler)
        http = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
        app = create_app(Settings(**overrides), http_client=http)
        return TestClient(app, base_url=base_url), upstream

    return _make
