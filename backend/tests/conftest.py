import io
from collections import Counter

import httpx
import pytest
from PIL import Image

from pagekit.fetcher import AssetFetcher
from pagekit.session_store import AssetSessionStore


class FakeWeb:
    """In-memory origin served through httpx.MockTransport."""

    def __init__(self):
        self.routes = {}
        self.hits = Counter()

    def add(self, url: str, body: bytes | str = b"", status: int = 200,
            content_type: str = "text/plain", headers: dict | None = None):
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.routes[url] = [(status, body, {"content-type": content_type, **(headers or {})})]

    def add_sequence(self, url: str, responses: list):
        """responses: [(status, body, content_type)], the last one repeats."""
        self.routes[url] = [
            (status, body.encode() if isinstance(body, str) else body, {"content-type": ctype})
            for status, body, ctype in responses
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.hits[url] += 1
        responses = self.routes.get(url)
        if not responses:
            return httpx.Response(404, content=b"not found")
        status, body, headers = responses[min(self.hits[url], len(responses)) - 1]
        return httpx.Response(status, content=body, headers=headers)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler), follow_redirects=True)


def png_bytes(size=(4, 3), color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def web():
    return FakeWeb()


@pytest.fixture
async def fetcher(web):
    client = web.client()
    yield AssetFetcher(client, max_retries=3, backoff_base=0)
    await client.aclose()


@pytest.fixture
def store(tmp_path):
    return AssetSessionStore(
        tmp_path / "temp-assets",
        ttl_seconds=3600,
        lock_timeout=0.2,
        lock_retries=10,
        backoff_min=0.01,
        backoff_max=0.1,
    )


@pytest.fixture
def make_png():
    return png_bytes
