"""
HTTP fetching for remote assets.

Network errors and 5xx/429 responses are retried with exponential backoff;
4xx responses and oversize bodies fail immediately.
"""

import asyncio
import base64
import binascii
from dataclasses import dataclass
from urllib.parse import unquote_to_bytes

import httpx

from pagekit.errors import AssetFetchError

TRANSIENT_HTTP_STATUSES = {429, 500, 502, 503, 504}
MAX_RETRY_AFTER_S = 30.0
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@dataclass
class FetchResult:
    url: str
    content: bytes
    content_type: str
    status_code: int = 200


def create_http_client(timeout: float = 30.0) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(timeout, connect=10.0),
        headers={"User-Agent": USER_AGENT, "Accept": "*/*"},
    )


def decode_data_url(url: str) -> tuple[str, bytes]:
    """Return (mime_type, payload) for a data: URL."""
    header, sep, payload = url.partition(",")
    if not header.lower().startswith("data:") or not sep:
        raise AssetFetchError(url[:60], "malformed data URL")
    meta = header[5:]
    mime = meta.split(";")[0].strip().lower() or "text/plain"
    if ";base64" in meta.lower():
        try:
            return mime, base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError) as e:
            raise AssetFetchError(url[:60], f"invalid base64 payload: {e}") from e
    return mime, unquote_to_bytes(payload)


def _content_type(response: httpx.Response) -> str:
    return response.headers.get("content-type", "").split(";")[0].strip().lower()


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after", "").strip()
    try:
        return min(float(value), MAX_RETRY_AFTER_S)
    except ValueError:
        return None


class AssetFetcher:
    def __init__(self, client: httpx.AsyncClient, max_retries: int = 3, backoff_base: float = 0.5):
        self.client = client
        self.max_retries = max_retries
        self.backoff_base = backoff_base

    async def _attempt(self, url: str, max_bytes: int | None) -> FetchResult:
        try:
            async with self.client.stream("GET", url) as response:
                status = response.status_code
                if status in TRANSIENT_HTTP_STATUSES or status >= 500:
                    raise AssetFetchError(url, f"HTTP {status}", status_code=status, retryable=True,
                                          retry_after=_retry_after(response))
                if status >= 400:
                    raise AssetFetchError(url, f"HTTP {status}", status_code=status)

                declared = response.headers.get("content-length", "")
                if max_bytes and declared.isdigit() and int(declared) > max_bytes:
                    raise AssetFetchError(url, f"too large ({int(declared)} bytes, limit {max_bytes})")

                chunks = []
                total = 0
                async for chunk in response.aiter_bytes():
                    total += len(chunk)
                    if max_bytes and total > max_bytes:
                        raise AssetFetchError(url, f"too large (over {max_bytes} bytes)")
                    chunks.append(chunk)
                return FetchResult(
                    url=str(response.url),
                    content=b"".join(chunks),
                    content_type=_content_type(response),
                    status_code=status,
                )
        except httpx.TransportError as e:
            raise AssetFetchError(url, f"{type(e).__name__}: {e}", retryable=True) from e

    async def fetch(self, url: str, max_bytes: int | None = None) -> FetchResult:
        if url.startswith("data:"):
            mime, content = decode_data_url(url)
            if max_bytes and len(content) > max_bytes:
                raise AssetFetchError(url[:60], f"too large ({len(content)} bytes, limit {max_bytes})")
            return FetchResult(url=url, content=content, content_type=mime)

        for attempt in range(self.max_retries + 1):
            try:
                return await self._attempt(url, max_bytes)
            except AssetFetchError as e:
                if not e.retryable or attempt >= self.max_retries:
                    raise
                wait = e.retry_after or self.backoff_base * (2 ** attempt)
                print(f"  [fetch] {url[:100]} failed ({e.reason}), retry {attempt + 1}/{self.max_retries} in {wait:.1f}s")
                await asyncio.sleep(wait)
        raise AssetFetchError(url, "retry budget exhausted")
