"""Downloads page images into a session."""

from urllib.parse import urljoin, urlsplit

from pagekit.asset_pool import BatchResult, dedupe, hashed_filename, run_batched
from pagekit.errors import AssetFetchError
from pagekit.fetcher import AssetFetcher
from pagekit.image_utils import looks_like_svg, sniff_image
from pagekit.session_store import AssetDescriptor, AssetSessionStore, AssetType

SKIPPED_PREFIXES = ("about:", "javascript:", "blob:", "#")


class ImageDownloader:
    def __init__(self, store: AssetSessionStore, fetcher: AssetFetcher,
                 concurrency: int = 5, max_bytes: int = 10 * 1024 * 1024):
        self.store = store
        self.fetcher = fetcher
        self.concurrency = concurrency
        self.max_bytes = max_bytes

    def _extension(self, url: str, content_type: str, data: bytes) -> str:
        is_svg_hint = content_type == "image/svg+xml" or urlsplit(url).path.lower().endswith(".svg")
        if is_svg_hint or looks_like_svg(data):
            if not looks_like_svg(data):
                raise AssetFetchError(url[:100], "content is not SVG markup")
            return ".svg"
        try:
            ext, _, _ = sniff_image(data)
        except ValueError as e:
            raise AssetFetchError(url[:100], str(e)) from e
        return ext

    async def download_image(self, session_id: str, url: str, base_url: str = "") -> AssetDescriptor | None:
        url = (url or "").strip()
        if not url or url.lower().startswith(SKIPPED_PREFIXES):
            return None
        absolute = url if url.startswith("data:") else urljoin(base_url, url)

        result = await self.fetcher.fetch(absolute, max_bytes=self.max_bytes)
        ext = self._extension(absolute, result.content_type, result.content)
        filename = hashed_filename(absolute, ext, fallback="image")
        return await self.store.save_asset(
            session_id, AssetType.IMAGES, filename, result.content,
            original_url=url, absolute_url=absolute,
            content_type=result.content_type or None,
        )

    async def download_images(self, session_id: str, urls: list, base_url: str = "") -> BatchResult:
        unique = dedupe(u.strip() for u in urls if isinstance(u, str))
        print(f"  [images] Downloading {len(unique)} images (concurrency {self.concurrency})")
        result = await run_batched(
            unique,
            lambda u: self.download_image(session_id, u, base_url),
            self.concurrency,
            label="images",
        )
        print(f"  [images] {len(result.assets)} saved, {len(result.errors)} failed")
        return result
