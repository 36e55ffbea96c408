"""
Ties the asset pipeline together: one store, one shared HTTP client, the
three downloaders and the cleanup scheduler.

A session is locked for the whole of download_all_assets() so the cleanup
sweep cannot remove it mid-population, and unlocked again however the
download ends.
"""

import re
from dataclasses import dataclass, field
from functools import lru_cache

import httpx

from pagekit.asset_matcher import AssetUrlMap
from pagekit.asset_pool import BatchResult, dedupe
from pagekit.cleanup_scheduler import CleanupScheduler
from pagekit.config import Settings, get_settings
from pagekit.css_downloader import CssDownloader, decode_css, stylesheet_urls_from_tree
from pagekit.errors import SessionNotFoundError
from pagekit.exporter import KitAsset
from pagekit.fetcher import AssetFetcher, create_http_client
from pagekit.font_downloader import FontDownloader, parse_font_faces
from pagekit.image_downloader import ImageDownloader
from pagekit.ir_normalizer import PageCapture, iter_nodes, normalize_capture
from pagekit.session_store import AssetSessionStore, AssetType
from pagekit.widgets import image_source

BACKGROUND_URL_RE = re.compile(r"url\(\s*['\"]?([^'\")]+)['\"]?\s*\)")
MB = 1024 * 1024


def collect_image_urls(capture: PageCapture, max_depth: int = 50) -> list[str]:
    """Listed page images, <img> sources and background-image URLs from the tree."""
    urls = list(capture.image_urls)
    for node in iter_nodes(capture.structure, max_depth):
        if node.tag == "img":
            urls.append(image_source(node))
        background = node.layout.background_image
        if background and background != "none":
            urls.extend(BACKGROUND_URL_RE.findall(background))
    return dedupe(u.strip() for u in urls if u)


@dataclass
class DownloadReport:
    session_id: str
    images: BatchResult = field(default_factory=BatchResult)
    css: BatchResult = field(default_factory=BatchResult)
    fonts: BatchResult = field(default_factory=BatchResult)

    @property
    def errors(self) -> list:
        return [
            {**err, "type": kind}
            for kind, batch in (("images", self.images), ("css", self.css), ("fonts", self.fonts))
            for err in batch.errors
        ]

    def summary(self) -> dict:
        return {
            "images": len(self.images.assets),
            "css": len(self.css.assets),
            "fonts": len(self.fonts.assets),
            "failed": len(self.errors),
            "total_bytes": sum(
                a.size_bytes for batch in (self.images, self.css, self.fonts) for a in batch.assets
            ),
        }

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "summary": self.summary(),
            "errors": self.errors,
        }


@dataclass
class ProcessedPage:
    session_id: str
    report: DownloadReport
    asset_map: AssetUrlMap


class AssetManager:
    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None):
        self.settings = settings or get_settings()
        s = self.settings
        self.store = AssetSessionStore.from_settings(s)
        self._owns_client = client is None
        self.client = client or create_http_client(timeout=s.fetch_timeout)
        self.fetcher = AssetFetcher(self.client, max_retries=s.fetch_max_retries, backoff_base=s.fetch_backoff_base)
        self.images = ImageDownloader(self.store, self.fetcher, concurrency=s.image_concurrency,
                                      max_bytes=int(s.max_image_mb * MB))
        self.css = CssDownloader(self.store, self.fetcher, concurrency=s.css_concurrency,
                                 max_bytes=int(s.max_css_mb * MB), max_import_depth=s.max_import_depth)
        self.fonts = FontDownloader(self.store, self.fetcher, concurrency=s.font_concurrency,
                                    max_bytes=int(s.max_font_mb * MB))
        self.scheduler = CleanupScheduler(
            self.store,
            schedule=s.cleanup_schedule,
            enabled=s.cleanup_enabled,
            run_on_start=s.cleanup_run_on_start,
            shutdown_timeout=s.cleanup_shutdown_timeout,
        )

    async def initialize(self):
        """Call on server startup."""
        await self.store.initialize()
        self.scheduler.start()

    async def shutdown(self):
        await self.scheduler.shutdown()
        if self._owns_client:
            await self.client.aclose()

    async def download_all_assets(self, session_id: str, capture: PageCapture,
                                  base_url: str | None = None) -> DownloadReport:
        base_url = base_url or capture.url
        report = DownloadReport(session_id=session_id)

        await self.store.lock_session(session_id)
        try:
            report.images = await self.images.download_images(
                session_id, collect_image_urls(capture), base_url)

            stylesheet_urls = dedupe(capture.stylesheet_urls + stylesheet_urls_from_tree(capture.structure))
            report.css = await self.css.download_stylesheets(session_id, stylesheet_urls, base_url)

            # Font URLs in saved stylesheets are already absolute
            faces = []
            for descriptor in report.css.assets:
                data = await self.store.get_asset(session_id, AssetType.CSS, descriptor.local_filename)
                if data:
                    faces.extend(parse_font_faces(decode_css(data), descriptor.absolute_url))
            if capture.inline_css:
                faces.extend(parse_font_faces(capture.inline_css, base_url))
            report.fonts = await self.fonts.download_fonts(session_id, faces)
        finally:
            await self.store.unlock_session(session_id)

        summary = report.summary()
        print(f"  [assets] Session {session_id[:8]}: {summary['images']} images, {summary['css']} css, "
              f"{summary['fonts']} fonts, {summary['failed']} failed")
        return report

    async def process_webpage(self, capture, base_url: str | None = None) -> ProcessedPage:
        """Create a session, download everything the page references, and build its URL map."""
        if not isinstance(capture, PageCapture):
            capture = normalize_capture(capture)
        base_url = base_url or capture.url
        session = await self.store.create_session()
        report = await self.download_all_assets(session.session_id, capture, base_url)
        asset_map = await self.store.asset_url_map(session.session_id, base_url=base_url)
        return ProcessedPage(session_id=session.session_id, report=report, asset_map=asset_map)

    async def kit_assets(self, session_id: str) -> list[KitAsset]:
        session = await self.store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        assets = []
        for asset_type, descriptors in session.assets.items():
            for descriptor in descriptors:
                data = await self.store.get_asset(session_id, asset_type, descriptor.local_filename)
                if data is None:
                    print(f"  [assets] {descriptor.local_filename} listed but missing on disk")
                    continue
                assets.append(KitAsset(path=f"{asset_type.value}/{descriptor.local_filename}", data=data))
        return assets

    async def get_stats(self) -> dict:
        return {
            "storage": await self.store.get_stats(),
            "cleanup": self.scheduler.get_stats(),
        }


@lru_cache()
def get_asset_manager() -> AssetManager:
    return AssetManager()
