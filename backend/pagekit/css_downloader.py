"""
Downloads stylesheets into a session with their @import chains inlined.

Each top-level download tracks the URLs it has already pulled in, so an
import cycle ends at the first repeat. Nesting deeper than max_import_depth
is cut off the same way, with a marker comment left in place of the import.
"""

import re
from urllib.parse import urljoin, urldefrag

from pagekit.asset_pool import BatchResult, dedupe, hashed_filename, run_batched
from pagekit.errors import AssetFetchError, CircularOrDeepImportError
from pagekit.fetcher import AssetFetcher
from pagekit.ir_normalizer import IRNode, iter_nodes
from pagekit.session_store import AssetDescriptor, AssetSessionStore, AssetType

IMPORT_RE = re.compile(
    r"""@import\s+(?:url\(\s*['"]?([^'"()]+)['"]?\s*\)|['"]([^'"]+)['"])[^;]*;?""",
    re.IGNORECASE,
)
CSS_URL_RE = re.compile(r"""url\(\s*(['"]?)([^'")]+)\1\s*\)""", re.IGNORECASE)
ABSOLUTE_PREFIXES = ("data:", "http://", "https://", "//", "#")

INLINE_MARKER = "/* Inlined from: {url} */\n{css}\n/* End inlined CSS */"
CIRCULAR_MARKER = "/* Could not inline: {url} */"
DEPTH_MARKER = "/* Import depth limit reached: {url} */"
FAILED_MARKER = "/* Failed to inline: {url} - {reason} */"


def decode_css(data: bytes) -> str:
    return data.decode("utf-8-sig", errors="replace")


def extract_imports(css: str) -> list[tuple[str, str]]:
    """(statement, url) for every @import in `css`, in order."""
    return [(m.group(0), (m.group(1) or m.group(2)).strip()) for m in IMPORT_RE.finditer(css)]


def rewrite_relative_urls(css: str, base_url: str) -> str:
    """Make every relative url(...) reference absolute against `base_url`."""
    def replace(match):
        url = match.group(2).strip()
        if not url or url.lower().startswith(ABSOLUTE_PREFIXES):
            return match.group(0)
        return f"url('{urljoin(base_url, url)}')"

    return CSS_URL_RE.sub(replace, css)


def stylesheet_urls_from_tree(root: IRNode, max_depth: int = 50) -> list[str]:
    """<link rel=stylesheet> hrefs and @import targets of <style> blocks."""
    urls = []
    for node in iter_nodes(root, max_depth):
        if node.tag == "link":
            rel = node.attributes.get("rel", "").lower().split()
            href = node.attributes.get("href", "").strip()
            if "stylesheet" in rel and href:
                urls.append(href)
        elif node.tag == "style":
            urls.extend(url for _, url in extract_imports(node.text or node.inner_html))
    return dedupe(urls)


class CssImportResolver:
    def __init__(self, fetcher: AssetFetcher, max_depth: int = 10, max_bytes: int | None = None):
        self.fetcher = fetcher
        self.max_depth = max_depth
        self.max_bytes = max_bytes

    async def inline_imports(self, css: str, base_url: str, visited: set, depth: int = 0) -> str:
        for statement, raw_url in extract_imports(css):
            import_url = urldefrag(urljoin(base_url, raw_url))[0]
            try:
                imported = await self._load(import_url, visited, depth + 1)
                replacement = INLINE_MARKER.format(url=import_url, css=imported)
            except CircularOrDeepImportError as e:
                print(f"  [css] {e}")
                marker = CIRCULAR_MARKER if e.circular else DEPTH_MARKER
                replacement = marker.format(url=import_url)
            except AssetFetchError as e:
                print(f"  [css] Import failed {import_url}: {e.reason}")
                replacement = FAILED_MARKER.format(url=import_url, reason=e.reason)
            css = css.replace(statement, replacement, 1)
        return css

    async def _load(self, url: str, visited: set, depth: int) -> str:
        if url in visited:
            raise CircularOrDeepImportError(url, circular=True)
        if depth > self.max_depth:
            raise CircularOrDeepImportError(url, circular=False)
        visited.add(url)
        result = await self.fetcher.fetch(url, max_bytes=self.max_bytes)
        css = rewrite_relative_urls(decode_css(result.content), url)
        return await self.inline_imports(css, url, visited, depth)


class CssDownloader:
    def __init__(self, store: AssetSessionStore, fetcher: AssetFetcher, concurrency: int = 3,
                 max_bytes: int = 5 * 1024 * 1024, max_import_depth: int = 10):
        self.store = store
        self.fetcher = fetcher
        self.concurrency = concurrency
        self.max_bytes = max_bytes
        self.resolver = CssImportResolver(fetcher, max_depth=max_import_depth, max_bytes=max_bytes)

    async def download_stylesheet(self, session_id: str, url: str, base_url: str = "") -> AssetDescriptor | None:
        url = (url or "").strip()
        if not url:
            return None
        absolute = urldefrag(urljoin(base_url, url))[0]

        result = await self.fetcher.fetch(absolute, max_bytes=self.max_bytes)
        css = rewrite_relative_urls(decode_css(result.content), absolute)
        css = await self.resolver.inline_imports(css, absolute, visited={absolute})

        filename = hashed_filename(absolute, ".css", fallback="style")
        return await self.store.save_asset(
            session_id, AssetType.CSS, filename, css.encode("utf-8"),
            original_url=url, absolute_url=absolute,
            content_type="text/css",
            imports_resolved=css.count("/* Inlined from: "),
        )

    async def download_stylesheets(self, session_id: str, urls: list, base_url: str = "") -> BatchResult:
        unique = dedupe(u.strip() for u in urls if isinstance(u, str))
        print(f"  [css] Downloading {len(unique)} stylesheets (concurrency {self.concurrency})")
        result = await run_batched(
            unique,
            lambda u: self.download_stylesheet(session_id, u, base_url),
            self.concurrency,
            label="css",
        )
        print(f"  [css] {len(result.assets)} saved, {len(result.errors)} failed")
        return result
