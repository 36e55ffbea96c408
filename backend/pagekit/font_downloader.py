"""
Parses @font-face rules and downloads one file per declaration.

Each declaration lists alternative sources; only the best-supported format
is fetched (woff2 > woff > truetype > opentype, anything else last).
"""

import hashlib
import re
from dataclasses import dataclass, field
from urllib.parse import urljoin, urlsplit

from pagekit.asset_pool import BatchResult, run_batched
from pagekit.errors import AssetFetchError
from pagekit.fetcher import AssetFetcher
from pagekit.session_store import AssetDescriptor, AssetSessionStore, AssetType

FONT_FACE_RE = re.compile(r"@font-face\s*\{([^}]*)\}", re.IGNORECASE)
# data: URLs carry ';' inside url(...), so parentheses are matched as a unit
SRC_DECL_RE = re.compile(r"(?:^|;)\s*src\s*:\s*((?:[^;(]|\([^)]*\))+)", re.IGNORECASE)
SRC_ENTRY_RE = re.compile(
    r"""url\(\s*(['"]?)(.*?)\1\s*\)(?:\s*format\(\s*['"]?([^'")]+)['"]?\s*\))?""",
    re.IGNORECASE | re.DOTALL,
)

FORMAT_PRIORITY = ("woff2", "woff", "truetype", "opentype")

FORMAT_ALIASES = {
    "woff2": "woff2",
    "woff": "woff",
    "truetype": "truetype",
    "ttf": "truetype",
    "opentype": "opentype",
    "otf": "opentype",
    "embedded-opentype": "embedded-opentype",
    "eot": "embedded-opentype",
    "svg": "svg",
}

EXTENSION_FORMATS = {
    ".woff2": "woff2",
    ".woff": "woff",
    ".ttf": "truetype",
    ".otf": "opentype",
    ".eot": "embedded-opentype",
    ".svg": "svg",
}

MIME_FORMATS = {
    "font/woff2": "woff2",
    "application/font-woff2": "woff2",
    "font/woff": "woff",
    "application/font-woff": "woff",
    "application/x-font-woff": "woff",
    "font/ttf": "truetype",
    "application/x-font-ttf": "truetype",
    "application/x-font-truetype": "truetype",
    "font/otf": "opentype",
    "application/x-font-opentype": "opentype",
    "application/vnd.ms-fontobject": "embedded-opentype",
}

FORMAT_EXTENSIONS = {
    "woff2": ".woff2",
    "woff": ".woff",
    "truetype": ".ttf",
    "opentype": ".otf",
    "embedded-opentype": ".eot",
    "svg": ".svg",
}

# Leading bytes of each font container
FONT_SIGNATURES = (
    (b"wOF2", "woff2"),
    (b"wOFF", "woff"),
    (b"OTTO", "opentype"),
    (b"\x00\x01\x00\x00", "truetype"),
    (b"true", "truetype"),
)


@dataclass
class FontSource:
    url: str
    format: str | None = None


@dataclass
class FontFace:
    family: str
    weight: str = "400"
    style: str = "normal"
    sources: list = field(default_factory=list)

    @property
    def url(self) -> str:
        source = best_source(self)
        return source.url if source else ""


def _declaration(block: str, name: str) -> str | None:
    match = re.search(rf"(?:^|;)\s*{name}\s*:\s*([^;]+)", block, re.IGNORECASE)
    return match.group(1).strip() if match else None


def detect_format(url: str, hint: str | None = None) -> str | None:
    if hint:
        return FORMAT_ALIASES.get(hint.strip().lower(), hint.strip().lower())
    if url.startswith("data:"):
        mime = url[5:].split(";")[0].split(",")[0].strip().lower()
        return MIME_FORMATS.get(mime)
    path = urlsplit(url).path.lower()
    for ext, fmt in EXTENSION_FORMATS.items():
        if path.endswith(ext):
            return fmt
    return None


def format_rank(fmt: str | None) -> int:
    return FORMAT_PRIORITY.index(fmt) if fmt in FORMAT_PRIORITY else len(FORMAT_PRIORITY)


def parse_font_faces(css: str, base_url: str = "") -> list[FontFace]:
    """All @font-face declarations in `css`, with source URLs made absolute."""
    faces = []
    for block in FONT_FACE_RE.findall(css or ""):
        family = _declaration(block, "font-family")
        src = " ".join(
            m.group(1) for m in SRC_DECL_RE.finditer(block)
        )
        if not family or not src:
            continue
        sources = []
        for entry in SRC_ENTRY_RE.finditer(src):
            url = entry.group(2).strip()
            if not url:
                continue
            if not url.startswith("data:"):
                url = urljoin(base_url, url)
            sources.append(FontSource(url=url, format=detect_format(url, entry.group(3))))
        if not sources:
            continue
        faces.append(FontFace(
            family=family.strip("'\" "),
            weight=(_declaration(block, "font-weight") or "400").strip(),
            style=(_declaration(block, "font-style") or "normal").strip(),
            sources=sources,
        ))
    return faces


def best_source(face: FontFace) -> FontSource | None:
    if not face.sources:
        return None
    # min() keeps the first of equally ranked sources
    return min(face.sources, key=lambda s: format_rank(s.format))


def sniff_font_format(data: bytes) -> str | None:
    for signature, fmt in FONT_SIGNATURES:
        if data.startswith(signature):
            return fmt
    return None


class FontDownloader:
    def __init__(self, store: AssetSessionStore, fetcher: AssetFetcher,
                 concurrency: int = 3, max_bytes: int = 5 * 1024 * 1024):
        self.store = store
        self.fetcher = fetcher
        self.concurrency = concurrency
        self.max_bytes = max_bytes

    async def download_font(self, session_id: str, face: FontFace) -> AssetDescriptor | None:
        source = best_source(face)
        if source is None:
            return None
        result = await self.fetcher.fetch(source.url, max_bytes=self.max_bytes)
        if not result.content:
            raise AssetFetchError(source.url[:100], "empty font file")

        fmt = sniff_font_format(result.content) or source.format or MIME_FORMATS.get(result.content_type)
        ext = FORMAT_EXTENSIONS.get(fmt, ".woff2")
        family_stem = re.sub(r"[^a-zA-Z0-9_-]", "_", face.family)[:50].strip("_") or "font"
        digest = hashlib.md5(source.url.encode("utf-8")).hexdigest()[:12]
        filename = f"{family_stem}_{digest}{ext}"

        return await self.store.save_asset(
            session_id, AssetType.FONTS, filename, result.content,
            original_url=source.url, absolute_url=source.url,
            content_type=result.content_type or None,
            font_family=face.family, font_weight=face.weight,
            font_style=face.style, font_format=fmt,
        )

    async def download_fonts(self, session_id: str, faces: list) -> BatchResult:
        # Several declarations often share one file
        unique = []
        seen = set()
        for face in faces:
            source = best_source(face)
            if source is None or source.url in seen:
                continue
            seen.add(source.url)
            unique.append(face)

        print(f"  [fonts] Downloading {len(unique)} font files (concurrency {self.concurrency})")
        result = await run_batched(
            unique,
            lambda f: self.download_font(session_id, f),
            self.concurrency,
            label="fonts",
        )
        print(f"  [fonts] {len(result.assets)} saved, {len(result.errors)} failed")
        return result
