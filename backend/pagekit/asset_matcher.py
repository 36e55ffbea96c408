"""
Maps remote asset URLs to the locally served copies in a session.

Lookups go through three tiers, first hit wins:
    1. exact original/absolute URL
    2. URL with query string and fragment stripped
    3. trailing path segment (filename)
The filename tier can pair same-named files from different origins.
"""

from dataclasses import dataclass, field
from urllib.parse import urljoin, urlsplit, urlunsplit


@dataclass(frozen=True)
class AssetEntry:
    original_url: str
    absolute_url: str
    local_url: str
    asset_type: str = "images"


def normalize_url(url: str) -> str:
    """Drop query string and fragment; keep scheme, host and path."""
    if not url:
        return ""
    parts = urlsplit(url.strip())
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, "", ""))


def url_filename(url: str) -> str:
    if not url:
        return ""
    path = urlsplit(url.strip()).path
    return path.rstrip("/").rsplit("/", 1)[-1]


@dataclass
class AssetUrlMap:
    entries: list = field(default_factory=list)
    base_url: str = ""

    def add(self, entry: AssetEntry):
        self.entries.append(entry)

    def __len__(self):
        return len(self.entries)

    def find(self, url: str, asset_type: str | None = None) -> AssetEntry | None:
        if not url or not self.entries:
            return None
        candidates = [e for e in self.entries if asset_type is None or e.asset_type == asset_type]
        url = url.strip()

        # Tier 1: exact
        for entry in candidates:
            if url in (entry.original_url, entry.absolute_url):
                return entry

        # Tier 2: normalized, relative sources resolved against the page
        resolved = urljoin(self.base_url, url) if self.base_url else url
        wanted = normalize_url(resolved)
        if wanted:
            for entry in candidates:
                if wanted in (normalize_url(entry.original_url), normalize_url(entry.absolute_url)):
                    return entry

        # Tier 3: filename
        name = url_filename(url)
        if name:
            for entry in candidates:
                if name in (url_filename(entry.original_url), url_filename(entry.absolute_url)):
                    return entry
        return None

    def rewrite(self, url: str, asset_type: str | None = None) -> str:
        """Local URL for `url`, or `url` unchanged when nothing matches."""
        entry = self.find(url, asset_type)
        if entry is None:
            if url and self.entries:
                print(f"  [asset-map] No local copy for {url[:100]}")
            return url
        return entry.local_url

    def as_dict(self) -> dict:
        mapping = {}
        for entry in self.entries:
            for key in (entry.original_url, entry.absolute_url):
                if key:
                    mapping[key] = entry.local_url
        return mapping
