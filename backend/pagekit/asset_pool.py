"""
Bounded-concurrency batch runner shared by the downloaders.

Items run in windows of `concurrency`; each item settles on its own, so a
failed download lands in `errors` without affecting its neighbours.
"""

import asyncio
import hashlib
import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from urllib.parse import urlsplit


@dataclass
class BatchResult:
    assets: list = field(default_factory=list)
    errors: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "downloaded": len(self.assets),
            "failed": len(self.errors),
            "assets": [a.model_dump(mode="json") for a in self.assets],
            "errors": self.errors,
        }


def hashed_filename(url: str, ext: str, fallback: str = "asset") -> str:
    """`{clean-name}_{md5(url)[:12]}{ext}`; data URLs use the fallback stem."""
    digest = hashlib.md5(url.encode("utf-8")).hexdigest()[:12]
    stem = ""
    if not url.startswith("data:"):
        stem = PurePosixPath(urlsplit(url).path).stem
    clean = re.sub(r"[^a-zA-Z0-9_-]", "_", stem)[:50].strip("_") or fallback
    return f"{clean}_{digest}{ext}"


def dedupe(items) -> list:
    seen = set()
    unique = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            unique.append(item)
    return unique


async def run_batched(items: list, worker, concurrency: int, label: str = "asset") -> BatchResult:
    result = BatchResult()
    concurrency = max(1, concurrency)
    for start in range(0, len(items), concurrency):
        batch = items[start:start + concurrency]
        outcomes = await asyncio.gather(*(worker(item) for item in batch), return_exceptions=True)
        for item, outcome in zip(batch, outcomes):
            if isinstance(outcome, Exception):
                name = item if isinstance(item, str) else getattr(item, "url", repr(item))
                print(f"  [{label}] Failed {str(name)[:100]}: {outcome}")
                result.errors.append({"url": str(name), "error": str(outcome)})
            elif isinstance(outcome, BaseException):
                raise outcome
            elif outcome is not None:
                result.assets.append(outcome)
    return result
