"""
Packages a validated template for download.

template mode returns the JSON document; kit mode returns a zip with the
template, the session's assets and a manifest. Nothing is returned for a
template that fails validation.
"""

import io
import json
import re
import zipfile
from dataclasses import dataclass, field

from pagekit.errors import PackagingError
from pagekit.validator import content_stats, ensure_valid, utc_iso

EXPORT_MODES = ("template", "kit")
UNSAFE_ARCNAME_CHARS = re.compile(r"[^a-zA-Z0-9._/-]")


@dataclass
class KitAsset:
    path: str           # relative to assets/, e.g. "images/logo_ab12cd34ef56.png"
    data: bytes


@dataclass
class ExportResult:
    content: bytes
    media_type: str
    filename: str
    report: dict = field(default_factory=dict)


def safe_filename_piece(text: str, max_len: int = 80) -> str:
    text = text.strip()
    text = re.sub(r"\s+", "-", text)
    text = re.sub(r"[^A-Za-z0-9._-]+", "-", text)
    text = re.sub(r"-+", "-", text).strip("-")
    if not text:
        return "template"
    return text[:max_len]


def _safe_arcname(path: str) -> str:
    cleaned = UNSAFE_ARCNAME_CHARS.sub("_", path)
    parts = [p for p in cleaned.split("/") if p not in ("", ".", "..")]
    return "/".join(parts)


def export_template(template: dict, mode: str = "template", assets: list | None = None,
                    min_size_ratio: float = 0.9) -> ExportResult:
    if mode not in EXPORT_MODES:
        raise ValueError(f"Unknown export mode {mode!r}; expected one of {EXPORT_MODES}")

    enhanced = ensure_valid(template)
    payload = json.dumps(enhanced, indent=2, ensure_ascii=False).encode("utf-8")
    base_name = safe_filename_piece(enhanced.get("title", ""))

    if mode == "template":
        return ExportResult(
            content=payload,
            media_type="application/json",
            filename=f"{base_name}.json",
            report={"mode": "template", "bytes": len(payload)},
        )
    return _build_kit(enhanced, payload, assets or [], base_name, min_size_ratio)


def _build_kit(template: dict, payload: bytes, assets: list, base_name: str,
               min_size_ratio: float) -> ExportResult:
    buf = io.BytesIO()
    used_names = set()
    packed = []
    asset_bytes = 0

    with zipfile.ZipFile(buf, "w") as archive:
        archive.writestr("template.json", payload, compress_type=zipfile.ZIP_DEFLATED)

        for asset in assets:
            arcname = "assets/" + _safe_arcname(asset.path)
            stem, dot, ext = arcname.rpartition(".")
            n = 1
            while arcname in used_names:
                arcname = f"{stem}_{n}{dot}{ext}" if dot else f"{arcname}_{n}"
                n += 1
            used_names.add(arcname)
            # Images and fonts are already compressed; store them as-is
            archive.writestr(arcname, asset.data, compress_type=zipfile.ZIP_STORED)
            asset_bytes += len(asset.data)
            packed.append({"path": arcname, "bytes": len(asset.data)})

        stats = content_stats(template.get("content"))
        manifest = {
            "generated_at": utc_iso(),
            "source_url": template.get("metadata", {}).get("source_url", ""),
            "counts": {
                "sections": stats["sections"],
                "columns": stats["columns"],
                "widgets": stats["widgets"],
                "images": stats["images"],
                "assets": len(packed),
            },
            "assets": packed,
        }
        archive.writestr("manifest.json", json.dumps(manifest, indent=2), compress_type=zipfile.ZIP_DEFLATED)

    content = buf.getvalue()
    if asset_bytes and len(content) < min_size_ratio * asset_bytes:
        raise PackagingError(
            f"Kit archive is {len(content)} bytes but its assets total {asset_bytes} bytes "
            f"(minimum ratio {min_size_ratio})"
        )

    print(f"  [export] Kit built: {len(packed)} assets, {len(content)} bytes")
    return ExportResult(
        content=content,
        media_type="application/zip",
        filename=f"{base_name}-kit.zip",
        report={"mode": "kit", "bytes": len(content), "asset_bytes": asset_bytes, "assets": len(packed)},
    )
