"""Image content checks for downloaded assets."""
from PIL import Image, UnidentifiedImageError
import io

PIL_FORMAT_EXTENSIONS = {
    "JPEG": ".jpg",
    "PNG": ".png",
    "GIF": ".gif",
    "WEBP": ".webp",
    "BMP": ".bmp",
    "ICO": ".ico",
    "TIFF": ".tiff",
}


def looks_like_svg(data: bytes) -> bool:
    head = data[:2048].lstrip().lower()
    if head.startswith(b"\xef\xbb\xbf"):
        head = head[3:].lstrip()
    return head.startswith(b"<svg") or (head.startswith((b"<?xml", b"<!doctype svg")) and b"<svg" in head)


def sniff_image(data: bytes) -> tuple[str, int, int]:
    """
    Identify raster image bytes.
    Returns (extension, width, height); raises ValueError for anything
    Pillow cannot read.
    """
    try:
        img = Image.open(io.BytesIO(data))
        width, height = img.size
        fmt = img.format
        img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValueError(f"unreadable image data: {e}") from e
    return PIL_FORMAT_EXTENSIONS.get(fmt or "", ".jpg"), width, height
