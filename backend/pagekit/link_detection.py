"""
Decides whether an <a> element is a navigation link or a call-to-action.

Both detectors match class names and link text on whole words, so a class
like "attribution" does not count as a button and "homeowners" is not a
nav phrase.
"""

import re

from pagekit.heuristics import (
    BUTTON_CLASS_WORDS,
    DEFAULT_HEURISTICS,
    NAV_CLASS_WORDS,
    NAV_TEXT_PHRASES,
    NAV_URL_PATTERNS,
    Heuristics,
)
from pagekit.ir_normalizer import IRNode
from pagekit.styles import is_transparent, parse_spacing, radius_px

VOID_HREFS = {"", "#", "javascript:void(0)", "javascript:void(0);", "javascript:;", "javascript:"}


def _word_pattern(words) -> re.Pattern:
    # Class names use hyphens as separators, so treat them as word boundaries
    alternatives = "|".join(re.escape(w).replace(r"\ ", r"\s+") for w in words)
    return re.compile(rf"(?<![a-z0-9])(?:{alternatives})(?![a-z0-9])", re.IGNORECASE)


NAV_CLASS_RE = _word_pattern(NAV_CLASS_WORDS)
NAV_TEXT_RE = _word_pattern(NAV_TEXT_PHRASES)
BUTTON_CLASS_RE = _word_pattern(BUTTON_CLASS_WORDS)
NAV_URL_RES = [re.compile(p, re.IGNORECASE) for p in NAV_URL_PATTERNS]


def _nav_url_shape(href: str) -> bool:
    if href.startswith("/") and not href.startswith("//"):
        return True
    if href.startswith("#"):
        return True
    return any(p.search(href) for p in NAV_URL_RES)


def is_navigation_link(node: IRNode) -> bool:
    href = node.attributes.get("href", "").strip()
    if href.lower().replace(" ", "") in VOID_HREFS:
        return True
    if NAV_CLASS_RE.search(node.classes):
        return True
    text = node.text or ""
    return bool(NAV_TEXT_RE.search(text)) and _nav_url_shape(href)


def is_button_like(node: IRNode, heuristics: Heuristics = DEFAULT_HEURISTICS) -> bool:
    if BUTTON_CLASS_RE.search(node.classes):
        return True
    if node.tag == "button":
        return True
    if node.tag == "input" and node.attributes.get("type", "").lower() in ("submit", "button"):
        return True

    layout = node.layout
    if is_transparent(layout.background_color):
        return False
    radius = radius_px(layout.border_radius)
    if radius is not None and radius >= heuristics.button_radius_px:
        return True
    padding = parse_spacing(layout.padding)
    if not padding:
        return False
    sides = {k: padding[k] if isinstance(padding[k], (int, float)) else 0 for k in ("top", "right", "bottom", "left")}
    vertical = min(sides["top"], sides["bottom"])
    horizontal = min(sides["left"], sides["right"])
    return vertical >= heuristics.button_pad_vertical_px and horizontal >= heuristics.button_pad_horizontal_px
