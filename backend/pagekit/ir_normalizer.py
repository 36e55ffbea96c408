"""
Normalizes the raw scraper output into an immutable IR tree.

The scraper emits loosely-typed dicts ({tagName, attributes, layout,
textContent, innerHTML, children}) whose fields may be missing or of the
wrong type. Everything here defaults quietly; only a capture with no
document tree at all is rejected.
"""

import re
from dataclasses import dataclass, field, fields
from typing import Iterator

from pagekit.errors import ScrapeInputError
from pagekit.heuristics import DEFAULT_HEURISTICS

SIDES = ("top", "right", "bottom", "left")
BACKGROUND_IMAGE_RE = re.compile(r"url\([^)]*\)", re.IGNORECASE)
COLOR_TOKEN_RE = re.compile(r"#[0-9a-f]{3,8}\b|(?:rgb|hsl)a?\([^)]*\)", re.IGNORECASE)


@dataclass(frozen=True)
class StyleSnapshot:
    """Resolved visual properties of one element. None means not captured."""
    color: str | None = None
    background_color: str | None = None
    background_image: str | None = None
    font_family: str | None = None
    font_size: str | None = None
    font_weight: str | None = None
    line_height: str | None = None
    margin: str | dict | None = None
    padding: str | dict | None = None
    border: str | None = None
    border_radius: str | None = None
    box_shadow: str | None = None
    text_align: str | None = None
    display: str | None = None
    width: str | None = None
    height: str | None = None


STYLE_FIELDS = frozenset(f.name for f in fields(StyleSnapshot))


@dataclass(frozen=True)
class IRNode:
    tag: str = "div"
    attributes: dict = field(default_factory=dict)
    layout: StyleSnapshot = field(default_factory=StyleSnapshot)
    children: tuple = ()
    text: str = ""
    inner_html: str = ""

    @property
    def classes(self) -> str:
        return self.attributes.get("class", "")


@dataclass
class PageCapture:
    structure: IRNode
    title: str = ""
    url: str = ""
    lang: str = ""
    image_urls: list = field(default_factory=list)
    stylesheet_urls: list = field(default_factory=list)
    inline_css: str = ""


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------

def _camel_to_snake(name: str) -> str:
    return re.sub(r"(?<!^)([A-Z])", r"_\1", name).replace("-", "_").lower()


def _as_str(value) -> str | None:
    if value is None or isinstance(value, (dict, list, tuple, bool)):
        return None
    text = str(value).strip()
    return text or None


def _as_spacing(value) -> str | dict | None:
    if isinstance(value, dict):
        sides = {s: _as_str(value.get(s)) for s in SIDES}
        sides = {s: v for s, v in sides.items() if v is not None}
        return sides or None
    return _as_str(value)


def _text(value) -> str:
    if not isinstance(value, str):
        return ""
    return " ".join(value.split())


def _split_background(value: str) -> dict:
    """`background` shorthand -> background_image and/or background_color."""
    parts = {}
    image = BACKGROUND_IMAGE_RE.search(value)
    if image:
        parts["background_image"] = image.group(0)
    color = COLOR_TOKEN_RE.search(BACKGROUND_IMAGE_RE.sub(" ", value))
    if color:
        parts["background_color"] = color.group(0)
    elif not image and len(value.split()) == 1:
        # Named colours: "red", "transparent"
        parts["background_color"] = value
    return parts


def parse_inline_style(style: str) -> dict:
    """Parse a `style` attribute into snake_case StyleSnapshot keys."""
    parsed = {}
    if not isinstance(style, str):
        return parsed
    for decl in style.split(";"):
        if ":" not in decl:
            continue
        prop, value = decl.split(":", 1)
        prop = prop.strip().lower()
        value = value.replace("!important", "").strip()
        if not prop or not value:
            continue
        key = _camel_to_snake(prop)
        if key == "background":
            parsed.update(_split_background(value))
        elif key in STYLE_FIELDS:
            parsed[key] = value
    return parsed


def normalize_layout(raw_layout, inline_style: str = "") -> StyleSnapshot:
    values = parse_inline_style(inline_style)
    if isinstance(raw_layout, dict):
        for key, value in raw_layout.items():
            name = _camel_to_snake(str(key))
            if name not in STYLE_FIELDS:
                continue
            coerced = _as_spacing(value) if name in ("margin", "padding") else _as_str(value)
            if coerced is not None:
                values[name] = coerced
    return StyleSnapshot(**values)


# ---------------------------------------------------------------------------
# Tree normalization
# ---------------------------------------------------------------------------

def normalize_node(raw, depth: int = 0, max_depth: int = DEFAULT_HEURISTICS.max_tree_depth) -> IRNode:
    if not isinstance(raw, dict):
        return IRNode()

    tag = raw.get("tagName") or raw.get("tag") or "div"
    tag = str(tag).strip().lower() or "div"

    attributes = {}
    raw_attrs = raw.get("attributes")
    if isinstance(raw_attrs, dict):
        for name, value in raw_attrs.items():
            if value is None or isinstance(value, (dict, list)):
                continue
            attributes[str(name).lower()] = str(value)
    class_name = raw.get("className")
    if "class" not in attributes and isinstance(class_name, str) and class_name.strip():
        attributes["class"] = class_name.strip()

    text = _text(raw.get("allTextContent")) or _text(raw.get("textContent")) or _text(raw.get("text"))
    inner_html = raw.get("innerHTML") if isinstance(raw.get("innerHTML"), str) else ""

    children = ()
    raw_children = raw.get("children")
    if isinstance(raw_children, list) and depth < max_depth:
        children = tuple(
            normalize_node(child, depth + 1, max_depth)
            for child in raw_children
            if isinstance(child, dict)
        )

    return IRNode(
        tag=tag,
        attributes=attributes,
        layout=normalize_layout(raw.get("layout"), attributes.get("style", "")),
        children=children,
        text=text,
        inner_html=inner_html.strip(),
    )


def iter_nodes(node: IRNode, max_depth: int = DEFAULT_HEURISTICS.max_tree_depth, _depth: int = 0) -> Iterator[IRNode]:
    """Depth-first walk, pre-order, bounded at max_depth."""
    yield node
    if _depth >= max_depth:
        return
    for child in node.children:
        yield from iter_nodes(child, max_depth, _depth + 1)


def _find_structure(raw: dict):
    if isinstance(raw.get("structure"), dict):
        return raw["structure"]
    visual = raw.get("visualStructure")
    if isinstance(visual, dict) and isinstance(visual.get("structure"), dict):
        return visual["structure"]
    layouts = raw.get("responsiveLayouts")
    if isinstance(layouts, dict):
        desktop = layouts.get("desktop")
        if isinstance(desktop, dict) and isinstance(desktop.get("structure"), dict):
            return desktop["structure"]
    return None


def _find_inline_css(raw: dict) -> str:
    candidates = [raw.get("styles")]
    visual = raw.get("visualStructure")
    if isinstance(visual, dict):
        candidates.append(visual.get("styles"))
    layouts = raw.get("responsiveLayouts")
    if isinstance(layouts, dict) and isinstance(layouts.get("desktop"), dict):
        candidates.append(layouts["desktop"].get("styles"))
    for css in candidates:
        if isinstance(css, str) and css.strip():
            return css
    return ""


def _asset_urls(entries, key: str, external_only: bool = False) -> list[str]:
    urls = []
    if not isinstance(entries, list):
        return urls
    for entry in entries:
        if isinstance(entry, str):
            url = entry
        elif isinstance(entry, dict):
            if external_only and entry.get("type", "external") != "external":
                continue
            url = entry.get(key) or entry.get("url") or ""
        else:
            continue
        url = str(url).strip()
        if url and url not in urls:
            urls.append(url)
    return urls


def normalize_capture(raw) -> PageCapture:
    """
    Build a PageCapture from a scraper payload.

    Raises ScrapeInputError when the payload is not a mapping or carries no
    document tree. Every other missing field falls back to a default.
    """
    if not isinstance(raw, dict):
        raise ScrapeInputError(f"Capture must be an object, got {type(raw).__name__}")

    structure = _find_structure(raw)
    if structure is None:
        raise ScrapeInputError("Capture has no document structure")

    page_info = raw.get("pageInfo") if isinstance(raw.get("pageInfo"), dict) else {}
    assets = raw.get("assets") if isinstance(raw.get("assets"), dict) else {}

    return PageCapture(
        structure=normalize_node(structure),
        title=_text(raw.get("title")) or _text(page_info.get("title")),
        url=str(raw.get("url") or page_info.get("url") or "").strip(),
        lang=str(raw.get("lang") or page_info.get("lang") or "").strip(),
        image_urls=_asset_urls(assets.get("images"), "src"),
        stylesheet_urls=_asset_urls(assets.get("stylesheets"), "href", external_only=True),
        inline_css=_find_inline_css(raw),
    )
