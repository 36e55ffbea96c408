"""
Thresholds and tag vocabularies shared by the classifier, the link
detectors and the tree walkers.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Heuristics:
    """Tunable thresholds for structural classification and link detection."""
    content_ratio: float = 0.5          # share of content-tag children that makes a column
    layout_width_px: float = 200        # wider generic containers become columns
    button_radius_px: float = 3
    button_pad_vertical_px: float = 8
    button_pad_horizontal_px: float = 12
    max_tree_depth: int = 50


DEFAULT_HEURISTICS = Heuristics()


CONTENT_TAGS = frozenset({
    "p", "span", "a", "h1", "h2", "h3", "h4", "h5", "h6", "img", "button",
    "input", "textarea", "label", "strong", "em", "i", "b", "u", "small",
    "mark", "del", "ins", "sub", "sup", "code", "pre", "blockquote",
    "ul", "ol", "li",
})

SECTION_TAGS = frozenset({"body", "section", "header", "footer", "main", "article", "aside"})

CONTAINER_TAGS = frozenset({"div", "nav"})

STRUCTURAL_TAGS = frozenset({"div", "section", "header", "footer", "main", "article", "aside", "nav"})

HEADING_TAGS = frozenset({"h1", "h2", "h3", "h4", "h5", "h6"})

LAYOUT_DISPLAYS = frozenset({"flex", "inline-flex", "grid", "inline-grid"})

TRANSPARENT_COLORS = frozenset({"", "transparent", "rgba(0, 0, 0, 0)", "rgba(0,0,0,0)", "initial", "none"})

NAV_CLASS_WORDS = ("nav", "menu", "navigation", "navbar", "header-link", "footer-link")

NAV_TEXT_PHRASES = (
    "home", "about", "contact", "services", "products", "blog", "portfolio",
    "team", "careers", "faq", "support", "pricing", "features", "login",
    "sign in", "register", "sign up",
)

NAV_URL_PATTERNS = (
    r"^/(about|contact|blog|services|products|team|careers|faq|support|pricing|features|portfolio)/?$",
    r"^#[a-z0-9_-]+$",
    r"/category/",
    r"/tag/",
    r"/archive/",
    r"/page/",
)

BUTTON_CLASS_WORDS = ("btn", "button", "cta", "call-to-action", "action", "submit", "download")
