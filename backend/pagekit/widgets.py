"""
Widget builders. One builder per tag family; everything without a
dedicated builder becomes a text-editor widget.
"""

from pagekit.context import ConversionContext
from pagekit.heuristics import HEADING_TAGS
from pagekit.ir_normalizer import IRNode, iter_nodes
from pagekit.link_detection import is_button_like, is_navigation_link
from pagekit.styles import apply_styles

FALLBACK_TEXT = "Add your content here"

# Tags whose markup carries meaning the plain text would lose
MARKUP_TAGS = {"ul", "ol", "pre", "code", "blockquote"}


def make_widget(ctx: ConversionContext, widget_type: str, settings: dict) -> dict:
    return {
        "id": ctx.new_id(),
        "elType": "widget",
        "widgetType": widget_type,
        "settings": settings,
        "elements": [],
    }


def image_source(node: IRNode) -> str:
    attrs = node.attributes
    return (attrs.get("src") or attrs.get("data-src") or attrs.get("data-lazy-src") or "").strip()


def build_image_widget(node: IRNode, ctx: ConversionContext) -> dict:
    src = image_source(node)
    if src:
        ctx.seen_images.add(src)
    settings = {
        "image": {
            "url": ctx.asset_map.rewrite(src, "images") if src else "",
            "alt": node.attributes.get("alt", ""),
        },
        "image_size": "full",
    }
    return apply_styles(make_widget(ctx, "image", settings), node.layout)


def build_heading_widget(node: IRNode, ctx: ConversionContext) -> dict:
    settings = {
        "title": node.text or node.inner_html,
        "header_size": node.tag,
    }
    return apply_styles(make_widget(ctx, "heading", settings), node.layout)


def build_button_widget(node: IRNode, ctx: ConversionContext, href: str = "#") -> dict:
    text = node.text or node.attributes.get("value", "") or node.attributes.get("aria-label", "")
    settings = {
        "text": text,
        "link": {
            "url": href,
            "is_external": "on" if node.attributes.get("target") == "_blank" else "",
            "nofollow": "on" if "nofollow" in node.attributes.get("rel", "") else "",
        },
        "button_type": "default",
    }
    return apply_styles(make_widget(ctx, "button", settings), node.layout)


def build_text_widget(node: IRNode, ctx: ConversionContext) -> dict:
    if node.tag in MARKUP_TAGS and node.inner_html:
        editor = node.inner_html
    else:
        editor = node.text or node.inner_html
    return apply_styles(make_widget(ctx, "text-editor", {"editor": editor}), node.layout)


def build_link_widget(node: IRNode, ctx: ConversionContext) -> dict:
    # Navigation links render as plain text; the href is dropped
    if is_navigation_link(node) and not is_button_like(node, ctx.heuristics):
        return build_text_widget(node, ctx)
    href = node.attributes.get("href", "").strip() or "#"
    return build_button_widget(node, ctx, href=href)


def build_input_widget(node: IRNode, ctx: ConversionContext) -> dict:
    if node.attributes.get("type", "").lower() in ("submit", "button"):
        return build_button_widget(node, ctx)
    return build_text_widget(node, ctx)


WIDGET_BUILDERS = {
    "img": build_image_widget,
    "a": build_link_widget,
    "button": build_button_widget,
    "input": build_input_widget,
}


def build_widget(node: IRNode, ctx: ConversionContext) -> dict:
    if node.tag in HEADING_TAGS:
        return build_heading_widget(node, ctx)
    builder = WIDGET_BUILDERS.get(node.tag, build_text_widget)
    return builder(node, ctx)


def fallback_text_widget(node: IRNode | None, ctx: ConversionContext) -> dict:
    """Placeholder widget for containers that produced no content of their own."""
    editor = ""
    if node is not None:
        editor = node.text or node.inner_html
    widget = make_widget(ctx, "text-editor", {"editor": editor or FALLBACK_TEXT})
    if node is not None:
        apply_styles(widget, node.layout)
    return widget


def extract_images(node: IRNode, ctx: ConversionContext) -> list[dict]:
    """Image widgets for <img> descendants not yet emitted in this conversion."""
    widgets = []
    for descendant in iter_nodes(node, ctx.heuristics.max_tree_depth):
        if descendant is node or descendant.tag != "img":
            continue
        src = image_source(descendant)
        if not src or src in ctx.seen_images:
            continue
        widgets.append(build_image_widget(descendant, ctx))
    return widgets
