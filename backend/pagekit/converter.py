"""
IR tree -> page-builder template.

The walk classifies every node, builds widgets for leaves, and repairs the
hierarchy on the way back up so the result is always
section -> column -> widget:

  - loose widgets under a section are grouped into one column per run
  - columns nested in columns are flattened into their widgets
  - sections nested anywhere are hoisted to top-level siblings, splitting
    their container around them
  - containers that produce nothing get a fallback text widget
"""

from pagekit.asset_matcher import AssetUrlMap
from pagekit.classifier import Role, classify
from pagekit.context import ConversionContext
from pagekit.heuristics import DEFAULT_HEURISTICS, Heuristics
from pagekit.ir_normalizer import IRNode, PageCapture
from pagekit.styles import container_settings
from pagekit.validator import ELEMENTOR_VERSION, TEMPLATE_VERSION, DEFAULT_PAGE_TEMPLATE, content_stats, utc_iso
from pagekit.widgets import build_widget, extract_images, fallback_text_widget

GENERATOR = "pagekit"
DEFAULT_TITLE = "Imported Page"


# ---------------------------------------------------------------------------
# Node factories
# ---------------------------------------------------------------------------

def make_column(ctx: ConversionContext, settings: dict, widgets: list) -> dict:
    return {
        "id": ctx.new_id(),
        "elType": "column",
        "settings": {**settings, "_column_size": 100},
        "elements": list(widgets),
    }


def make_section(ctx: ConversionContext, settings: dict, columns: list) -> dict:
    size = round(100 / len(columns), 2)
    if float(size).is_integer():
        size = int(size)
    for column in columns:
        column["settings"]["_column_size"] = size
    return {
        "id": ctx.new_id(),
        "elType": "section",
        "settings": dict(settings),
        "elements": list(columns),
    }


def _node_settings(node: IRNode, ctx: ConversionContext) -> dict:
    settings = container_settings(node.layout)
    if "background_image" in settings:
        url = settings["background_image"]["url"]
        settings["background_image"] = {"url": ctx.asset_map.rewrite(url, "images")}
    return settings


def group_into_sections(items: list, ctx: ConversionContext, settings: dict) -> list[dict]:
    """
    Turn a mixed run of sections, columns and widgets into a list of sections.
    Non-section items between hoisted sections share one section that carries
    `settings`.
    """
    sections = []
    columns = []
    loose = []

    def flush_loose():
        if loose:
            columns.append(make_column(ctx, {}, loose))
            loose.clear()

    def flush_columns():
        flush_loose()
        if columns:
            sections.append(make_section(ctx, settings, columns))
            columns.clear()

    for item in items:
        el_type = item["elType"]
        if el_type == "section":
            flush_columns()
            sections.append(item)
        elif el_type == "column":
            flush_loose()
            columns.append(item)
        else:
            loose.append(item)
    flush_columns()
    return sections


# ---------------------------------------------------------------------------
# Tree walk
# ---------------------------------------------------------------------------

def convert_node(node: IRNode, parent_role: Role | None, ctx: ConversionContext, depth: int = 0) -> list[dict]:
    """Convert one IR node into zero or more target nodes, in document order."""
    if depth >= ctx.heuristics.max_tree_depth:
        role = Role.WIDGET
    else:
        role = classify(node, parent_role, ctx.heuristics)

    if role == Role.SECTION:
        return _convert_section(node, ctx, depth)
    if role == Role.COLUMN:
        return _convert_column(node, ctx, depth)
    return _convert_leaf(node, ctx)


def _convert_leaf(node: IRNode, ctx: ConversionContext) -> list[dict]:
    widgets = []
    budget = ctx.heuristics.max_tree_depth
    has_images = node.tag != "img" and any(_contains_img(child, budget) for child in node.children)
    # A link wrapping only an image (logos) is just the image
    if not (node.tag == "a" and not node.text and has_images):
        widget = build_widget(node, ctx)
        if not _is_empty_text(widget):
            widgets.append(widget)
    if has_images:
        widgets.extend(extract_images(node, ctx))
    return widgets


def _contains_img(node: IRNode, budget: int) -> bool:
    if node.tag == "img":
        return True
    if budget <= 0:
        return False
    return any(_contains_img(child, budget - 1) for child in node.children)


def _is_empty_text(widget: dict) -> bool:
    return widget["widgetType"] == "text-editor" and not widget["settings"].get("editor")


def _convert_section(node: IRNode, ctx: ConversionContext, depth: int) -> list[dict]:
    items = []
    for child in node.children:
        items.extend(convert_node(child, Role.SECTION, ctx, depth + 1))

    settings = _node_settings(node, ctx)
    sections = group_into_sections(items, ctx, settings)
    if not sections:
        column = make_column(ctx, {}, [fallback_text_widget(node, ctx)])
        sections.append(make_section(ctx, settings, [column]))
    return sections


def _convert_column(node: IRNode, ctx: ConversionContext, depth: int) -> list[dict]:
    settings = _node_settings(node, ctx)
    items = []
    widgets = []

    def flush():
        if widgets:
            items.append(make_column(ctx, settings, widgets))
            widgets.clear()

    for child in node.children:
        for item in convert_node(child, Role.COLUMN, ctx, depth + 1):
            el_type = item["elType"]
            if el_type == "widget":
                widgets.append(item)
            elif el_type == "column":
                widgets.extend(item["elements"])
            else:
                flush()
                items.append(item)
    flush()

    if not items:
        items.append(make_column(ctx, settings, [fallback_text_widget(node, ctx)]))
    return items


def build_content(root: IRNode, ctx: ConversionContext) -> list[dict]:
    """Top-level section list; never empty."""
    sections = group_into_sections(convert_node(root, None, ctx), ctx, {})
    if not sections:
        column = make_column(ctx, {}, [fallback_text_widget(root, ctx)])
        sections.append(make_section(ctx, {}, [column]))
    return sections


# ---------------------------------------------------------------------------
# Template assembly
# ---------------------------------------------------------------------------

def convert_capture(capture: PageCapture, asset_map: AssetUrlMap | None = None,
                    heuristics: Heuristics = DEFAULT_HEURISTICS) -> dict:
    if asset_map is None:
        asset_map = AssetUrlMap(base_url=capture.url)
    elif not asset_map.base_url:
        asset_map.base_url = capture.url

    ctx = ConversionContext(asset_map=asset_map, heuristics=heuristics)
    content = build_content(capture.structure, ctx)
    stats = content_stats(content)
    print(f"  [converter] {capture.url or 'capture'}: {stats['sections']} sections, "
          f"{stats['columns']} columns, {stats['widgets']} widgets")

    return {
        "version": TEMPLATE_VERSION,
        "title": capture.title or DEFAULT_TITLE,
        "type": "page",
        "content": content,
        "page_settings": {"template": DEFAULT_PAGE_TEMPLATE},
        "metadata": {
            "created_at": utc_iso(),
            "source_url": capture.url,
            "generator": GENERATOR,
            "elementor_version": ELEMENTOR_VERSION,
            "language": capture.lang,
            "stats": {
                "sections": stats["sections"],
                "widgets": stats["widgets"],
                "images": stats["images"],
            },
        },
    }
