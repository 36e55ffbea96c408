import re

from pagekit.asset_matcher import AssetEntry, AssetUrlMap
from pagekit.pipeline import convert_page
from pagekit.widgets import FALLBACK_TEXT


def el(tag, *children, text="", attrs=None, layout=None):
    return {
        "tagName": tag.upper(),
        "attributes": attrs or {},
        "layout": layout or {},
        "textContent": text,
        "children": list(children),
    }


def page(structure, url="https://example.com/", title="Example"):
    return {"title": title, "url": url, "structure": structure}


def all_widgets(template):
    return [w for s in template["content"] for c in s["elements"] for w in c["elements"]]


def assert_hierarchy(template):
    assert template["content"], "content must never be empty"
    for section in template["content"]:
        assert section["elType"] == "section"
        assert section["elements"]
        for column in section["elements"]:
            assert column["elType"] == "column"
            for widget in column["elements"]:
                assert widget["elType"] == "widget"
                assert widget["elements"] == []


def test_heading_and_nav_link_in_one_column():
    structure = el("section", el("div",
                                 el("h1", text="Hi"),
                                 el("a", text="Home", attrs={"href": "#"}),
                                 attrs={"class": "col"}))
    template = convert_page(page(structure))

    assert len(template["content"]) == 1
    section = template["content"][0]
    assert len(section["elements"]) == 1
    widgets = section["elements"][0]["elements"]
    assert [w["widgetType"] for w in widgets] == ["heading", "text-editor"]
    assert widgets[0]["settings"]["title"] == "Hi"
    assert widgets[0]["settings"]["header_size"] == "h1"
    assert widgets[1]["settings"]["editor"] == "Home"
    assert "link" not in widgets[1]["settings"]


def test_styled_cta_link_becomes_button():
    style = "background-color:#ff0000;border-radius:6px;padding:10px 16px"
    structure = el("section", el("a", text="Buy Now", attrs={
        "class": "cta-button",
        "href": "https://shop.example.com/buy",
        "style": style,
    }))
    template = convert_page(page(structure))

    [widget] = all_widgets(template)
    assert widget["widgetType"] == "button"
    assert widget["settings"]["text"] == "Buy Now"
    assert widget["settings"]["link"]["url"] == "https://shop.example.com/buy"
    assert widget["settings"]["button_background_color"] == "#ff0000"
    assert widget["settings"]["_border_radius"]["top"] == 6
    assert widget["settings"]["_padding"]["left"] == 16


def test_button_styling_wins_over_nav_shape():
    structure = el("section", el("a", text="Pricing", attrs={"href": "/pricing"},
                                 layout={"backgroundColor": "rgb(0, 102, 255)", "borderRadius": "4px"}))
    [widget] = all_widgets(convert_page(page(structure)))
    assert widget["widgetType"] == "button"
    assert widget["settings"]["link"]["url"] == "/pricing"


def test_empty_capture_still_yields_one_section():
    template = convert_page({"structure": {}})

    assert_hierarchy(template)
    assert len(template["content"]) == 1
    [widget] = all_widgets(template)
    assert widget["widgetType"] == "text-editor"
    assert widget["settings"]["editor"] == FALLBACK_TEXT
    assert template["title"] == "Imported Page"


def test_nested_sections_are_hoisted_in_document_order():
    structure = el("body",
                   el("header", el("h1", text="Top")),
                   el("main",
                      el("section", el("p", text="A")),
                      el("section", el("p", text="B"))),
                   el("footer", el("p", text="End")))
    template = convert_page(page(structure))

    assert_hierarchy(template)
    assert len(template["content"]) == 4
    texts = [w["settings"].get("title") or w["settings"].get("editor") for w in all_widgets(template)]
    assert texts == ["Top", "A", "B", "End"]


def test_messy_tree_keeps_hierarchy_and_unique_ids():
    structure = el("body",
                   el("span", text="loose text"),
                   el("div",
                      el("div", el("p", text="deep"), el("img", attrs={"src": "/a.png"})),
                      el("section", el("h2", text="inner")),
                      layout={"display": "flex"}),
                   el("nav", el("a", text="About", attrs={"href": "/about"}),
                      el("a", text="Blog", attrs={"href": "/blog"})),
                   el("form", el("input", attrs={"type": "submit", "value": "Send"})))
    template = convert_page(page(structure))

    assert_hierarchy(template)
    ids = []

    def collect(nodes):
        for node in nodes:
            ids.append(node["id"])
            collect(node["elements"])

    collect(template["content"])
    assert len(ids) == len(set(ids))
    assert all(re.fullmatch(r"[a-z0-9]{8}", i) for i in ids)
    stats = template["metadata"]["stats"]
    assert stats["sections"] == len(template["content"])
    assert stats["widgets"] == len(all_widgets(template))


def test_column_sizes_split_evenly():
    structure = el("section",
                   el("div", el("p", text="one")),
                   el("div", el("p", text="two")))
    section = convert_page(page(structure))["content"][0]
    assert [c["settings"]["_column_size"] for c in section["elements"]] == [50, 50]


def test_image_src_rewritten_through_asset_map():
    asset_map = AssetUrlMap(entries=[AssetEntry(
        original_url="https://cdn.example.com/img/hero.png",
        absolute_url="https://cdn.example.com/img/hero.png",
        local_url="/assets/0b9f5c1e-2d7a-4c3b-9f4e-1a2b3c4d5e6f/images/hero_abc.png",
    )])
    structure = el("section", el("img", attrs={"src": "https://cdn.example.com/img/hero.png?v=3", "alt": "Hero"}))
    [widget] = all_widgets(convert_page(page(structure), asset_map=asset_map))

    assert widget["widgetType"] == "image"
    assert widget["settings"]["image"]["url"].endswith("/images/hero_abc.png")
    assert widget["settings"]["image"]["alt"] == "Hero"


def test_unmatched_image_keeps_remote_url():
    structure = el("section", el("img", attrs={"src": "https://other.example.com/x.jpg"}))
    [widget] = all_widgets(convert_page(page(structure), asset_map=AssetUrlMap()))
    assert widget["settings"]["image"]["url"] == "https://other.example.com/x.jpg"


def test_images_inside_leaf_content_are_not_duplicated():
    structure = el("section", el("div",
                                 el("img", attrs={"src": "/a.png"}),
                                 el("p",
                                    el("img", attrs={"src": "/a.png"}),
                                    el("img", attrs={"src": "/b.png"}),
                                    text="caption")))
    widgets = all_widgets(convert_page(page(structure)))

    kinds = [(w["widgetType"], w["settings"].get("image", {}).get("url") or w["settings"].get("editor"))
             for w in widgets]
    assert kinds == [("image", "/a.png"), ("text-editor", "caption"), ("image", "/b.png")]


def test_logo_link_renders_as_image_only():
    structure = el("header", el("a", el("img", attrs={"src": "/logo.svg", "alt": "Logo"}), attrs={"href": "/"}))
    [widget] = all_widgets(convert_page(page(structure)))
    assert widget["widgetType"] == "image"


def test_very_deep_tree_is_bounded():
    node = el("p", text="bottom")
    for _ in range(80):
        node = el("div", node)
    template = convert_page(page(el("section", node)))
    assert_hierarchy(template)


def test_conversions_do_not_share_image_cache():
    structure = el("section", el("p", el("img", attrs={"src": "/shared.png"}), text="x"))
    first = all_widgets(convert_page(page(structure)))
    second = all_widgets(convert_page(page(structure)))
    assert [w["widgetType"] for w in first] == [w["widgetType"] for w in second] == ["text-editor", "image"]
