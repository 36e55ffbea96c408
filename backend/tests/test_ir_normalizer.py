import pytest

from pagekit.errors import ScrapeInputError
from pagekit.ir_normalizer import iter_nodes, normalize_capture, normalize_layout, normalize_node, parse_inline_style


def test_node_fields_are_coerced():
    node = normalize_node({
        "tagName": "DIV",
        "className": "hero  ",
        "attributes": {"ID": "main", "data-x": 3, "style": None, "nested": {"a": 1}},
        "textContent": "  Hello \n  world ",
        "innerHTML": " <b>Hello</b> world ",
        "children": [{"tagName": "P"}, "junk", None],
    })

    assert node.tag == "div"
    assert node.attributes == {"id": "main", "data-x": "3", "class": "hero"}
    assert node.text == "Hello world"
    assert node.inner_html == "<b>Hello</b> world"
    assert [c.tag for c in node.children] == ["p"]


def test_missing_fields_default_quietly():
    node = normalize_node({"children": "nope", "layout": "nope"})
    assert node.tag == "div"
    assert node.children == ()
    assert node.text == ""
    assert node.layout.color is None
    assert normalize_node("not a dict").tag == "div"


def test_computed_layout_wins_over_inline_style():
    layout = normalize_layout(
        {"backgroundColor": "rgb(1, 2, 3)", "fontWeight": 600, "margin": {"top": "4px", "left": None}},
        "background: #fff; color: red !important; padding: 1px 2px",
    )
    assert layout.background_color == "rgb(1, 2, 3)"
    assert layout.color == "red"
    assert layout.font_weight == "600"
    assert layout.padding == "1px 2px"
    assert layout.margin == {"top": "4px"}


def test_inline_background_shorthand():
    assert parse_inline_style("background: #000") == {"background_color": "#000"}
    assert parse_inline_style("background: red") == {"background_color": "red"}
    assert parse_inline_style("background: url(a.png) no-repeat") == {"background_image": "url(a.png)"}
    assert parse_inline_style("BORDER-RADIUS: 4px;;junk") == {"border_radius": "4px"}


def test_inline_background_shorthand_with_colour_and_image():
    assert parse_inline_style("background: #f00 url(x.png) no-repeat") == {
        "background_color": "#f00",
        "background_image": "url(x.png)",
    }
    assert parse_inline_style("background: url(icons.svg#abc) rgba(0, 0, 0, 0.5) center") == {
        "background_color": "rgba(0, 0, 0, 0.5)",
        "background_image": "url(icons.svg#abc)",
    }


def test_inline_background_image_reaches_layout():
    node = normalize_node({"tagName": "section", "attributes": {"style": "background: #f00 url(x.png)"}})
    assert node.layout.background_color == "#f00"
    assert node.layout.background_image == "url(x.png)"


def test_depth_is_bounded():
    raw = {"tagName": "p", "textContent": "leaf"}
    for _ in range(10):
        raw = {"tagName": "div", "children": [raw]}

    root = normalize_node(raw, max_depth=3)
    assert len(list(iter_nodes(root))) == 4
    assert len(list(iter_nodes(normalize_node(raw), max_depth=2))) == 3


def test_capture_from_visual_structure():
    capture = normalize_capture({
        "pageInfo": {"title": "  Shop  ", "url": "https://shop.example.com/", "lang": "de"},
        "visualStructure": {"structure": {"tagName": "BODY"}, "styles": "@font-face { }"},
        "assets": {
            "images": ["/a.png", {"src": "/b.png"}, {"url": "/a.png"}, 7],
            "stylesheets": [{"href": "/site.css", "type": "external"}, {"href": "", "type": "inline"}],
        },
    })

    assert capture.structure.tag == "body"
    assert capture.title == "Shop"
    assert capture.url == "https://shop.example.com/"
    assert capture.lang == "de"
    assert capture.image_urls == ["/a.png", "/b.png"]
    assert capture.stylesheet_urls == ["/site.css"]
    assert capture.inline_css == "@font-face { }"


def test_capture_from_responsive_layouts():
    capture = normalize_capture({"responsiveLayouts": {"desktop": {"structure": {"tagName": "MAIN"}}}})
    assert capture.structure.tag == "main"
    assert capture.title == ""


@pytest.mark.parametrize("raw", [None, [], "html", {"title": "no tree"}, {"structure": "div"}])
def test_unusable_captures_are_rejected(raw):
    with pytest.raises(ScrapeInputError):
        normalize_capture(raw)
