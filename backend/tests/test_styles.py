import pytest

from pagekit.ir_normalizer import StyleSnapshot
from pagekit.styles import (
    apply_styles,
    container_settings,
    parse_border,
    parse_box_shadow,
    parse_radius,
    parse_spacing,
    px_value,
)


@pytest.mark.parametrize("value,expected", [
    ("10px", (10, 10, 10, 10)),
    ("10px 20px", (10, 20, 10, 20)),
    ("1px 2px 3px", (1, 2, 3, 2)),
    ("1px 2px 3px 4px", (1, 2, 3, 4)),
])
def test_spacing_shorthand(value, expected):
    block = parse_spacing(value)
    assert (block["top"], block["right"], block["bottom"], block["left"]) == expected
    assert block["unit"] == "px"
    assert block["isLinked"] == (len(set(expected)) == 1)


def test_spacing_auto_and_mapping():
    assert parse_spacing("0 auto")["right"] == ""
    assert parse_spacing({"top": "1.5em", "left": "2em"}) == {
        "unit": "em", "top": 1.5, "right": "", "bottom": "", "left": 2, "isLinked": False,
    }
    assert parse_spacing("auto") is None
    assert parse_spacing(None) is None


def test_border_shorthand():
    assert parse_border("1px solid rgb(221, 221, 221)") == {
        "_border_border": "solid",
        "_border_width": {"unit": "px", "top": 1, "right": 1, "bottom": 1, "left": 1, "isLinked": True},
        "_border_color": "rgb(221, 221, 221)",
    }
    assert parse_border("0px none rgb(0, 0, 0)") == {}
    assert parse_border("none") == {}


def test_box_shadow_computed_and_authored_order():
    computed = parse_box_shadow("rgba(0, 0, 0, 0.1) 0px 2px 5px 0px")
    assert computed == {"horizontal": 0, "vertical": 2, "blur": 5, "spread": 0, "color": "rgba(0, 0, 0, 0.1)"}

    authored = parse_box_shadow("4px 6px #333")
    assert authored == {"horizontal": 4, "vertical": 6, "blur": 0, "spread": 0, "color": "#333"}

    assert parse_box_shadow("none") is None


def test_px_value_only_accepts_pixels():
    assert px_value("12px") == 12
    assert px_value("12") == 12
    assert px_value("50%") is None
    assert px_value("auto") is None


def test_apply_styles_for_heading():
    layout = StyleSnapshot(
        color="rgb(0, 0, 0)",
        font_family='"Playfair Display", serif',
        font_size="48px",
        font_weight="700",
        line_height="1.2",
        text_align="center",
        margin="0px 0px 16px",
    )
    settings = apply_styles({"widgetType": "heading", "settings": {}}, layout)["settings"]

    assert settings["title_color"] == "rgb(0, 0, 0)"
    assert settings["typography_typography"] == "custom"
    assert settings["typography_font_family"] == "Playfair Display"
    assert settings["typography_font_size"] == {"size": 48, "unit": "px"}
    assert settings["typography_font_weight"] == "700"
    assert settings["typography_line_height"] == {"size": 1.2, "unit": "em"}
    assert settings["align"] == "center"
    assert settings["_margin"]["bottom"] == 16


def test_apply_styles_is_idempotent_and_sparse():
    layout = StyleSnapshot(background_color="#fafafa", border_radius="8px", box_shadow="0 1px 2px #000")
    widget = {"widgetType": "text-editor", "settings": {"editor": "x"}}
    once = apply_styles(widget, layout)["settings"].copy()
    twice = apply_styles(widget, layout)["settings"]

    assert once == twice
    assert once["_background_color"] == "#fafafa"
    assert once["_border_radius"]["top"] == 8
    assert once["_box_shadow_box_shadow_type"] == "yes"
    assert "text_color" not in once
    assert "typography_typography" not in once

    empty = apply_styles({"widgetType": "text-editor", "settings": {"editor": "y"}}, StyleSnapshot())
    assert empty["settings"] == {"editor": "y"}


def test_transparent_background_is_skipped():
    widget = apply_styles({"widgetType": "text-editor", "settings": {}},
                          StyleSnapshot(background_color="rgba(0, 0, 0, 0)"))
    assert "_background_color" not in widget["settings"]


def test_image_dimensions():
    settings = apply_styles({"widgetType": "image", "settings": {}},
                            StyleSnapshot(width="320px", height="auto"))["settings"]
    assert settings["width"] == {"size": 320, "unit": "px"}
    assert "height" not in settings


def test_container_settings_use_container_keys():
    settings = container_settings(StyleSnapshot(
        background_color="#123456",
        background_image='url("https://example.com/bg.jpg")',
        padding="40px 0",
    ))
    assert settings["background_background"] == "classic"
    assert settings["background_color"] == "#123456"
    assert settings["background_image"] == {"url": "https://example.com/bg.jpg"}
    assert settings["padding"]["top"] == 40
    assert "_padding" not in settings


@pytest.mark.parametrize("value,corners,linked", [
    ("6px", (6, 6, 6, 6), True),
    ("6px 6px 0px 0px", (6, 6, 0, 0), False),
    ("4px 0", (4, 0, 4, 0), False),
    ("10px 5px / 20px", (10, 5, 10, 5), False),
])
def test_radius_shorthand(value, corners, linked):
    radius = parse_radius(value)
    assert (radius["top"], radius["right"], radius["bottom"], radius["left"]) == corners
    assert radius["unit"] == "px"
    assert radius["isLinked"] is linked


@pytest.mark.parametrize("value", [None, "", "0", "0px 0px", "50%", "1em 1em"])
def test_radius_without_rounded_px_corner(value):
    assert parse_radius(value) is None


def test_apply_styles_keeps_per_corner_radius():
    widget = {"widgetType": "button", "settings": {"text": "Go"}}
    settings = apply_styles(widget, StyleSnapshot(border_radius="6px 6px 0px 0px"))["settings"]

    assert settings["_border_radius"] == {
        "unit": "px", "top": 6, "right": 6, "bottom": 0, "left": 0, "isLinked": False,
    }
