"""
Translates captured CSS values into page-builder style settings.

apply_styles() is the single place widget style keys get written. It only
sets keys whose source value was captured, and running it twice over the
same widget leaves the settings unchanged.
"""

import re

from pagekit.heuristics import TRANSPARENT_COLORS
from pagekit.ir_normalizer import SIDES, StyleSnapshot

LENGTH_RE = re.compile(r"^(-?\d+(?:\.\d+)?|-?\.\d+)(px|em|rem|%|vh|vw|pt)?$")
COLOR_RE = re.compile(r"rgba?\([^)]*\)|hsla?\([^)]*\)|#[0-9a-fA-F]{3,8}\b")
BORDER_STYLES = ("solid", "dashed", "dotted", "double", "groove", "ridge", "inset", "outset")

# Text color key per widget type; buttons also have their own background key
TEXT_COLOR_KEYS = {
    "heading": "title_color",
    "text-editor": "text_color",
    "button": "button_text_color",
}

ALIGN_MAP = {"start": "left", "end": "right", "left": "left", "right": "right",
             "center": "center", "justify": "justify"}


def _num(value: float):
    return int(value) if float(value).is_integer() else round(value, 3)


def parse_length(value) -> tuple[float, str] | None:
    """'16px' -> (16.0, 'px'); '1.5' -> (1.5, ''); anything else -> None."""
    if value is None:
        return None
    match = LENGTH_RE.match(str(value).strip().lower())
    if not match:
        return None
    return float(match.group(1)), match.group(2) or ""


def px_value(value) -> float | None:
    parsed = parse_length(value)
    if parsed is None:
        return None
    number, unit = parsed
    return number if unit in ("", "px") else None


def is_transparent(color: str | None) -> bool:
    if color is None:
        return True
    return color.strip().lower() in TRANSPARENT_COLORS


# ---------------------------------------------------------------------------
# Value parsers
# ---------------------------------------------------------------------------

def parse_spacing(value) -> dict | None:
    """
    Parse a margin/padding value into a 4-sided dimension block.

    Accepts CSS shorthand with 1-4 values or a {top, right, bottom, left}
    mapping. `auto` sides are left blank. Returns None when nothing usable
    was captured.
    """
    if value is None:
        return None

    if isinstance(value, dict):
        tokens = [value.get(side) for side in SIDES]
    else:
        tokens = str(value).split()
        if not tokens or len(tokens) > 4:
            return None
        if len(tokens) == 1:
            tokens = tokens * 4
        elif len(tokens) == 2:
            tokens = [tokens[0], tokens[1], tokens[0], tokens[1]]
        elif len(tokens) == 3:
            tokens = [tokens[0], tokens[1], tokens[2], tokens[1]]

    sides = {}
    unit = ""
    for side, token in zip(SIDES, tokens):
        parsed = parse_length(token)
        if parsed is None:
            sides[side] = ""
            continue
        sides[side] = _num(parsed[0])
        unit = unit or parsed[1]

    if all(v == "" for v in sides.values()):
        return None
    return {
        "unit": unit or "px",
        **sides,
        "isLinked": len(set(sides.values())) == 1,
    }


def parse_radius(value) -> dict | None:
    """
    border-radius shorthand (1-4 corners, clockwise from top-left) as a
    dimension block. Only px lengths are kept; for elliptical corners the
    horizontal radii are used. None when no corner is rounded.
    """
    if not value:
        return None
    radius = parse_spacing(str(value).split("/")[0])
    if radius is None or radius["unit"] != "px":
        return None
    if not any(isinstance(radius[side], (int, float)) and radius[side] > 0 for side in SIDES):
        return None
    return radius


def radius_px(value) -> float | None:
    """Largest corner radius in px."""
    radius = parse_radius(value)
    if radius is None:
        return None
    return max(radius[side] for side in SIDES if isinstance(radius[side], (int, float)))


def parse_border(border: str | None) -> dict:
    """Split a border shorthand into style/width/color settings."""
    if not border:
        return {}
    text = border.strip().lower()
    if text in ("none", "0", "0px") or text.startswith(("0px ", "none ")):
        return {}

    settings = {}
    style = next((s for s in BORDER_STYLES if re.search(rf"\b{s}\b", text)), None)
    if style is None and " none" in f" {text}":
        return {}
    settings["_border_border"] = style or "solid"

    width = re.search(r"(\d+(?:\.\d+)?)px", text)
    if width:
        size = _num(float(width.group(1)))
        if size == 0:
            return {}
        settings["_border_width"] = {
            "unit": "px", "top": size, "right": size, "bottom": size, "left": size,
            "isLinked": True,
        }

    color = COLOR_RE.search(border)
    if color:
        settings["_border_color"] = color.group(0)
    return settings


def parse_box_shadow(shadow: str | None, fallback_color: str | None = None) -> dict | None:
    """
    Parse the first layer of a box-shadow. Computed styles put the color
    first ('rgba(0, 0, 0, 0.1) 0px 2px 5px 0px'); authored CSS usually puts
    it last. Lengths CSS leaves out default to 0.
    """
    if not shadow or shadow.strip().lower() == "none":
        return None
    first_layer = re.split(r",(?![^(]*\))", shadow)[0]
    color_match = COLOR_RE.search(first_layer)
    color = color_match.group(0) if color_match else None
    remainder = COLOR_RE.sub(" ", first_layer).replace("inset", " ")

    lengths = []
    for token in remainder.split():
        parsed = parse_length(token)
        if parsed is not None:
            lengths.append(_num(parsed[0]))
    if len(lengths) < 2:
        return None
    lengths += [0] * (4 - len(lengths))

    if color is None and fallback_color:
        color = fallback_color
    return {
        "horizontal": lengths[0],
        "vertical": lengths[1],
        "blur": lengths[2],
        "spread": lengths[3],
        "color": color or "rgba(0, 0, 0, 1)",
    }


def _size_block(value, default_unit: str = "px") -> dict | None:
    parsed = parse_length(value)
    if parsed is None:
        return None
    number, unit = parsed
    return {"size": _num(number), "unit": unit or default_unit}


def _first_font_family(family: str) -> str:
    first = family.split(",")[0].strip()
    return first.strip("'\"").strip()


def _background_image_url(value: str | None) -> str | None:
    if not value or value.strip().lower() == "none":
        return None
    match = re.search(r"url\(\s*['\"]?([^'\")]+)['\"]?\s*\)", value)
    if match:
        return match.group(1)
    return None


# ---------------------------------------------------------------------------
# Settings writers
# ---------------------------------------------------------------------------

def apply_styles(widget: dict, layout: StyleSnapshot) -> dict:
    """Write style settings for `layout` onto `widget` in place and return it."""
    settings = widget.setdefault("settings", {})
    widget_type = widget.get("widgetType", "text-editor")

    # Typography
    if layout.font_family:
        family = _first_font_family(layout.font_family)
        if family:
            settings["typography_typography"] = "custom"
            settings["typography_font_family"] = family
    font_size = _size_block(layout.font_size)
    if font_size:
        settings["typography_typography"] = "custom"
        settings["typography_font_size"] = font_size
    if layout.font_weight:
        settings["typography_typography"] = "custom"
        settings["typography_font_weight"] = str(layout.font_weight)
    # Unitless line-height is a multiplier of the font size
    line_height = _size_block(layout.line_height, default_unit="em")
    if line_height:
        settings["typography_typography"] = "custom"
        settings["typography_line_height"] = line_height

    # Colors
    color_key = TEXT_COLOR_KEYS.get(widget_type)
    if color_key and layout.color and not is_transparent(layout.color):
        settings[color_key] = layout.color
    if not is_transparent(layout.background_color):
        if widget_type == "button":
            settings["button_background_color"] = layout.background_color
        else:
            settings["_background_background"] = "classic"
            settings["_background_color"] = layout.background_color

    # Spacing
    margin = parse_spacing(layout.margin)
    if margin:
        settings["_margin"] = margin
    padding = parse_spacing(layout.padding)
    if padding:
        settings["_padding"] = padding

    # Borders
    settings.update(parse_border(layout.border))
    radius = parse_radius(layout.border_radius)
    if radius:
        settings["_border_radius"] = radius

    shadow = parse_box_shadow(layout.box_shadow, fallback_color=layout.color)
    if shadow:
        settings["_box_shadow_box_shadow_type"] = "yes"
        settings["_box_shadow_box_shadow"] = shadow

    if layout.text_align:
        align = ALIGN_MAP.get(layout.text_align.strip().lower())
        if align:
            settings["align"] = align

    if widget_type == "image":
        for key in ("width", "height"):
            px = px_value(getattr(layout, key))
            if px and px > 0:
                settings[key] = {"size": _num(px), "unit": "px"}

    return widget


def container_settings(layout: StyleSnapshot) -> dict:
    """Background and spacing settings for sections and columns."""
    settings = {}
    if not is_transparent(layout.background_color):
        settings["background_background"] = "classic"
        settings["background_color"] = layout.background_color
    image_url = _background_image_url(layout.background_image)
    if image_url:
        settings["background_background"] = "classic"
        settings["background_image"] = {"url": image_url}
    padding = parse_spacing(layout.padding)
    if padding:
        settings["padding"] = padding
    margin = parse_spacing(layout.margin)
    if margin:
        settings["margin"] = margin
    return settings
