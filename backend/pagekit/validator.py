"""
Schema gate for exported templates. Pure Python, no I/O.

The output contract is expressed as pydantic models so every violation comes
back with a path into the template. validate() never raises; ensure_valid()
is the hard-fail entry point used before bytes leave the process.
"""

import copy
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from pagekit.errors import SchemaValidationError

TEMPLATE_VERSION = "0.4"
ELEMENTOR_VERSION = "3.16.0"
DEFAULT_PAGE_TEMPLATE = "elementor_canvas"
ELEMENT_ID_PATTERN = r"^[a-z0-9]{8}$"

WIDGET_REQUIRED_SETTINGS = {
    "heading": ("title", "header_size"),
    "image": ("image",),
    "button": ("text", "link"),
    "text-editor": ("editor",),
}

SMALL_TEMPLATE_BYTES = 1000


def utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------

class WidgetNode(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(pattern=ELEMENT_ID_PATTERN)
    elType: Literal["widget"]
    widgetType: Literal["heading", "image", "button", "text-editor"]
    settings: dict
    elements: list = Field(max_length=0)

    @model_validator(mode="after")
    def check_widget_settings(self):
        missing = [k for k in WIDGET_REQUIRED_SETTINGS[self.widgetType] if k not in self.settings]
        if missing:
            raise ValueError(f"{self.widgetType} widget is missing settings: {', '.join(missing)}")
        if self.widgetType == "button":
            link = self.settings["link"]
            if not isinstance(link, dict) or not isinstance(link.get("url"), str):
                raise ValueError("button link must be an object with a string url")
        if self.widgetType == "image":
            image = self.settings["image"]
            if not isinstance(image, dict) or not isinstance(image.get("url"), str):
                raise ValueError("image setting must be an object with a string url")
        return self


class ColumnNode(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(pattern=ELEMENT_ID_PATTERN)
    elType: Literal["column"]
    settings: dict
    elements: list[WidgetNode]

    @model_validator(mode="after")
    def check_column_size(self):
        size = self.settings.get("_column_size")
        if not isinstance(size, (int, float)) or isinstance(size, bool) or not 0 < size <= 100:
            raise ValueError("column settings need a numeric _column_size between 0 and 100")
        return self


class SectionNode(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(pattern=ELEMENT_ID_PATTERN)
    elType: Literal["section"]
    settings: dict
    elements: list[ColumnNode] = Field(min_length=1)


class PageSettings(BaseModel):
    model_config = ConfigDict(extra="allow")

    template: str


class TemplateStats(BaseModel):
    model_config = ConfigDict(extra="allow")

    sections: int
    widgets: int
    images: int


class TemplateMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    created_at: str
    source_url: str
    generator: str
    elementor_version: str
    stats: TemplateStats


class Template(BaseModel):
    model_config = ConfigDict(extra="forbid")

    version: Literal["0.4"]
    title: str = Field(min_length=1)
    type: Literal["page"]
    content: list[SectionNode] = Field(min_length=1)
    page_settings: PageSettings
    metadata: TemplateMetadata


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

@dataclass
class ValidationResult:
    is_valid: bool
    errors: list = field(default_factory=list)
    enhanced_template: dict | None = None
    stats: dict = field(default_factory=dict)
    recommendations: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": self.errors,
            "stats": self.stats,
            "recommendations": self.recommendations,
        }


def content_stats(content) -> dict:
    """Count sections, columns, widgets and image widgets in a content list."""
    stats = {"sections": 0, "columns": 0, "widgets": 0, "images": 0}
    stack = list(content) if isinstance(content, list) else []
    while stack:
        node = stack.pop()
        if not isinstance(node, dict):
            continue
        el_type = node.get("elType")
        if el_type == "section":
            stats["sections"] += 1
        elif el_type == "column":
            stats["columns"] += 1
        elif el_type == "widget":
            stats["widgets"] += 1
            if node.get("widgetType") == "image":
                stats["images"] += 1
        children = node.get("elements")
        if isinstance(children, list):
            stack.extend(children)
    return stats


def _format_errors(exc: ValidationError) -> list[dict]:
    errors = []
    for err in exc.errors():
        path = "/" + "/".join(str(part) for part in err["loc"])
        message = err["msg"].removeprefix("Value error, ")
        errors.append({"path": path, "message": message, "type": err["type"]})
    return errors


def _duplicate_id_errors(content: list) -> list[dict]:
    errors = []
    seen = set()

    def walk(nodes, path):
        for i, node in enumerate(nodes):
            node_path = f"{path}/{i}"
            if node.get("id") in seen:
                errors.append({
                    "path": f"{node_path}/id",
                    "message": f"Duplicate element id {node['id']!r}",
                    "type": "unique",
                })
            seen.add(node.get("id"))
            walk(node.get("elements", []), f"{node_path}/elements")

    walk(content, "/content")
    return errors


def enhance(template: dict) -> dict:
    """Copy of `template` with page settings and export metadata filled in."""
    enhanced = copy.deepcopy(template)
    if not isinstance(enhanced, dict):
        return enhanced
    if not isinstance(enhanced.get("page_settings"), dict):
        enhanced["page_settings"] = {}
    enhanced["page_settings"].setdefault("template", DEFAULT_PAGE_TEMPLATE)
    if not isinstance(enhanced.get("metadata"), dict):
        enhanced["metadata"] = {}
    enhanced["metadata"].setdefault("elementor_version", ELEMENTOR_VERSION)
    enhanced["metadata"].setdefault("export_date", utc_iso())
    return enhanced


def recommendations(is_valid: bool, stats: dict) -> list[dict]:
    items = []
    if not is_valid:
        items.append({
            "severity": "error",
            "message": "Template failed schema validation",
            "action": "Fix validation errors before download",
        })
    if stats.get("sections", 0) == 0:
        items.append({
            "severity": "warning",
            "message": "Template contains no sections",
            "action": "Ensure at least one section is present",
        })
    if stats.get("widgets", 0) and stats.get("file_size", 0) < SMALL_TEMPLATE_BYTES:
        items.append({
            "severity": "warning",
            "message": "Template file size is very small",
            "action": "Check if all content was properly captured",
        })
    return items


def validate(template) -> ValidationResult:
    try:
        Template.model_validate(template)
        errors = _duplicate_id_errors(template["content"])
    except ValidationError as e:
        errors = _format_errors(e)

    stats = content_stats(template.get("content") if isinstance(template, dict) else None)
    try:
        stats["file_size"] = len(json.dumps(template).encode("utf-8"))
    except (TypeError, ValueError):
        stats["file_size"] = 0

    is_valid = not errors
    return ValidationResult(
        is_valid=is_valid,
        errors=errors,
        enhanced_template=enhance(template) if isinstance(template, dict) else None,
        stats=stats,
        recommendations=recommendations(is_valid, stats),
    )


def ensure_valid(template) -> dict:
    """Return the enhanced template, or raise SchemaValidationError."""
    result = validate(template)
    if not result.is_valid:
        print(f"  [validator] Template rejected with {len(result.errors)} errors")
        raise SchemaValidationError(result.errors)
    return result.enhanced_template
