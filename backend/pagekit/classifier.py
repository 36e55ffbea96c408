"""
Assigns each IR node exactly one structural role.

Rules are checked in a fixed order and the first match wins, so the result
is fully determined by the node and its parent's role.
"""

from enum import Enum

from pagekit.heuristics import (
    CONTAINER_TAGS,
    CONTENT_TAGS,
    DEFAULT_HEURISTICS,
    LAYOUT_DISPLAYS,
    SECTION_TAGS,
    STRUCTURAL_TAGS,
    Heuristics,
)
from pagekit.ir_normalizer import IRNode
from pagekit.styles import px_value


class Role(str, Enum):
    SECTION = "section"
    COLUMN = "column"
    WIDGET = "widget"


def _content_ratio(node: IRNode) -> float:
    if not node.children:
        return 0.0
    content = sum(1 for child in node.children if child.tag in CONTENT_TAGS)
    return content / len(node.children)


def _has_structural_child(node: IRNode) -> bool:
    return any(child.tag in STRUCTURAL_TAGS for child in node.children)


def _is_layout_container(node: IRNode, heuristics: Heuristics) -> bool:
    if _content_ratio(node) >= heuristics.content_ratio:
        return True
    if _has_structural_child(node):
        return True
    display = (node.layout.display or "").strip().lower()
    if display in LAYOUT_DISPLAYS:
        return True
    width = px_value(node.layout.width)
    return width is not None and width > heuristics.layout_width_px


def classify(node: IRNode, parent_role: Role | None = None,
             heuristics: Heuristics = DEFAULT_HEURISTICS) -> Role:
    # Content tags win over everything, including a section-like parent
    if node.tag in CONTENT_TAGS:
        return Role.WIDGET
    if node.tag in SECTION_TAGS:
        return Role.SECTION
    if node.tag in CONTAINER_TAGS:
        if parent_role == Role.SECTION:
            return Role.COLUMN
        if _is_layout_container(node, heuristics):
            return Role.COLUMN
    return Role.WIDGET
