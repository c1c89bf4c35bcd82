"""ui_tree.py - Parse uiautomator hierarchy dumps into immutable UI snapshots.

Accepts raw output from `adb shell uiautomator dump` and converts it into a
tree of frozen UiNode objects. The snapshot holds plain values only, so the
device can change (or the dump file be overwritten) right after parsing.
"""

import json
import re
import sys
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Iterator

_PREFIX = "[tree]"

_EDITABLE_CLASS_HINTS = ("EditText", "AutoCompleteTextView", "SearchAutoComplete")


def _log(msg: str) -> None:
    print(f"{_PREFIX} {msg}", file=sys.stderr)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Bounds:
    """Screen rectangle in pixels, as reported by uiautomator."""

    left: int = 0
    top: int = 0
    right: int = 0
    bottom: int = 0

    @property
    def width(self) -> int:
        return max(0, self.right - self.left)

    @property
    def height(self) -> int:
        return max(0, self.bottom - self.top)

    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    def center(self) -> tuple[int, int]:
        return ((self.left + self.right) // 2, (self.top + self.bottom) // 2)


@dataclass(frozen=True)
class UiNode:
    """One node of a screen snapshot. Never mutated once captured."""

    text: str | None = None
    hint_text: str | None = None
    description: str | None = None
    element_id: str | None = None
    package_name: str | None = None
    class_name: str | None = None
    bounds: Bounds = field(default_factory=Bounds)
    clickable: bool = False
    editable: bool = False
    scrollable: bool = False
    children: tuple["UiNode", ...] = ()


# ---------------------------------------------------------------------------
# Attribute parsing
# ---------------------------------------------------------------------------

_BOUNDS_RE = re.compile(r"\[(-?\d+),(-?\d+)\]\[(-?\d+),(-?\d+)\]")


def _parse_bounds(raw: str | None) -> Bounds:
    """Parse "[left,top][right,bottom]" into Bounds (zeroes when malformed)."""
    if not raw:
        return Bounds()
    m = _BOUNDS_RE.search(raw)
    if not m:
        return Bounds()
    return Bounds(int(m.group(1)), int(m.group(2)), int(m.group(3)), int(m.group(4)))


def _flag(element: ET.Element, name: str) -> bool:
    return (element.get(name) or "").strip().lower() == "true"


def _value(element: ET.Element, name: str) -> str | None:
    value = element.get(name)
    if value is None or not value.strip():
        return None
    return value


def _is_editable(element: ET.Element, class_name: str | None) -> bool:
    if _flag(element, "editable"):
        return True
    if not class_name:
        return False
    return any(hint in class_name for hint in _EDITABLE_CLASS_HINTS)


def _parse_node(element: ET.Element) -> UiNode:
    class_name = _value(element, "class")
    children = tuple(_parse_node(child) for child in element if child.tag == "node")
    return UiNode(
        text=_value(element, "text"),
        hint_text=_value(element, "hint"),
        description=_value(element, "content-desc"),
        element_id=_value(element, "resource-id"),
        package_name=_value(element, "package"),
        class_name=class_name,
        bounds=_parse_bounds(element.get("bounds")),
        clickable=_flag(element, "clickable"),
        editable=_is_editable(element, class_name),
        scrollable=_flag(element, "scrollable"),
        children=children,
    )


def _union_bounds(nodes: tuple[UiNode, ...]) -> Bounds:
    return Bounds(
        left=min(n.bounds.left for n in nodes),
        top=min(n.bounds.top for n in nodes),
        right=max(n.bounds.right for n in nodes),
        bottom=max(n.bounds.bottom for n in nodes),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_hierarchy(raw_xml: str) -> UiNode | None:
    """Parse a uiautomator XML dump into a UiNode tree.

    Returns None when the input is empty, malformed, or holds no nodes.
    Several top-level windows are wrapped in a synthetic root node.
    """
    if not raw_xml or not raw_xml.strip():
        _log("empty input")
        return None

    text = raw_xml.strip()
    # `uiautomator dump /dev/tty` prints a status line after the XML; other
    # shells prefix noise. Keep only the <hierarchy> document.
    start = text.find("<hierarchy")
    if start == -1:
        _log("no <hierarchy> tag found")
        return None
    end = text.rfind("</hierarchy>")
    text = text[start:end + len("</hierarchy>")] if end != -1 else text[start:]

    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        _log(f"XML parse failed: {exc}")
        return None

    windows = tuple(_parse_node(child) for child in root if child.tag == "node")
    if not windows:
        _log("hierarchy has no nodes")
        return None
    if len(windows) == 1:
        return windows[0]
    return UiNode(class_name="VirtualRoot", bounds=_union_bounds(windows), children=windows)


def iter_nodes(node: UiNode) -> Iterator[UiNode]:
    """Yield every node depth-first, in document order."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def node_to_dict(node: UiNode) -> dict:
    """Compact dict for prompts: empty fields and false flags are dropped."""
    entry: dict = {}
    for key, value in (
        ("class", node.class_name),
        ("text", node.text),
        ("hint", node.hint_text),
        ("desc", node.description),
        ("id", node.element_id),
        ("package", node.package_name),
    ):
        if value:
            entry[key] = value
    if not node.bounds.is_empty():
        b = node.bounds
        entry["bounds"] = [b.left, b.top, b.right, b.bottom]
    for flag in ("clickable", "editable", "scrollable"):
        if getattr(node, flag):
            entry[flag] = True
    if node.children:
        entry["children"] = [node_to_dict(child) for child in node.children]
    return entry


def to_json(node: UiNode, indent: int | None = None) -> str:
    """Serialize a snapshot for the planner prompt."""
    return json.dumps(node_to_dict(node), ensure_ascii=False, indent=indent)


def log_tree(node: UiNode, depth: int = 0) -> None:
    """Debug dump of labelled nodes, indented by depth."""
    if node.text or node.element_id or node.description:
        indent = "  " * depth
        _log(
            f"{indent}[{node.class_name}] id={node.element_id} | text={node.text} "
            f"| desc={node.description} | editable={node.editable} | clickable={node.clickable}"
        )
    for child in node.children:
        log_tree(child, depth + 1)


def count_nodes(node: UiNode) -> int:
    return sum(1 for _ in iter_nodes(node))
