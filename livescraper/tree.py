"""
Accessibility tree model and the client interface every backend implements.

A ``Node`` is a reference into one snapshot of the on-screen UI tree. The
tree is owned by the target app and can change at any moment, so callers
re-fetch the root after every interaction instead of holding nodes across
steps.

``TreeClient`` is the boundary to the platform: it hands out tree snapshots
and performs actions (native click, set-text, scroll, global back/home,
gesture dispatch, app launch). ``parse_hierarchy`` turns a ``uiautomator
dump`` XML document into a ``Node`` tree for backends that work from dumps.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Android Intent flags used to bring the target app to the front
FLAG_ACTIVITY_NEW_TASK = 0x10000000
FLAG_ACTIVITY_CLEAR_TOP = 0x04000000
FLAG_ACTIVITY_SINGLE_TOP = 0x20000000
FLAG_ACTIVITY_REORDER_TO_FRONT = 0x00020000

LAUNCH_FLAGS = (
    FLAG_ACTIVITY_NEW_TASK
    | FLAG_ACTIVITY_CLEAR_TOP
    | FLAG_ACTIVITY_SINGLE_TOP
    | FLAG_ACTIVITY_REORDER_TO_FRONT
)

BOUNDS_PATTERN = re.compile(r"\[(-?\d+),(-?\d+)\]\[(-?\d+),(-?\d+)\]")


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class Node:
    """One element of the accessibility tree."""
    class_name: str = ""
    text: str = ""
    content_desc: str = ""
    resource_id: str = ""
    package: str = ""
    bounds: Tuple[int, int, int, int] = (0, 0, 0, 0)  # left, top, right, bottom
    clickable: bool = False
    enabled: bool = True
    focused: bool = False
    scrollable: bool = False
    visible: bool = True
    children: List[Optional[Node]] = field(default_factory=list, repr=False)
    parent: Optional[Node] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        for child in self.children:
            if child is not None:
                child.parent = self

    @property
    def center(self) -> Tuple[int, int]:
        """Return the center coordinates of this node."""
        left, top, right, bottom = self.bounds
        return ((left + right) // 2, (top + bottom) // 2)

    @property
    def width(self) -> int:
        return self.bounds[2] - self.bounds[0]

    @property
    def height(self) -> int:
        return self.bounds[3] - self.bounds[1]

    @property
    def short_class(self) -> str:
        return self.class_name.rsplit(".", 1)[-1]

    @property
    def label(self) -> str:
        """Visible text, falling back to the content description."""
        return self.text or self.content_desc

    def add_child(self, child: Node) -> Node:
        child.parent = self
        self.children.append(child)
        return child

    def iter_children(self) -> Iterator[Node]:
        for child in self.children:
            if child is not None:
                yield child


@dataclass
class GestureStroke:
    """A single-finger stroke. A tap is a stroke whose start equals its end."""
    start: Tuple[int, int]
    end: Tuple[int, int]
    duration_ms: int = 100

    @property
    def is_tap(self) -> bool:
        return self.start == self.end


# ---------------------------------------------------------------------------
# TreeClient
# ---------------------------------------------------------------------------

class TreeClient(ABC):
    """
    Platform accessibility backend.

    Every method re-reads live state; nothing returned here is cached by
    the caller across interactions.
    """

    @property
    @abstractmethod
    def sdk_level(self) -> int:
        """Platform API level of the device."""

    @abstractmethod
    async def get_root(self) -> Optional[Node]:
        """Root of the active window's tree, or None when no window is available."""

    @abstractmethod
    async def perform_click(self, node: Node) -> bool:
        """Native click action on *node*."""

    @abstractmethod
    async def perform_set_text(self, node: Node, text: str) -> bool:
        """Native set-text action on an editable *node*."""

    @abstractmethod
    async def perform_scroll(self, node: Node, forward: bool = True) -> bool:
        """Native scroll-forward / scroll-backward on a scrollable container."""

    @abstractmethod
    async def perform_global_back(self) -> bool:
        """System back."""

    @abstractmethod
    async def perform_global_home(self) -> bool:
        """System home."""

    @abstractmethod
    async def dispatch_gesture(self, stroke: GestureStroke) -> bool:
        """Inject a synthesized stroke. Returns whether dispatch was accepted."""

    @abstractmethod
    async def display_size(self) -> Tuple[int, int]:
        """Display (width, height) in pixels."""

    @abstractmethod
    async def resolve_launch_component(self, package: str) -> Optional[str]:
        """Launcher component ``pkg/.Activity`` for *package*, or None."""

    @abstractmethod
    async def start_activity(self, component: str, flags: int = LAUNCH_FLAGS) -> bool:
        """Start *component* with the given Intent flags."""

    async def close(self) -> None:
        """Release any resources held by the backend."""


# ---------------------------------------------------------------------------
# Hierarchy parsing
# ---------------------------------------------------------------------------

def _parse_bounds(raw: str) -> Tuple[int, int, int, int]:
    match = BOUNDS_PATTERN.search(raw or "")
    if not match:
        return (0, 0, 0, 0)
    return tuple(int(v) for v in match.groups())  # type: ignore[return-value]


def _node_from_element(elem: ET.Element) -> Node:
    attrs = elem.attrib
    bounds = _parse_bounds(attrs.get("bounds", ""))
    node = Node(
        class_name=attrs.get("class", ""),
        text=attrs.get("text", ""),
        content_desc=attrs.get("content-desc", ""),
        resource_id=attrs.get("resource-id", ""),
        package=attrs.get("package", ""),
        bounds=bounds,
        clickable=attrs.get("clickable") == "true",
        enabled=attrs.get("enabled", "true") == "true",
        focused=attrs.get("focused") == "true",
        scrollable=attrs.get("scrollable") == "true",
    )
    if "visible-to-user" in attrs:
        node.visible = attrs["visible-to-user"] == "true"
    else:
        node.visible = node.width > 0 and node.height > 0
    for child in elem.findall("node"):
        node.add_child(_node_from_element(child))
    return node


def parse_hierarchy(xml_content: str) -> Optional[Node]:
    """
    Parse a ``uiautomator dump`` document into a Node tree.

    Multiple top-level windows are wrapped in a synthetic root that carries
    the package of the first window. Returns None on empty or malformed input.
    """
    if not xml_content or not xml_content.strip():
        return None
    start = xml_content.find("<")
    try:
        doc = ET.fromstring(xml_content[start:] if start > 0 else xml_content)
    except ET.ParseError as exc:
        logger.warning("Could not parse UI hierarchy: %s", exc)
        return None

    if doc.tag == "node":
        return _node_from_element(doc)

    windows = [_node_from_element(elem) for elem in doc.findall("node")]
    if not windows:
        return None
    if len(windows) == 1:
        return windows[0]
    return Node(class_name="hierarchy", package=windows[0].package, children=windows)


def format_tree(node: Optional[Node], depth: int = 0) -> str:
    """Indented one-line-per-node listing of a tree ("view source")."""
    if node is None:
        return ""
    indent = "  " * depth
    lines = [
        f"{indent}Class: {node.class_name}, Text: {node.text}, "
        f"ContentDesc: {node.content_desc}, ResourceId: {node.resource_id}, "
        f"ChildCount: {len(node.children)}"
    ]
    for child in node.iter_children():
        lines.append(format_tree(child, depth + 1))
    return "\n".join(lines)
