"""
Node Query Engine — stateless searches over an accessibility tree.

All searches are depth-first pre-order from the given root. Null children
are skipped, and an error raised while visiting one subtree is logged and
that subtree skipped; the rest of the tree is still searched.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from .cancellation import CancellationToken
from .selectors import (
    ByClassAndDescription,
    ByClassName,
    ByEditableIndex,
    ByResourceId,
    ByScrollableIndex,
    ByText,
    Selector,
)
from .tree import Node, TreeClient

logger = logging.getLogger(__name__)

EDITABLE_CLASSES = ("edittext", "autocompletetextview")

Predicate = Callable[[Node], bool]


def is_editable(node: Node) -> bool:
    return (node.short_class or "").lower() in EDITABLE_CLASSES


def _text_matches(node: Node, value: str, exact: bool) -> bool:
    wanted = value.strip()
    for candidate in (node.text or "", node.content_desc or ""):
        if not candidate:
            continue
        if exact:
            if candidate.strip() == wanted:
                return True
        elif value in candidate or candidate.strip() == wanted:
            return True
    return False


def _compile(selector: Selector) -> Tuple[Predicate, int]:
    """Predicate plus the 0-based match index a selector asks for."""
    if isinstance(selector, ByText):
        return (lambda n: _text_matches(n, selector.value, selector.exact)), 0
    if isinstance(selector, ByResourceId):
        return (lambda n: n.resource_id == selector.resource_id), selector.index
    if isinstance(selector, ByClassName):
        return (lambda n: selector.name in (n.class_name or "")), selector.index
    if isinstance(selector, ByEditableIndex):
        return is_editable, selector.index
    if isinstance(selector, ByScrollableIndex):
        return (lambda n: n.scrollable), selector.index
    if isinstance(selector, ByClassAndDescription):
        return (
            lambda n: selector.class_name in (n.class_name or "")
            and (n.content_desc or "") == selector.description
        ), 0
    raise TypeError(f"Unsupported selector: {selector!r}")


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------

def _visit(node: Node, predicate: Predicate, matches: List[Node], limit: int) -> bool:
    """Pre-order walk collecting matches. Returns True once *limit* is reached."""
    if predicate(node):
        matches.append(node)
        if limit and len(matches) >= limit:
            return True
    for child in node.iter_children():
        try:
            if _visit(child, predicate, matches, limit):
                return True
        except Exception as exc:
            logger.debug("Skipping subtree under %s: %s", node.short_class, exc)
    return False


def collect(root: Optional[Node], predicate: Predicate, limit: int = 0) -> List[Node]:
    """Every node satisfying *predicate* (at most *limit* when non-zero)."""
    if root is None:
        return []
    matches: List[Node] = []
    try:
        _visit(root, predicate, matches, limit)
    except Exception as exc:
        logger.debug("Query aborted at root: %s", exc)
    return matches


def find(root: Optional[Node], selector: Selector) -> Optional[Node]:
    """The match a selector designates, or None."""
    predicate, index = _compile(selector)
    if index < 0:
        return None
    matches = collect(root, predicate, limit=index + 1)
    return matches[index] if len(matches) > index else None


def find_all(root: Optional[Node], selector: Selector) -> List[Node]:
    """Every node the selector's predicate accepts, ignoring its index."""
    predicate, _ = _compile(selector)
    return collect(root, predicate)


def find_first(root: Optional[Node], selectors: Sequence[Selector]) -> Optional[Node]:
    """First node found by trying *selectors* in order."""
    for selector in selectors:
        node = find(root, selector)
        if node is not None:
            return node
    return None


# ----- Convenience wrappers -----

def find_by_text(root: Optional[Node], text: str, exact: bool = False) -> Optional[Node]:
    return find(root, ByText(text, exact))


def find_by_resource_id(root: Optional[Node], resource_id: str, index: int = 0) -> Optional[Node]:
    return find(root, ByResourceId(resource_id, index))


def find_all_by_resource_id(root: Optional[Node], resource_id: str) -> List[Node]:
    return find_all(root, ByResourceId(resource_id))


def find_by_class_name(root: Optional[Node], name: str) -> Optional[Node]:
    return find(root, ByClassName(name))


def find_all_by_class_name(root: Optional[Node], name: str) -> List[Node]:
    return find_all(root, ByClassName(name))


def find_editable(root: Optional[Node], index: int = 0) -> Optional[Node]:
    return find(root, ByEditableIndex(index))


def find_scrollable(root: Optional[Node], index: int = 0) -> Optional[Node]:
    return find(root, ByScrollableIndex(index))


def find_by_class_and_description(root: Optional[Node], class_name: str, description: str) -> Optional[Node]:
    return find(root, ByClassAndDescription(class_name, description))


def find_focused(root: Optional[Node]) -> Optional[Node]:
    matches = collect(root, lambda n: n.focused, limit=1)
    return matches[0] if matches else None


def filter_visible(nodes: Iterable[Optional[Node]]) -> List[Node]:
    """Drop null and invisible nodes, preserving order."""
    return [n for n in nodes if n is not None and n.visible]


def texts_by_resource_id(root: Optional[Node], resource_id: str, visible_only: bool = False) -> List[str]:
    nodes = find_all_by_resource_id(root, resource_id)
    if visible_only:
        nodes = filter_visible(nodes)
    return [n.label for n in nodes]


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------

async def wait_for(
    client: TreeClient,
    selector: Union[Selector, Sequence[Selector]],
    timeout: float = 5.0,
    interval: float = 0.5,
    token: Optional[CancellationToken] = None,
) -> Optional[Node]:
    """
    Re-fetch the tree every *interval* seconds until *selector* (or any of a
    sequence of selectors) matches or *timeout* elapses. The tree is always
    checked at least once.
    """
    chain = list(selector) if isinstance(selector, (list, tuple)) else [selector]
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        if token is not None:
            token.raise_if_cancelled()
        root = await client.get_root()
        node = find_first(root, chain)
        if node is not None:
            return node
        if loop.time() >= deadline:
            logger.debug("Timed out after %.1fs waiting for %r", timeout, selector)
            return None
        if token is not None:
            await token.sleep(interval)
        else:
            await asyncio.sleep(interval)
