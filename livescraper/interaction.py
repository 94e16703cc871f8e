"""
Interaction Engine — clicks, text entry and gestures with fallbacks.

Every call re-reads the tree. Results are booleans: False means the target
was not found or the platform rejected the action; nothing here raises for
those cases. Synthesized gestures need API 24+ and fail closed below it.
A True from a gesture only means the dispatch was accepted, not that the
app reacted.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .config import MIN_GESTURE_SDK, Timing
from .query import collect, filter_visible, find, find_all_by_resource_id, find_editable, find_scrollable
from .selectors import ByResourceId, Selector
from .tree import GestureStroke, Node, TreeClient

logger = logging.getLogger(__name__)

# Screen fractions for the fixed swipes
SWIPE_X = 0.5
SWIPE_LOW_Y = 0.78
SWIPE_HIGH_Y = 0.35
SWIPE_H_Y = 0.5
SWIPE_RIGHT_X = 0.9
SWIPE_LEFT_X = 0.1

# Region searched by click_top_right_button
TOP_RIGHT_MIN_X = 0.75
TOP_RIGHT_MAX_Y = 0.15

TOP_RIGHT_CLASSES = ("Button", "ImageButton", "ImageView", "TextView")


class InteractionEngine:
    """Acts on the live tree through a TreeClient."""

    def __init__(self, client: TreeClient, timing: Optional[Timing] = None) -> None:
        self.client = client
        self.timing = timing or Timing()

    # ----- Gestures -----

    def gestures_supported(self) -> bool:
        return self.client.sdk_level >= MIN_GESTURE_SDK

    async def _dispatch(self, stroke: GestureStroke) -> bool:
        if not self.gestures_supported():
            logger.warning("Gestures need API %d, device reports %d", MIN_GESTURE_SDK, self.client.sdk_level)
            return False
        try:
            return await self.client.dispatch_gesture(stroke)
        except Exception as exc:
            logger.warning("Gesture dispatch failed: %s", exc)
            return False

    async def tap(self, x: int, y: int) -> bool:
        return await self._dispatch(GestureStroke((x, y), (x, y), self.timing.tap_duration_ms))

    async def swipe(self, x1: int, y1: int, x2: int, y2: int, duration_ms: int = 300) -> bool:
        return await self._dispatch(GestureStroke((x1, y1), (x2, y2), duration_ms))

    async def tap_fraction(self, fx: float, fy: float) -> bool:
        """Tap at a fraction of the display, e.g. (0.9, 0.2) near the top right edge."""
        width, height = await self.client.display_size()
        return await self.tap(int(width * fx), int(height * fy))

    async def click_screen_horizontal_end(self) -> bool:
        return await self.tap_fraction(0.9, 0.2)

    async def swipe_up(self, duration_ms: int = 400) -> bool:
        """Finger moves up; content scrolls down."""
        width, height = await self.client.display_size()
        x = int(width * SWIPE_X)
        return await self.swipe(x, int(height * SWIPE_LOW_Y), x, int(height * SWIPE_HIGH_Y), duration_ms)

    async def swipe_down(self, duration_ms: int = 400) -> bool:
        width, height = await self.client.display_size()
        x = int(width * SWIPE_X)
        return await self.swipe(x, int(height * SWIPE_HIGH_Y), x, int(height * SWIPE_LOW_Y), duration_ms)

    async def swipe_right_to_left(self, duration_ms: int = 300) -> bool:
        width, height = await self.client.display_size()
        y = int(height * SWIPE_H_Y)
        return await self.swipe(int(width * SWIPE_RIGHT_X), y, int(width * SWIPE_LEFT_X), y, duration_ms)

    # ----- Clicking -----

    async def _native_click(self, node: Node) -> bool:
        try:
            return await self.client.perform_click(node)
        except Exception as exc:
            logger.debug("Native click raised on %s: %s", node.short_class, exc)
            return False

    async def click_node(self, node: Optional[Node], prefer_gesture: bool = False) -> bool:
        """
        Click with fallbacks: native click, then the parent's native click
        when the node itself is not clickable, then a tap at the node's center.
        With *prefer_gesture* the tap is tried first.
        """
        if node is None:
            return False
        if prefer_gesture and await self.tap(*node.center):
            return True
        if await self._native_click(node):
            return True
        if not node.clickable and node.parent is not None:
            if await self._native_click(node.parent):
                logger.debug("Clicked parent of %s", node.short_class)
                return True
        if not prefer_gesture:
            return await self.tap(*node.center)
        return False

    async def click(self, selector: Selector, prefer_gesture: bool = False) -> bool:
        root = await self.client.get_root()
        node = find(root, selector)
        if node is None:
            logger.debug("Nothing to click for %r", selector)
            return False
        return await self.click_node(node, prefer_gesture)

    async def click_first(self, selectors: Sequence[Selector], prefer_gesture: bool = False) -> bool:
        """Try each selector in order until one click succeeds."""
        for selector in selectors:
            if await self.click(selector, prefer_gesture):
                logger.debug("Clicked %r", selector)
                return True
        return False

    async def click_top_right_button(self) -> bool:
        """Click the right-most, then top-most, clickable control in the top right corner."""
        root = await self.client.get_root()
        if root is None:
            return False
        width, height = await self.client.display_size()
        min_x = int(width * TOP_RIGHT_MIN_X)
        max_y = int(height * TOP_RIGHT_MAX_Y)

        candidates = [
            n for n in collect(root, lambda n: n.clickable and n.visible)
            if n.center[0] > min_x and n.center[1] < max_y and n.short_class in TOP_RIGHT_CLASSES
        ]
        if not candidates:
            logger.debug("No buttons in top-right corner (x > %d, y < %d)", min_x, max_y)
            return False
        candidates.sort(key=lambda n: (-n.center[0], n.center[1]))
        return await self.click_node(candidates[0])

    # ----- Text -----

    async def set_text(self, node: Optional[Node], text: str) -> bool:
        if node is None:
            return False
        try:
            return await self.client.perform_set_text(node, text)
        except Exception as exc:
            logger.warning("Set text failed on %s: %s", node.short_class, exc)
            return False

    async def input_text(self, text: str, index: int = 0) -> bool:
        """Set text on the *index*-th editable field."""
        root = await self.client.get_root()
        return await self.set_text(find_editable(root, index), text)

    async def input_text_by_resource_id(self, resource_id: str, text: str) -> bool:
        root = await self.client.get_root()
        return await self.set_text(find(root, ByResourceId(resource_id)), text)

    async def get_text(self, selector: Selector) -> Optional[str]:
        root = await self.client.get_root()
        node = find(root, selector)
        return node.label if node is not None else None

    async def get_texts(self, resource_id: str, visible_only: bool = True) -> List[str]:
        root = await self.client.get_root()
        nodes = find_all_by_resource_id(root, resource_id)
        if visible_only:
            nodes = filter_visible(nodes)
        return [n.label for n in nodes]

    # ----- Scrolling -----

    async def scroll_forward(self, use_second: bool = False) -> bool:
        """Native scroll-forward on the first (or second) scrollable container."""
        root = await self.client.get_root()
        container = find_scrollable(root, 1 if use_second else 0)
        if container is None:
            logger.debug("No scrollable container found")
            return False
        try:
            return await self.client.perform_scroll(container, forward=True)
        except Exception as exc:
            logger.warning("Scroll failed: %s", exc)
            return False
