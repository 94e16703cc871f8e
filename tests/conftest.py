"""
Shared fixtures for the livescraper test suite.

Provides a scripted in-memory accessibility tree (FakeTreeClient), node
builders, and aiohttp mocks so that all tests run WITHOUT a device or
network.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest

from livescraper.config import AutomationConfig, Timing
from livescraper.query import is_editable
from livescraper.selectors import SelectorRegistry
from livescraper.session import SessionManager
from livescraper.tree import LAUNCH_FLAGS, GestureStroke, Node, TreeClient

LAUNCHER_PACKAGE = "com.android.launcher3"
BIGO_PACKAGE = "sg.bigo.live"
FACEBOOK_PACKAGE = "com.facebook.katana"


# ---------------------------------------------------------------------------
# Node builders
# ---------------------------------------------------------------------------

def n(
    cls: str = "android.widget.TextView",
    text: str = "",
    rid: str = "",
    desc: str = "",
    bounds: Tuple[int, int, int, int] = (0, 0, 100, 100),
    children: Optional[List[Optional[Node]]] = None,
    **flags,
) -> Node:
    """Short-hand Node constructor."""
    return Node(
        class_name=cls,
        text=text,
        resource_id=rid,
        content_desc=desc,
        bounds=bounds,
        children=list(children or []),
        **flags,
    )


def screen(package: str, *children: Node) -> Node:
    """Root of a full-screen window for *package*."""
    root = Node(class_name="android.widget.FrameLayout", package=package, bounds=(0, 0, 1080, 2400))
    for child in children:
        root.add_child(child)
    return root


def node_key(node: Node) -> str:
    return node.resource_id or node.text or node.content_desc or node.class_name


def node_keys(node: Node) -> List[str]:
    return [k for k in (node.resource_id, node.text, node.content_desc) if k]


# ---------------------------------------------------------------------------
# FakeTreeClient
# ---------------------------------------------------------------------------

class FakeTreeClient(TreeClient):
    """
    Screen-stack simulation of a device.

    ``screens`` maps a screen name to a factory building a fresh tree on
    every read. ``transitions`` maps (screen, node key) to the next screen;
    clicking a node pushes that screen, or pops the stack for "@back".
    Back pops the stack (or only hides the keyboard after text entry);
    an empty stack shows the launcher.
    """

    def __init__(
        self,
        screens: Dict[str, Callable[[], Node]],
        start: Optional[List[str]] = None,
        transitions: Optional[Dict[Tuple[str, str], str]] = None,
        launchable: Optional[Dict[str, str]] = None,
        sdk: int = 30,
        size: Tuple[int, int] = (1080, 2400),
    ) -> None:
        self.screens = screens
        self.stack: List[str] = list(start or [])
        self.transitions = transitions or {}
        self.launchable = launchable or {}
        self._sdk = sdk
        self.size = size
        self.actions: List[tuple] = []
        self.typed: Dict[str, str] = {}
        self.keyboard_shown = False
        self.window_available = True
        self.reject_native_clicks = False

    # ----- State helpers -----

    @property
    def current(self) -> Optional[str]:
        return self.stack[-1] if self.stack else None

    def count(self, kind: str) -> int:
        return sum(1 for a in self.actions if a[0] == kind)

    def clicked(self) -> List[str]:
        return [a[1] for a in self.actions if a[0] in ("click", "tap_hit")]

    def _transition(self, node: Node) -> Optional[str]:
        for key in node_keys(node):
            target = self.transitions.get((self.current, key))
            if target is not None:
                return target
        return None

    def _apply(self, node: Node) -> None:
        target = self._transition(node)
        if target is None:
            return
        if target == "@back":
            if self.stack:
                self.stack.pop()
        else:
            self.stack.append(target)

    def _hit(self, root: Node, x: int, y: int) -> Optional[Node]:
        found = None
        left, top, right, bottom = root.bounds
        if left <= x <= right and top <= y <= bottom:
            if self._transition(root) is not None:
                found = root
            for child in root.iter_children():
                deeper = self._hit(child, x, y)
                if deeper is not None:
                    found = deeper
        return found

    # ----- TreeClient -----

    @property
    def sdk_level(self) -> int:
        return self._sdk

    async def get_root(self) -> Optional[Node]:
        if not self.window_available:
            return None
        if not self.stack:
            return screen(LAUNCHER_PACKAGE, n(text="Launcher"))
        return self.screens[self.current]()

    async def perform_click(self, node: Node) -> bool:
        if self.reject_native_clicks or not node.clickable:
            self.actions.append(("click_rejected", node_key(node)))
            return False
        self.actions.append(("click", node_key(node)))
        self._apply(node)
        return True

    async def perform_set_text(self, node: Node, text: str) -> bool:
        if not is_editable(node):
            return False
        self.actions.append(("set_text", node_key(node), text))
        self.typed[node_key(node)] = text
        self.keyboard_shown = True
        return True

    async def perform_scroll(self, node: Node, forward: bool = True) -> bool:
        self.actions.append(("scroll", node_key(node), forward))
        return node.scrollable

    async def perform_global_back(self) -> bool:
        self.actions.append(("back",))
        if self.keyboard_shown:
            self.keyboard_shown = False
        elif self.stack:
            self.stack.pop()
        return True

    async def perform_global_home(self) -> bool:
        self.actions.append(("home",))
        self.stack.clear()
        return True

    async def dispatch_gesture(self, stroke: GestureStroke) -> bool:
        if stroke.is_tap:
            self.actions.append(("tap", stroke.start))
            root = await self.get_root()
            hit = self._hit(root, *stroke.start) if root is not None else None
            if hit is not None:
                self.actions.append(("tap_hit", node_key(hit)))
                self._apply(hit)
        else:
            self.actions.append(("swipe", stroke.start, stroke.end, stroke.duration_ms))
        return True

    async def display_size(self) -> Tuple[int, int]:
        return self.size

    async def resolve_launch_component(self, package: str) -> Optional[str]:
        if package in self.launchable:
            return f"{package}/.MainActivity"
        return None

    async def start_activity(self, component: str, flags: int = LAUNCH_FLAGS) -> bool:
        self.actions.append(("start", component, flags))
        package = component.split("/", 1)[0]
        self.stack = [self.launchable[package]]
        return True


# ---------------------------------------------------------------------------
# Bigo Live screens
# ---------------------------------------------------------------------------

BIGO_IDS = {
    "search_button": "sg.bigo.live:id/iv_search",
    "search_input": "sg.bigo.live:id/searchInput",
    "search_confirm": "sg.bigo.live:id/searchOrCancel",
    "tab_title": "sg.bigo.live:id/uiTabTitle",
    "search_result": "sg.bigo.live:id/avatar_container",
    "contrib_entry": "sg.bigo.live:id/fl_contrib_entry",
    "user_name": "sg.bigo.live:id/tv_name",
    "contribution_amount": "sg.bigo.live:id/tv_contribution",
    "user_level": "sg.bigo.live:id/tv_user_level",
    "bigo_id": "sg.bigo.live:id/tv_bigo_id",
}


def ranking_row(i: int, name: str, visible: bool = True) -> Node:
    top = 400 + i * 150
    return n(
        "android.widget.LinearLayout",
        bounds=(0, top, 1080, top + 140),
        visible=visible,
        children=[
            n(text=name, rid=BIGO_IDS["user_name"], bounds=(200, top, 700, top + 70), clickable=True, visible=visible),
            n(text=f"{(i + 1) * 1000}", rid=BIGO_IDS["contribution_amount"], bounds=(800, top, 1000, top + 70), visible=visible),
            n(text=f"Lv.{30 - i}", rid=BIGO_IDS["user_level"], bounds=(200, top + 70, 400, top + 140), visible=visible),
        ],
    )


def build_bigo_device(names: List[str], hidden: int = 2, missing_id: Optional[List[int]] = None) -> FakeTreeClient:
    """Bigo Live from home screen to ranking list with one profile per name."""
    missing_id = missing_id or []
    tab_titles = ["Daily", "Weekly", "Monthly", "Overall"]

    screens: Dict[str, Callable[[], Node]] = {
        "home": lambda: screen(BIGO_PACKAGE, n("android.widget.ImageView", rid=BIGO_IDS["search_button"], bounds=(980, 80, 1060, 160), clickable=True)),
        "search": lambda: screen(
            BIGO_PACKAGE,
            n("android.widget.EditText", rid=BIGO_IDS["search_input"], bounds=(100, 80, 800, 160), clickable=True),
            n(text="Search", rid=BIGO_IDS["search_confirm"], bounds=(850, 80, 1060, 160), clickable=True),
        ),
        "results": lambda: screen(BIGO_PACKAGE, n("android.widget.FrameLayout", rid=BIGO_IDS["search_result"], bounds=(0, 300, 300, 600), clickable=True)),
        "host": lambda: screen(BIGO_PACKAGE, n("android.widget.FrameLayout", rid=BIGO_IDS["contrib_entry"], bounds=(0, 900, 1080, 1000), clickable=True)),
        "ranking": lambda: screen(
            BIGO_PACKAGE,
            n("android.widget.LinearLayout", bounds=(0, 200, 1080, 300), children=[
                n(text=title, rid=BIGO_IDS["tab_title"], bounds=(i * 270, 200, (i + 1) * 270, 300), clickable=True)
                for i, title in enumerate(tab_titles)
            ]),
            n("androidx.recyclerview.widget.RecyclerView", bounds=(0, 350, 1080, 2400), scrollable=True, children=[
                ranking_row(i, name, visible=True) for i, name in enumerate(names)
            ] + [
                ranking_row(len(names) + j, f"hidden{j}", visible=False) for j in range(hidden)
            ]),
        ),
    }
    transitions: Dict[Tuple[str, str], str] = {
        ("home", BIGO_IDS["search_button"]): "search",
        ("search", BIGO_IDS["search_confirm"]): "results",
        ("results", BIGO_IDS["search_result"]): "host",
        ("host", BIGO_IDS["contrib_entry"]): "ranking",
    }
    for i, name in enumerate(names):
        profile = f"profile_{i}"
        if i in missing_id:
            screens[profile] = lambda: screen(BIGO_PACKAGE, n(text="Profile"))
        else:
            screens[profile] = (lambda i=i: screen(BIGO_PACKAGE, n(text=f"ID: uid{i}", rid=BIGO_IDS["bigo_id"])))
        transitions[("ranking", name)] = profile

    return FakeTreeClient(
        screens,
        start=[],
        transitions=transitions,
        launchable={BIGO_PACKAGE: "home"},
    )


# ---------------------------------------------------------------------------
# Facebook screens
# ---------------------------------------------------------------------------

def build_facebook_device() -> FakeTreeClient:
    screens: Dict[str, Callable[[], Node]] = {
        "feed": lambda: screen(FACEBOOK_PACKAGE, n(text="What's on your mind?", bounds=(100, 300, 900, 400), clickable=True)),
        "composer": lambda: screen(
            FACEBOOK_PACKAGE,
            n("android.widget.AutoCompleteTextView", rid="com.facebook.katana:id/composer_text", bounds=(0, 300, 1080, 900), clickable=True),
            n(text="Photo/video", bounds=(0, 1000, 540, 1100), clickable=True),
            n("android.widget.Button", text="NEXT", bounds=(900, 80, 1060, 160), clickable=True),
        ),
        "gallery": lambda: screen(
            FACEBOOK_PACKAGE,
            n(text="Select photo", bounds=(0, 300, 540, 600), clickable=True),
            n(text="Select video", bounds=(540, 300, 1080, 600), clickable=True),
        ),
        "share": lambda: screen(FACEBOOK_PACKAGE, n("android.widget.Button", text="POST", bounds=(900, 80, 1060, 160), clickable=True)),
    }
    transitions = {
        ("feed", "What's on your mind?"): "composer",
        ("composer", "Photo/video"): "gallery",
        ("gallery", "Select photo"): "@back",
        ("gallery", "Select video"): "@back",
        ("composer", "NEXT"): "share",
        ("share", "POST"): "feed",
    }
    return FakeTreeClient(
        screens,
        start=[],
        transitions=transitions,
        launchable={FACEBOOK_PACKAGE: "feed"},
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def config():
    """Config with every settle delay at zero."""
    return AutomationConfig(timing=Timing.instant(), enrich_avatars=False)


@pytest.fixture
def registry():
    return SelectorRegistry.load()


@pytest.fixture
def bigo_device():
    return build_bigo_device(["alice", "bob", "carol", "dave", "erin"])


@pytest.fixture
def facebook_device():
    return build_facebook_device()


@pytest.fixture
def session_manager(config, registry):
    return SessionManager(config, registry)


@pytest.fixture
def mock_aiohttp_response():
    """Create a mock aiohttp response factory."""

    def _make(status=200, text=""):
        resp = AsyncMock()
        resp.status = status
        resp.text = AsyncMock(return_value=text)
        resp.__aenter__ = AsyncMock(return_value=resp)
        resp.__aexit__ = AsyncMock(return_value=False)
        return resp

    return _make


@pytest.fixture
def mock_aiohttp_session(mock_aiohttp_response):
    """Create a mock aiohttp ClientSession."""
    session = AsyncMock()
    session.closed = False
    session.get = MagicMock(return_value=mock_aiohttp_response(200, ""))
    session.close = AsyncMock()
    return session
