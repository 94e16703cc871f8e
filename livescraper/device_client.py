"""
DeviceNodeClient — TreeClient backed by an Android device node.

Commands travel as HTTP POST requests to the device node, which runs them
through ``adb shell`` on the paired phone:

    livescraper  -->  HTTP  -->  device node  -->  adb shell
                                                   (uiautomator, input, am, wm)

The tree is read with ``uiautomator dump`` and parsed locally. Node actions
are carried out as input events at the node's bounds: a native click is a
tap on a clickable node, set-text focuses the field, clears it and types,
and scrolling is a swipe inside the container.

Usage:
    client = DeviceNodeClient(node_url="http://192.168.1.50:18789")
    await client.connect()
    root = await client.get_root()
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, Optional, Tuple

import aiohttp

from .config import DEFAULT_NODE_NAME, DEFAULT_NODE_URL
from .errors import DeviceNodeError
from .query import is_editable
from .tree import LAUNCH_FLAGS, GestureStroke, Node, TreeClient, parse_hierarchy

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TIMEOUT = 30
DEFAULT_RESOLUTION = (1080, 2400)
DEFAULT_SDK_LEVEL = 0
UI_DUMP_DEVICE_PATH = "/sdcard/livescraper_ui.xml"

KEYCODE_HOME = 3
KEYCODE_BACK = 4
KEYCODE_DEL = 67
KEYCODE_MOVE_END = 123


def escape_input_text(text: str) -> str:
    """Escape *text* for ``adb shell input text``. Spaces become ``%s``."""
    escaped = text.replace("\\", "\\\\")
    escaped = escaped.replace(" ", "%s")
    for ch in ("'", '"', "&", "<", ">", "|", ";", "(", ")"):
        escaped = escaped.replace(ch, "\\" + ch)
    return escaped


class DeviceNodeClient(TreeClient):
    """
    Accessibility tree client that drives a phone through the device node's
    HTTP API.

    Example:
        client = DeviceNodeClient(node_url="http://192.168.1.50:18789")
        if await client.connect():
            root = await client.get_root()
            await client.perform_global_back()
    """

    def __init__(
        self,
        node_url: str = DEFAULT_NODE_URL,
        node_name: str = DEFAULT_NODE_NAME,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ) -> None:
        self.node_url = node_url.rstrip("/")
        self.node_name = node_name
        self.command_timeout = command_timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._connected: bool = False
        self._device_resolution: Tuple[int, int] = DEFAULT_RESOLUTION
        self._sdk_level: int = DEFAULT_SDK_LEVEL

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Lazily create and return the HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.command_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    # ----- Node communication -----

    async def _invoke_node(self, command: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Send a command to the device node and return the response.

        The node API expects POST /api/nodes/invoke with:
            { "node": "<name>", "command": "<cmd>", "params": {...} }
        """
        session = await self._ensure_session()
        payload = {
            "node": self.node_name,
            "command": command,
            "params": params or {},
        }
        url = f"{self.node_url}/api/nodes/invoke"

        logger.debug("Node invoke: %s %s", command, params or {})

        try:
            async with session.post(url, json=payload) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise DeviceNodeError(f"Node returned HTTP {resp.status}: {body[:500]}", resp.status)
                data = await resp.json()
                if data.get("error"):
                    raise DeviceNodeError(f"Node error: {data['error']}")
                return data
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise DeviceNodeError(f"Failed to reach node at {url}: {exc}") from exc

    async def _adb_shell(self, cmd: str, timeout: Optional[float] = None) -> str:
        """Execute a raw ADB shell command on the device and return stdout."""
        result = await self._invoke_node("adb.shell", {"command": cmd, "timeout": timeout or self.command_timeout})
        return result.get("stdout", "")

    async def _shell_ok(self, cmd: str) -> bool:
        """Run *cmd*, reporting failure instead of raising."""
        try:
            await self._adb_shell(cmd)
            return True
        except Exception as exc:
            logger.warning("Shell command failed (%s): %s", cmd, exc)
            return False

    # ----- Connection & device info -----

    async def connect(self) -> bool:
        """
        Verify the node is reachable and a device is attached.
        Updates resolution and SDK level from the device.
        """
        try:
            result = await self._invoke_node("device.status")
            self._connected = result.get("connected", False)

            if self._connected:
                wm_output = await self._adb_shell("wm size")
                match = re.search(r"(\d+)x(\d+)", wm_output)
                if match:
                    self._device_resolution = (int(match.group(1)), int(match.group(2)))
                sdk_output = await self._adb_shell("getprop ro.build.version.sdk")
                if sdk_output.strip().isdigit():
                    self._sdk_level = int(sdk_output.strip())
                logger.info(
                    "Connected to device. Resolution: %dx%d, SDK %d",
                    self._device_resolution[0],
                    self._device_resolution[1],
                    self._sdk_level,
                )
            else:
                logger.warning("Node reachable but no device connected")

            return self._connected
        except Exception as exc:
            logger.error("Connection failed: %s", exc)
            self._connected = False
            return False

    @property
    def resolution(self) -> Tuple[int, int]:
        """Device screen resolution (width, height)."""
        return self._device_resolution

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def sdk_level(self) -> int:
        return self._sdk_level

    async def display_size(self) -> Tuple[int, int]:
        return self._device_resolution

    # ----- Tree -----

    async def get_root(self) -> Optional[Node]:
        """Dump the UI hierarchy via ``uiautomator dump`` and parse it."""
        try:
            await self._adb_shell(f"uiautomator dump {UI_DUMP_DEVICE_PATH}")
            result = await self._invoke_node("file.read", {"path": UI_DUMP_DEVICE_PATH})
        except Exception as exc:
            logger.warning("UI dump failed: %s", exc)
            return None
        xml_content = result.get("data", "")
        if not xml_content:
            logger.warning("UI dump returned empty content")
            return None
        return parse_hierarchy(xml_content)

    # ----- Node actions -----

    async def perform_click(self, node: Node) -> bool:
        if not (node.clickable and node.enabled):
            return False
        x, y = node.center
        return await self._shell_ok(f"input tap {x} {y}")

    async def perform_set_text(self, node: Node, text: str) -> bool:
        if not is_editable(node):
            return False
        if not text.isascii():
            logger.warning("adb input cannot type non-ASCII text (%d chars)", len(text))
            return False
        x, y = node.center
        if not await self._shell_ok(f"input tap {x} {y}"):
            return False
        if node.text:
            deletes = " ".join([str(KEYCODE_DEL)] * len(node.text))
            await self._shell_ok(f"input keyevent {KEYCODE_MOVE_END} {deletes}")
        if not text:
            return True
        return await self._shell_ok(f"input text '{escape_input_text(text)}'")

    async def perform_scroll(self, node: Node, forward: bool = True) -> bool:
        if not node.scrollable:
            return False
        left, top, right, bottom = node.bounds
        x = (left + right) // 2
        near = top + (bottom - top) // 4
        far = top + 3 * (bottom - top) // 4
        y1, y2 = (far, near) if forward else (near, far)
        return await self._shell_ok(f"input swipe {x} {y1} {x} {y2} 400")

    async def perform_global_back(self) -> bool:
        return await self._shell_ok(f"input keyevent {KEYCODE_BACK}")

    async def perform_global_home(self) -> bool:
        return await self._shell_ok(f"input keyevent {KEYCODE_HOME}")

    async def dispatch_gesture(self, stroke: GestureStroke) -> bool:
        (x1, y1), (x2, y2) = stroke.start, stroke.end
        if stroke.is_tap:
            return await self._shell_ok(f"input tap {x1} {y1}")
        return await self._shell_ok(f"input swipe {x1} {y1} {x2} {y2} {stroke.duration_ms}")

    # ----- App management -----

    async def resolve_launch_component(self, package: str) -> Optional[str]:
        try:
            output = await self._adb_shell(
                f"cmd package resolve-activity --brief -c android.intent.category.LAUNCHER {package}"
            )
        except Exception as exc:
            logger.warning("Could not resolve launcher activity for %s: %s", package, exc)
            return None
        for line in reversed(output.strip().splitlines()):
            line = line.strip()
            if line.startswith(package + "/"):
                return line
        return None

    async def start_activity(self, component: str, flags: int = LAUNCH_FLAGS) -> bool:
        try:
            output = await self._adb_shell(f"am start -n {component} -f {flags:#x}")
        except Exception as exc:
            logger.warning("am start failed for %s: %s", component, exc)
            return False
        if "Error" in output:
            logger.warning("am start rejected %s: %s", component, output.strip()[:200])
            return False
        return True
