"""
Navigation Controller — foreground detection, back navigation, popups, launch.

GoBack has two modes selected by the attempt count:

    short (< 10)   up to N back presses, each only while the target app is
                   in the foreground
    long  (>= 10)  poll for the app's home marker between presses; either
                   stop on it (stop_at_home) or walk out of the app entirely
                   and hand the screen back to the home app
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

from .cancellation import CancellationToken
from .config import CREDENTIAL_MANAGER_PACKAGE, AutomationConfig
from .errors import WorkflowCancelled
from .interaction import InteractionEngine
from .query import collect, find, find_first, wait_for
from .selectors import ByResourceId, Selector, SelectorRegistry
from .tree import LAUNCH_FLAGS, Node, TreeClient

logger = logging.getLogger(__name__)

LONG_MODE_THRESHOLD = 10


class NavigationController:
    """Moves the device between apps and screens for one target app."""

    def __init__(
        self,
        client: TreeClient,
        interaction: InteractionEngine,
        config: AutomationConfig,
        registry: SelectorRegistry,
        target_package: str = "",
        home_marker: Sequence[Selector] = (),
    ) -> None:
        self.client = client
        self.interaction = interaction
        self.config = config
        self.registry = registry
        self.target_package = target_package
        self.home_marker = list(home_marker)

    @property
    def timing(self):
        return self.config.timing

    async def _sleep(self, seconds: float, token: Optional[CancellationToken]) -> None:
        if token is not None:
            await token.sleep(seconds)
        else:
            await asyncio.sleep(seconds)

    # ----- Foreground -----

    def _root_in_foreground(self, root: Optional[Node], package: str) -> bool:
        if root is None:
            return False
        current = root.package or ""
        if current == CREDENTIAL_MANAGER_PACKAGE:
            return True
        return bool(package) and package in current

    async def is_app_in_foreground(self, package: Optional[str] = None) -> bool:
        """True when the active window belongs to *package* (default: the target app)."""
        package = package or self.target_package
        try:
            root = await self.client.get_root()
        except Exception as exc:
            logger.warning("Foreground check failed: %s", exc)
            return False
        return self._root_in_foreground(root, package)

    # ----- Back navigation -----

    async def go_back(
        self,
        max_attempts: int = 1,
        stop_at_home: bool = True,
        token: Optional[CancellationToken] = None,
    ) -> bool:
        """
        Navigate back. Short mode returns True after at most *max_attempts*
        presses. Long mode returns True once the home marker is reached or,
        without *stop_at_home*, once the app has been left; False when no
        tree is available or the marker never appeared.
        """
        if max_attempts < LONG_MODE_THRESHOLD:
            return await self._go_back_short(max_attempts, token)
        return await self._go_back_long(max_attempts, stop_at_home, token)

    async def _go_back_short(self, max_attempts: int, token: Optional[CancellationToken]) -> bool:
        for _ in range(max_attempts):
            if not await self.is_app_in_foreground():
                break
            await self.client.perform_global_back()
            await self._sleep(self.timing.back_press_delay, token)
        return True

    async def _go_back_long(
        self,
        max_attempts: int,
        stop_at_home: bool,
        token: Optional[CancellationToken],
    ) -> bool:
        await self._sleep(self.timing.long_back_initial, token)
        if await self.client.get_root() is None:
            logger.warning("No active window, cannot navigate back")
            return False

        marker_seen = False
        for attempt in range(max_attempts):
            await self._sleep(self.timing.long_back_poll, token)
            root = await self.client.get_root()
            if self.home_marker and find_first(root, self.home_marker) is not None:
                if stop_at_home:
                    logger.info("Reached home screen after %d back presses", attempt)
                    return True
                marker_seen = True
            if self._root_in_foreground(root, self.target_package):
                await self.client.perform_global_back()
                await self._sleep(self.timing.long_back_press_delay, token)

        if stop_at_home:
            logger.warning("Home marker not found after %d attempts", max_attempts)
            return False

        logger.debug("Leaving %s (home marker seen: %s)", self.target_package, marker_seen)
        presses = 0
        while presses < self.config.max_exit_presses and await self.is_app_in_foreground():
            await self.client.perform_global_back()
            presses += 1
            await self._sleep(self.timing.long_back_press_delay, token)
        await self.return_to_home_app()
        return True

    async def return_to_home_app(self) -> bool:
        """Relaunch the configured home app, or press Home when none is set."""
        if self.config.home_package:
            return await self.check_foreground_and_launch_app(self.config.home_package)
        return await self.press_home()

    async def press_home(self) -> bool:
        try:
            return await self.client.perform_global_home()
        except Exception as exc:
            logger.warning("Home press failed: %s", exc)
            return False

    # ----- Popups -----

    async def handle_popups(self, token: Optional[CancellationToken] = None) -> int:
        """
        Dismiss known interstitials (autofill, account picker, consent,
        notification permission, bottom sheets). Probes a fixed ordered
        list once each; a probe that errors does not stop the others.
        Returns how many were dismissed.
        """
        dismissed = 0
        await self._sleep(self.timing.popup_lead, token)
        try:
            root = await self.client.get_root()
        except Exception as exc:
            logger.warning("Error reading tree for popups: %s", exc)
            return 0
        if root is None:
            return 0

        if await self._dismiss_close_sheet(root):
            dismissed += 1
            await self._sleep(self.timing.popup_after_dismiss, token)

        for resource_id in self.registry.popup_resource_ids():
            try:
                clicked = await self.interaction.click(ByResourceId(resource_id))
            except WorkflowCancelled:
                raise
            except Exception as exc:
                logger.warning("Popup probe %s failed: %s", resource_id, exc)
                continue
            if clicked:
                logger.info("Dismissed popup %s", resource_id)
                dismissed += 1
                await self._sleep(self.timing.popup_after_dismiss, token)
        await self._sleep(self.timing.popup_trailing, token)
        return dismissed

    async def _dismiss_close_sheet(self, root: Node) -> bool:
        """Close a bottom sheet via its close button, or scroll it away."""
        sheet = self.registry.close_sheet()
        container = find(root, ByResourceId(sheet["container"])) if sheet.get("container") else None
        if container is None:
            return False
        description = sheet.get("description", "")
        close = collect(root, lambda n: n.content_desc == description, limit=1)
        if close:
            try:
                if await self.interaction.click_node(close[0]):
                    return True
            except WorkflowCancelled:
                raise
            except Exception as exc:
                logger.warning("Close-sheet click failed: %s", exc)
        try:
            await self.client.perform_scroll(container, forward=False)
        except Exception as exc:
            logger.warning("Close-sheet scroll failed: %s", exc)
        return False

    # ----- Launch -----

    async def check_foreground_and_launch_app(self, package: Optional[str] = None) -> bool:
        """Bring *package* to the front. No-op when it already is."""
        package = package or self.target_package
        if await self.is_app_in_foreground(package):
            logger.info("App %s is already in foreground", package)
            return True
        try:
            component = await self.client.resolve_launch_component(package)
            if not component:
                logger.warning("No launch intent found for %s", package)
                return False
            logger.info("Launching %s", component)
            return await self.client.start_activity(component, LAUNCH_FLAGS)
        except Exception as exc:
            logger.error("Failed to launch %s: %s", package, exc)
            return False

    async def wait_for_element(
        self,
        selector: Selector,
        timeout: Optional[float] = None,
        token: Optional[CancellationToken] = None,
    ) -> Optional[Node]:
        return await wait_for(
            self.client,
            selector,
            timeout=self.timing.element_timeout if timeout is None else timeout,
            interval=self.timing.element_poll,
            token=token,
        )
