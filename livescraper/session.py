"""
Automation session lifecycle.

The platform notifies us when the accessibility service connects, when
tree events arrive, and when it is interrupted or disconnected. A single
``AutomationSession`` exists between connect and interrupt; workflows get
it injected rather than reaching for a global. Actions queued while no
session is available run on the next tree event.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, List, Optional

from .config import AutomationConfig
from .errors import SessionUnavailable
from .interaction import InteractionEngine
from .navigation import NavigationController
from .selectors import SelectorRegistry
from .tree import TreeClient
from .utils import _now_iso

logger = logging.getLogger(__name__)

QueuedAction = Callable[["AutomationSession"], Awaitable[Any]]


class AutomationSession:
    """Live handle on the tree client plus the engines built over it."""

    def __init__(self, client: TreeClient, config: AutomationConfig, registry: SelectorRegistry) -> None:
        self.client = client
        self.config = config
        self.registry = registry
        self.interaction = InteractionEngine(client, config.timing)
        self.created_at = _now_iso()
        self._valid = True

    @property
    def valid(self) -> bool:
        return self._valid

    def invalidate(self) -> None:
        self._valid = False

    def navigator(self, app: str) -> NavigationController:
        """Navigation controller targeting *app* from the selector registry."""
        return NavigationController(
            self.client,
            self.interaction,
            self.config,
            self.registry,
            target_package=self.registry.package(app),
            home_marker=self.registry.selectors(app, "home_marker"),
        )


class SessionManager:
    """Receives platform lifecycle callbacks and owns the current session."""

    def __init__(self, config: AutomationConfig, registry: SelectorRegistry) -> None:
        self.config = config
        self.registry = registry
        self._session: Optional[AutomationSession] = None
        self._queued: Deque[QueuedAction] = deque()
        self._interrupt_listeners: List[Callable[[], Any]] = []

    @property
    def current(self) -> Optional[AutomationSession]:
        return self._session

    def require(self) -> AutomationSession:
        if self._session is None or not self._session.valid:
            raise SessionUnavailable("Accessibility service is not connected")
        return self._session

    def add_interrupt_listener(self, listener: Callable[[], Any]) -> None:
        self._interrupt_listeners.append(listener)

    def enqueue(self, action: QueuedAction) -> None:
        """Run *action* with the session on the next tree event."""
        self._queued.append(action)

    @property
    def pending(self) -> int:
        return len(self._queued)

    # ----- Platform callbacks -----

    def on_connect(self, client: TreeClient) -> AutomationSession:
        if self._session is not None:
            self._session.invalidate()
        self._session = AutomationSession(client, self.config, self.registry)
        logger.info("Accessibility session connected")
        return self._session

    async def on_tree_event(self, event: Any = None) -> int:
        """Drain queued actions. Returns how many ran."""
        if self._session is None or not self._session.valid:
            return 0
        ran = 0
        while self._queued:
            action = self._queued.popleft()
            try:
                await action(self._session)
            except Exception as exc:
                logger.warning("Queued action failed: %s", exc)
            ran += 1
        return ran

    def on_interrupt(self) -> None:
        logger.warning("Accessibility session interrupted")
        self._drop_session()

    def on_disconnect(self) -> None:
        logger.info("Accessibility session disconnected")
        self._drop_session()
        self._queued.clear()

    def _drop_session(self) -> None:
        if self._session is not None:
            self._session.invalidate()
        self._session = None
        for listener in list(self._interrupt_listeners):
            try:
                listener()
            except Exception as exc:
                logger.warning("Interrupt listener failed: %s", exc)
