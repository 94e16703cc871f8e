"""
AutomationService — the boundary the interactive surface talks to.

At most one workflow runs at a time. It runs as an asyncio task so the
caller's loop stays free to deliver a stop request; ``stop`` sets the
workflow's cancellation token and the workflow winds down at its next
checkpoint, running its cleanup on the way out. Completion callbacks are
handed back to the caller's loop (or to a custom dispatcher, e.g. a GUI
toolkit's "run on main thread").

Usage:
    service = AutomationService(sessions, config, enricher)
    task = service.start_scraping("RA_H2019", on_complete=show_result)
    ...
    service.stop()                 # or service.toggle_scraping(...) again
    outcome = await task
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from .cancellation import CancellationToken
from .config import AutomationConfig
from .enrichment import AvatarEnricher
from .errors import WorkflowAlreadyRunning
from .posting import PostingWorkflow, PostRequest
from .scraping import ScrapingWorkflow
from .session import AutomationSession, SessionManager
from .workflow import CANCELLED_MESSAGE, WorkflowOutcome, WorkflowState

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[WorkflowOutcome], Any]
Dispatcher = Callable[[CompletionCallback, WorkflowOutcome], Any]


class AutomationService:
    """Starts, stops and reports on the single running workflow."""

    def __init__(
        self,
        sessions: SessionManager,
        config: AutomationConfig,
        enricher: Optional[AvatarEnricher] = None,
        dispatcher: Optional[Dispatcher] = None,
    ) -> None:
        self.sessions = sessions
        self.config = config
        self.enricher = enricher
        self._dispatcher = dispatcher
        self._task: Optional[asyncio.Task] = None
        self._token: Optional[CancellationToken] = None
        self._running: Optional[str] = None
        self.last_outcome: Optional[WorkflowOutcome] = None
        sessions.add_interrupt_listener(self.stop)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def running_workflow(self) -> Optional[str]:
        return self._running if self.is_running else None

    # ----- Start / stop -----

    def start_scraping(self, query: str, on_complete: Optional[CompletionCallback] = None) -> asyncio.Task:
        enricher = self.enricher if self.config.enrich_avatars else None

        def factory(session: AutomationSession, token: CancellationToken) -> ScrapingWorkflow:
            return ScrapingWorkflow(session, token, query, enricher=enricher)

        return self._start(ScrapingWorkflow.name, factory, on_complete)

    def start_posting(self, request: PostRequest, on_complete: Optional[CompletionCallback] = None) -> asyncio.Task:
        def factory(session: AutomationSession, token: CancellationToken) -> PostingWorkflow:
            return PostingWorkflow(session, token, request)

        return self._start(PostingWorkflow.name, factory, on_complete)

    def toggle_scraping(self, query: str, on_complete: Optional[CompletionCallback] = None) -> Optional[asyncio.Task]:
        """Start scraping, or request a stop if a workflow is already running."""
        if self.is_running:
            self.stop()
            return None
        return self.start_scraping(query, on_complete)

    def toggle_posting(self, request: PostRequest, on_complete: Optional[CompletionCallback] = None) -> Optional[asyncio.Task]:
        if self.is_running:
            self.stop()
            return None
        return self.start_posting(request, on_complete)

    def stop(self) -> bool:
        """Request cancellation of the running workflow. False when idle."""
        if not self.is_running or self._token is None:
            return False
        logger.info("Stop requested for %s", self._running)
        self._token.cancel()
        return True

    async def run_scraping(self, query: str) -> WorkflowOutcome:
        return await self.start_scraping(query)

    async def run_posting(self, request: PostRequest) -> WorkflowOutcome:
        return await self.start_posting(request)

    # ----- Internals -----

    def _start(self, name: str, factory, on_complete: Optional[CompletionCallback]) -> asyncio.Task:
        if self.is_running:
            raise WorkflowAlreadyRunning(self._running or "unknown")
        session = self.sessions.require()
        loop = asyncio.get_running_loop()
        self._token = CancellationToken()
        self._running = name
        workflow = factory(session, self._token)
        self._task = loop.create_task(self._run(name, workflow, loop, on_complete))
        logger.info("Started %s workflow", name)
        return self._task

    async def _run(self, name: str, workflow, loop: asyncio.AbstractEventLoop, on_complete) -> WorkflowOutcome:
        try:
            outcome = await workflow.run()
        except asyncio.CancelledError:
            outcome = WorkflowOutcome(workflow=name, state=WorkflowState.CANCELLED, message=CANCELLED_MESSAGE)
            self._finish(outcome, loop, on_complete)
            raise
        self._finish(outcome, loop, on_complete)
        return outcome

    def _finish(self, outcome: WorkflowOutcome, loop: asyncio.AbstractEventLoop, on_complete) -> None:
        self.last_outcome = outcome
        self._token = None
        self._running = None
        if on_complete is None:
            return
        if self._dispatcher is not None:
            self._dispatcher(on_complete, outcome)
        else:
            loop.call_soon_threadsafe(on_complete, outcome)
