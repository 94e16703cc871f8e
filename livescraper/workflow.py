"""
Workflow step machinery.

A workflow is a linear list of named steps. Each step is an async callable
returning a ``WorkflowStepResult``; a failed result stops the workflow with
its message. The runner checks for cancellation before and after every
step, turns unexpected exceptions into a failure, and always runs the
cleanup action (which itself never raises) before returning.

    steps = [
        Step("launch", launch_target, settle=3.0),
        Step("navigate_home", go_home, settle=2.0),
    ]
    outcome = await WorkflowRunner("post", token, cleanup=leave_app).run(steps)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .cancellation import CancellationToken
from .errors import WorkflowCancelled
from .utils import _now_iso

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "stopped by user"


class WorkflowState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class WorkflowStepResult:
    success: bool
    message: str = ""

    @classmethod
    def ok(cls, message: str = "") -> WorkflowStepResult:
        return cls(True, message)

    @classmethod
    def fail(cls, message: str) -> WorkflowStepResult:
        return cls(False, message)


StepAction = Callable[[], Awaitable[WorkflowStepResult]]


@dataclass
class Step:
    name: str
    run: StepAction
    settle: float = 0.0


@dataclass
class WorkflowOutcome:
    """What the caller gets back: succeeded, failed with a reason, or cancelled."""
    workflow: str
    state: WorkflowState
    message: str = ""
    steps_completed: List[str] = field(default_factory=list)
    document: Optional[Dict[str, Any]] = None
    started_at: str = ""
    finished_at: str = ""

    @property
    def succeeded(self) -> bool:
        return self.state == WorkflowState.SUCCEEDED

    @property
    def cancelled(self) -> bool:
        return self.state == WorkflowState.CANCELLED

    @property
    def failed(self) -> bool:
        return self.state == WorkflowState.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow": self.workflow,
            "state": self.state.value,
            "message": self.message,
            "steps_completed": list(self.steps_completed),
            "document": self.document,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


class WorkflowRunner:
    """Runs a step list once. Not reusable."""

    def __init__(
        self,
        name: str,
        token: CancellationToken,
        cleanup: Optional[Callable[[], Awaitable[Any]]] = None,
    ) -> None:
        self.name = name
        self.token = token
        self.cleanup = cleanup
        self.state = WorkflowState.NOT_STARTED
        self.current_step: Optional[str] = None

    async def run(self, steps: List[Step]) -> WorkflowOutcome:
        outcome = WorkflowOutcome(workflow=self.name, state=WorkflowState.RUNNING, started_at=_now_iso())
        self.state = WorkflowState.RUNNING
        try:
            message = ""
            for step in steps:
                self.token.raise_if_cancelled()
                self.current_step = step.name
                logger.info("[%s] step: %s", self.name, step.name)
                result = await step.run()
                if not result.success:
                    logger.warning("[%s] step %s failed: %s", self.name, step.name, result.message)
                    outcome.state = WorkflowState.FAILED
                    outcome.message = result.message
                    return outcome
                outcome.steps_completed.append(step.name)
                message = result.message or message
                await self.token.sleep(step.settle)
            outcome.state = WorkflowState.SUCCEEDED
            outcome.message = message
            return outcome
        except WorkflowCancelled:
            logger.info("[%s] cancelled during %s", self.name, self.current_step)
            outcome.state = WorkflowState.CANCELLED
            outcome.message = CANCELLED_MESSAGE
            return outcome
        except Exception as exc:
            logger.exception("[%s] error during %s", self.name, self.current_step)
            outcome.state = WorkflowState.FAILED
            outcome.message = f"Error: {exc}"
            return outcome
        finally:
            await self._run_cleanup()
            self.state = outcome.state
            self.current_step = None
            outcome.finished_at = _now_iso()
            logger.info("[%s] finished: %s %s", self.name, outcome.state.value, outcome.message)

    async def _run_cleanup(self) -> None:
        if self.cleanup is None:
            return
        try:
            await self.cleanup()
        except Exception as exc:
            logger.warning("[%s] cleanup failed: %s", self.name, exc)
