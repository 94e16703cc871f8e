"""Test workflow — step runner, outcomes, cancellation and cleanup."""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from livescraper.cancellation import CancellationToken
from livescraper.errors import WorkflowCancelled
from livescraper.workflow import (
    CANCELLED_MESSAGE,
    Step,
    WorkflowOutcome,
    WorkflowRunner,
    WorkflowState,
    WorkflowStepResult,
)


def ok_step(name, message=""):
    return Step(name, AsyncMock(return_value=WorkflowStepResult.ok(message)))


class TestStepResult:
    def test_ok(self):
        result = WorkflowStepResult.ok()
        assert result.success is True
        assert result.message == ""

    def test_fail(self):
        result = WorkflowStepResult.fail("Could not find NEXT button")
        assert result.success is False
        assert result.message == "Could not find NEXT button"


class TestOutcome:
    def test_to_dict(self):
        outcome = WorkflowOutcome(workflow="post", state=WorkflowState.FAILED, message="nope")
        d = outcome.to_dict()
        assert d["state"] == "failed"
        assert d["workflow"] == "post"
        assert d["document"] is None
        assert outcome.failed and not outcome.succeeded and not outcome.cancelled

    def test_state_values(self):
        assert {s.value for s in WorkflowState} == {
            "not_started", "running", "succeeded", "failed", "cancelled",
        }


class TestWorkflowRunner:
    @pytest.mark.asyncio
    async def test_all_steps_succeed(self):
        cleanup = AsyncMock()
        runner = WorkflowRunner("demo", CancellationToken(), cleanup=cleanup)
        outcome = await runner.run([ok_step("one"), ok_step("two", "done")])

        assert outcome.state == WorkflowState.SUCCEEDED
        assert outcome.message == "done"
        assert outcome.steps_completed == ["one", "two"]
        assert outcome.started_at and outcome.finished_at
        assert runner.state == WorkflowState.SUCCEEDED
        cleanup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_step_stops(self):
        cleanup = AsyncMock()
        third = ok_step("three")
        steps = [
            ok_step("one"),
            Step("two", AsyncMock(return_value=WorkflowStepResult.fail("Could not find search button"))),
            third,
        ]
        outcome = await WorkflowRunner("demo", CancellationToken(), cleanup=cleanup).run(steps)

        assert outcome.state == WorkflowState.FAILED
        assert outcome.message == "Could not find search button"
        assert outcome.steps_completed == ["one"]
        third.run.assert_not_awaited()
        cleanup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_exception_becomes_failure(self):
        cleanup = AsyncMock()
        steps = [Step("boom", AsyncMock(side_effect=RuntimeError("tree went away")))]
        outcome = await WorkflowRunner("demo", CancellationToken(), cleanup=cleanup).run(steps)

        assert outcome.state == WorkflowState.FAILED
        assert outcome.message == "Error: tree went away"
        cleanup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancelled_before_first_step(self):
        token = CancellationToken()
        token.cancel()
        first = ok_step("one")
        cleanup = AsyncMock()
        outcome = await WorkflowRunner("demo", token, cleanup=cleanup).run([first])

        assert outcome.state == WorkflowState.CANCELLED
        assert outcome.message == CANCELLED_MESSAGE
        first.run.assert_not_awaited()
        cleanup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancelled_inside_step(self):
        token = CancellationToken()

        async def cancelling():
            token.cancel()
            return WorkflowStepResult.ok()

        second = ok_step("two")
        outcome = await WorkflowRunner("demo", token).run([Step("one", cancelling, settle=5.0), second])

        assert outcome.state == WorkflowState.CANCELLED
        assert outcome.steps_completed == ["one"]
        second.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_step_raising_cancelled(self):
        steps = [Step("one", AsyncMock(side_effect=WorkflowCancelled()))]
        outcome = await WorkflowRunner("demo", CancellationToken()).run(steps)
        assert outcome.cancelled

    @pytest.mark.asyncio
    async def test_cleanup_exception_swallowed(self):
        cleanup = AsyncMock(side_effect=RuntimeError("back failed"))
        outcome = await WorkflowRunner("demo", CancellationToken(), cleanup=cleanup).run([ok_step("one")])
        assert outcome.succeeded
        cleanup.assert_awaited_once()


class TestCancellationToken:
    @pytest.mark.asyncio
    async def test_sleep_wakes_on_cancel(self):
        token = CancellationToken()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, token.cancel)
        started = loop.time()
        with pytest.raises(WorkflowCancelled):
            await token.sleep(10)
        assert loop.time() - started < 5

    @pytest.mark.asyncio
    async def test_sleep_completes(self):
        token = CancellationToken()
        await token.sleep(0)
        await token.sleep(0.01)
        assert token.cancelled is False

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel()
        with pytest.raises(WorkflowCancelled, match="stopped by user"):
            token.raise_if_cancelled()
