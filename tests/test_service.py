"""Test service — single running workflow, stop and toggle, completion callbacks."""
from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from livescraper.errors import SessionUnavailable, WorkflowAlreadyRunning
from livescraper.posting import PostRequest
from livescraper.service import AutomationService
from livescraper.session import SessionManager
from livescraper.workflow import WorkflowState


@pytest.fixture
def service(session_manager, config, bigo_device):
    session_manager.on_connect(bigo_device)
    return AutomationService(session_manager, config)


class TestServiceRuns:
    @pytest.mark.asyncio
    async def test_run_scraping(self, service):
        outcome = await service.run_scraping("RA_H2019")
        assert outcome.state == WorkflowState.SUCCEEDED
        assert outcome.document["summary"]["total_users_scraped"] == 14
        assert service.last_outcome is outcome
        assert service.is_running is False
        assert service.running_workflow is None

    @pytest.mark.asyncio
    async def test_running_workflow_name(self, service):
        task = service.start_scraping("RA_H2019")
        assert service.is_running is True
        assert service.running_workflow == "scrape"
        await task

    @pytest.mark.asyncio
    async def test_second_start_rejected(self, service):
        task = service.start_scraping("RA_H2019")
        with pytest.raises(WorkflowAlreadyRunning) as exc_info:
            service.start_posting(PostRequest("Hi"))
        assert exc_info.value.running == "scrape"
        await task

    @pytest.mark.asyncio
    async def test_no_session(self, config, registry):
        service = AutomationService(SessionManager(config, registry), config)
        with pytest.raises(SessionUnavailable):
            service.start_scraping("RA_H2019")
        assert service.is_running is False


class TestServiceStop:
    @pytest.mark.asyncio
    async def test_stop_when_idle(self, service):
        assert service.stop() is False

    @pytest.mark.asyncio
    async def test_toggle_starts_then_stops(self, service, bigo_device):
        task = service.toggle_scraping("RA_H2019")
        assert task is not None
        assert service.toggle_scraping("RA_H2019") is None
        outcome = await task
        assert outcome.state == WorkflowState.CANCELLED
        assert outcome.message == "stopped by user"
        assert bigo_device.actions[-1] == ("home",)

    @pytest.mark.asyncio
    async def test_toggle_posting_stops_running_scrape(self, service):
        task = service.start_scraping("RA_H2019")
        assert service.toggle_posting(PostRequest("Hi")) is None
        assert (await task).cancelled

    @pytest.mark.asyncio
    async def test_interrupt_stops_workflow(self, service, session_manager):
        task = service.start_scraping("RA_H2019")
        session_manager.on_interrupt()
        assert (await task).cancelled

    @pytest.mark.asyncio
    async def test_task_cancel(self, service):
        task = service.start_scraping("RA_H2019")
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert service.last_outcome.cancelled
        assert service.is_running is False


class TestServiceCallbacks:
    @pytest.mark.asyncio
    async def test_callback_on_loop(self, service):
        callback = MagicMock()
        outcome = await service.start_scraping("RA_H2019", on_complete=callback)
        await asyncio.sleep(0)
        callback.assert_called_once_with(outcome)

    @pytest.mark.asyncio
    async def test_custom_dispatcher(self, session_manager, config, bigo_device):
        session_manager.on_connect(bigo_device)
        dispatched = []
        service = AutomationService(
            session_manager, config, dispatcher=lambda cb, outcome: dispatched.append((cb, outcome)),
        )
        callback = MagicMock()
        outcome = await service.start_scraping("RA_H2019", on_complete=callback)
        assert dispatched == [(callback, outcome)]
        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_reported_to_callback(self, service):
        callback = MagicMock()
        task = service.toggle_scraping("RA_H2019", on_complete=callback)
        service.stop()
        outcome = await task
        await asyncio.sleep(0)
        callback.assert_called_once_with(outcome)
        assert outcome.cancelled
