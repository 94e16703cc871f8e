"""Cooperative cancellation shared between a workflow and whoever started it."""

from __future__ import annotations

import asyncio
from typing import Optional

from .errors import WorkflowCancelled


class CancellationToken:
    """
    Set once by the requester, polled by the workflow at step, tab and
    record boundaries. ``sleep`` wakes early when a stop arrives so settle
    delays never hold a cancelled workflow.
    """

    def __init__(self) -> None:
        self._event: Optional[asyncio.Event] = None
        self._cancelled = False

    def _get_event(self) -> asyncio.Event:
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        return self._event

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise WorkflowCancelled()

    async def sleep(self, seconds: float) -> None:
        """Wait *seconds*, raising WorkflowCancelled as soon as a stop is requested."""
        self.raise_if_cancelled()
        if seconds <= 0:
            await asyncio.sleep(0)
        else:
            try:
                await asyncio.wait_for(self._get_event().wait(), timeout=seconds)
            except asyncio.TimeoutError:
                pass
        self.raise_if_cancelled()
