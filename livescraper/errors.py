"""Exception types raised across livescraper."""

from __future__ import annotations


class AutomationError(Exception):
    """Base class for automation errors."""


class WorkflowCancelled(AutomationError):
    """Raised at a cancellation checkpoint once a stop was requested."""

    def __init__(self, message: str = "stopped by user"):
        super().__init__(message)


class SessionUnavailable(AutomationError):
    """No live accessibility session (service not connected or interrupted)."""


class WorkflowAlreadyRunning(AutomationError):
    """A second workflow was started while one is still in progress."""

    def __init__(self, running: str):
        self.running = running
        super().__init__(f"Workflow '{running}' is already running")


class DeviceNodeError(AutomationError):
    """The device node returned an error or could not be reached."""

    def __init__(self, message: str, status: int = 0):
        self.status = status
        super().__init__(message)
