"""
Posting workflow — publish a caption, optionally with the newest gallery
photo or video, to Facebook.

Steps:
    launch            bring Facebook to the front
    navigate_home     back out to the news feed
    dismiss_popups    autofill / permission / consent interstitials
    open_composer     "Create post", falling back to "What's on your mind?"
    attach_media      "Photo/video" then the photo or video entry (optional)
    focus_text_field  first AutoCompleteTextView
    enter_caption     set text on the first editable field
    next              "NEXT" (exact)
    publish           "POST" (exact), falling back to "Share now" (exact);
                      skipped in test mode

Cleanup always walks back out of the app.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from .cancellation import CancellationToken
from .query import find_first
from .session import AutomationSession
from .workflow import Step, WorkflowOutcome, WorkflowRunner, WorkflowStepResult

logger = logging.getLogger(__name__)

FACEBOOK = "facebook"


@dataclass
class PostRequest:
    caption: str
    with_media: bool = False
    is_video: bool = False


class PostingWorkflow:
    name = "post"

    def __init__(self, session: AutomationSession, token: CancellationToken, request: PostRequest) -> None:
        self.session = session
        self.token = token
        self.request = request
        self.config = session.config
        self.interaction = session.interaction
        self.nav = session.navigator(FACEBOOK)

    def _selectors(self, affordance: str):
        return self.session.registry.selectors(FACEBOOK, affordance)

    def steps(self) -> List[Step]:
        timing = self.config.timing
        steps = [
            Step("launch", self._launch, timing.launch_settle),
            Step("navigate_home", self._navigate_home, timing.home_settle),
        ]
        if self.config.dismiss_popups:
            steps.append(Step("dismiss_popups", self._dismiss_popups))
        steps.append(Step("open_composer", self._open_composer, timing.step_settle))
        if self.request.with_media:
            steps.append(Step("attach_media", self._attach_media, timing.step_settle))
        steps += [
            Step("focus_text_field", self._focus_text_field, timing.short_settle),
            Step("enter_caption", self._enter_caption, timing.short_settle),
            Step("next", self._next, timing.step_settle),
            Step("publish", self._publish, timing.step_settle),
        ]
        return steps

    async def run(self) -> WorkflowOutcome:
        runner = WorkflowRunner(self.name, self.token, cleanup=self._cleanup)
        return await runner.run(self.steps())

    # ----- Steps -----

    async def _launch(self) -> WorkflowStepResult:
        if not await self.nav.check_foreground_and_launch_app():
            return WorkflowStepResult.fail("Failed to launch Facebook app")
        return WorkflowStepResult.ok()

    async def _navigate_home(self) -> WorkflowStepResult:
        await self.nav.go_back(10, stop_at_home=True, token=self.token)
        return WorkflowStepResult.ok()

    async def _dismiss_popups(self) -> WorkflowStepResult:
        await self.nav.handle_popups(self.token)
        return WorkflowStepResult.ok()

    async def _open_composer(self) -> WorkflowStepResult:
        if not await self.interaction.click_first(self._selectors("compose")):
            return WorkflowStepResult.fail("Could not find create post button")
        return WorkflowStepResult.ok()

    async def _attach_media(self) -> WorkflowStepResult:
        if not await self.interaction.click_first(self._selectors("attach_media")):
            logger.warning("Could not find Photo/video button, posting without media")
            return WorkflowStepResult.ok()
        await self.token.sleep(self.config.timing.step_settle)
        variant = "select_video" if self.request.is_video else "select_photo"
        if not await self.interaction.click_first(self._selectors(variant)):
            return WorkflowStepResult.fail("Could not select media from gallery")
        return WorkflowStepResult.ok()

    async def _focus_text_field(self) -> WorkflowStepResult:
        if not await self.interaction.click_first(self._selectors("primary_text_field")):
            logger.debug("No primary text field to focus")
        return WorkflowStepResult.ok()

    async def _enter_caption(self) -> WorkflowStepResult:
        root = await self.session.client.get_root()
        field = find_first(root, self._selectors("caption_field"))
        if not await self.interaction.set_text(field, self.request.caption):
            return WorkflowStepResult.fail("Could not enter caption text")
        return WorkflowStepResult.ok()

    async def _next(self) -> WorkflowStepResult:
        if not await self.interaction.click_first(self._selectors("next")):
            return WorkflowStepResult.fail("Could not find NEXT button")
        return WorkflowStepResult.ok()

    async def _publish(self) -> WorkflowStepResult:
        if self.config.test_mode:
            logger.info("Test mode: leaving the post unpublished")
            return WorkflowStepResult.ok("Test mode: post prepared but not published")
        if not await self.interaction.click_first(self._selectors("publish")):
            return WorkflowStepResult.fail("Could not find POST/SHARE button")
        return WorkflowStepResult.ok("Post published")

    async def _cleanup(self) -> None:
        await self.nav.go_back(10, stop_at_home=False)
