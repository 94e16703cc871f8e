"""
Scraping workflow — a Bigo Live host's contribution ranking as JSON.

Steps:
    launch               bring Bigo Live to the front
    navigate_home        back out until the search button shows
    dismiss_popups       interstitials
    open_search          search button
    enter_query          search input (falls back to the first editable)
    hide_keyboard        one back press
    confirm_search       search / confirm button
    open_result          first search result
    open_contributions   contribution entry (id, text id, then label)
    scrape_tabs          Daily, Weekly, Monthly, Overall

Per tab, up to N visible entries are read top to bottom. For each entry
the name, amount and level are read off the list, the profile is opened
to read the user id, and one back press returns to the list. A tab that
fails yields an empty list; the rest still run.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from .cancellation import CancellationToken
from .enrichment import AvatarEnricher
from .errors import WorkflowCancelled
from .models import ScrapeAggregator, ScrapedRecord, TabConfig, default_tabs
from .query import filter_visible, find_all_by_resource_id, find_first
from .session import AutomationSession
from .workflow import Step, WorkflowOutcome, WorkflowRunner, WorkflowStepResult

logger = logging.getLogger(__name__)

BIGO = "bigo"

UNICODE_ESCAPE_PATTERN = re.compile(r"\\u([0-9a-fA-F]{4})")


def decode_unicode_escapes(text: str) -> str:
    """Turn literal ``\\uXXXX`` sequences into characters, joining surrogate pairs.

    An unpaired surrogate becomes U+FFFD so the result is always valid UTF-8.
    """
    if not text or "\\u" not in text:
        return text or ""
    decoded = UNICODE_ESCAPE_PATTERN.sub(lambda m: chr(int(m.group(1), 16)), text)
    return decoded.encode("utf-16", "surrogatepass").decode("utf-16", "replace")


def strip_identifier_prefix(raw: str) -> str:
    """``"ID: RA_H2019"`` -> ``"RA_H2019"``. Text without a label passes through trimmed."""
    text = (raw or "").strip()
    if ":" in text:
        text = text.split(":", 1)[1].strip()
    return text


class ScrapingWorkflow:
    name = "scrape"

    def __init__(
        self,
        session: AutomationSession,
        token: CancellationToken,
        query: str,
        enricher: Optional[AvatarEnricher] = None,
        tabs: Optional[List[TabConfig]] = None,
    ) -> None:
        self.session = session
        self.token = token
        self.query = query
        self.enricher = enricher
        self.config = session.config
        self.registry = session.registry
        self.client = session.client
        self.interaction = session.interaction
        self.nav = session.navigator(BIGO)
        self.tabs = tabs if tabs is not None else default_tabs(self.config)
        self.aggregator = ScrapeAggregator(self.tabs)

    def _selectors(self, affordance: str):
        return self.registry.selectors(BIGO, affordance)

    def _id(self, key: str) -> str:
        return self.registry.resource_id(BIGO, key)

    def steps(self) -> List[Step]:
        timing = self.config.timing
        steps = [
            Step("launch", self._launch, timing.launch_settle),
            Step("navigate_home", self._navigate_home, timing.home_settle),
        ]
        if self.config.dismiss_popups:
            steps.append(Step("dismiss_popups", self._dismiss_popups))
        steps += [
            Step("open_search", self._open_search, timing.step_settle),
            Step("enter_query", self._enter_query, timing.short_settle),
            Step("hide_keyboard", self._hide_keyboard, timing.short_settle),
            Step("confirm_search", self._confirm_search, timing.step_settle),
            Step("open_result", self._open_result, timing.step_settle),
            Step("open_contributions", self._open_contributions, timing.step_settle),
            Step("scrape_tabs", self._scrape_tabs),
        ]
        return steps

    async def run(self) -> WorkflowOutcome:
        runner = WorkflowRunner(self.name, self.token, cleanup=self._cleanup)
        outcome = await runner.run(self.steps())
        if outcome.succeeded or self.aggregator.has_results:
            outcome.document = self.aggregator.build()
        return outcome

    # ----- Navigation steps -----

    async def _launch(self) -> WorkflowStepResult:
        if not await self.nav.check_foreground_and_launch_app():
            return WorkflowStepResult.fail("Failed to launch Bigo Live app")
        return WorkflowStepResult.ok()

    async def _navigate_home(self) -> WorkflowStepResult:
        await self.nav.go_back(10, stop_at_home=True, token=self.token)
        return WorkflowStepResult.ok()

    async def _dismiss_popups(self) -> WorkflowStepResult:
        await self.nav.handle_popups(self.token)
        return WorkflowStepResult.ok()

    async def _open_search(self) -> WorkflowStepResult:
        if not await self.interaction.click_first(self._selectors("search_button")):
            return WorkflowStepResult.fail("Could not find search button")
        return WorkflowStepResult.ok()

    async def _enter_query(self) -> WorkflowStepResult:
        root = await self.client.get_root()
        field = find_first(root, self._selectors("search_input"))
        if not await self.interaction.set_text(field, self.query):
            return WorkflowStepResult.fail("Could not enter search query")
        return WorkflowStepResult.ok()

    async def _hide_keyboard(self) -> WorkflowStepResult:
        await self.nav.go_back(1, token=self.token)
        return WorkflowStepResult.ok()

    async def _confirm_search(self) -> WorkflowStepResult:
        if not await self.interaction.click_first(self._selectors("search_confirm")):
            return WorkflowStepResult.fail("Could not find search confirm button")
        return WorkflowStepResult.ok()

    async def _open_result(self) -> WorkflowStepResult:
        if not await self.interaction.click_first(self._selectors("first_result")):
            return WorkflowStepResult.fail(f"No search result for '{self.query}'")
        return WorkflowStepResult.ok()

    async def _open_contributions(self) -> WorkflowStepResult:
        if not await self.interaction.click_first(self._selectors("contribution_entry")):
            return WorkflowStepResult.fail("Could not find contribution list")
        return WorkflowStepResult.ok()

    # ----- Tabs -----

    async def _scrape_tabs(self) -> WorkflowStepResult:
        for tab in self.tabs:
            self.token.raise_if_cancelled()
            records: List[ScrapedRecord] = []
            try:
                if not await self.interaction.click_first(self._selectors(tab.affordance)):
                    logger.warning("Could not open tab %s", tab.name)
                    self.aggregator.mark_failed(tab.name)
                    continue
                await self.token.sleep(self.config.timing.tab_settle)
                await self.scrape_tab(tab, records)
            except WorkflowCancelled:
                if records:
                    self.aggregator.record_tab(tab.name, records)
                raise
            except Exception:
                logger.exception("Tab %s failed", tab.name)
                self.aggregator.mark_failed(tab.name)
                continue
            self.aggregator.record_tab(tab.name, records)
            logger.info("Tab %s: %d records", tab.name, len(records))

        summary = self.aggregator.build()["summary"]
        return WorkflowStepResult.ok(
            f"Scraped {summary['total_users_scraped']} users from {summary['total_tabs_scraped']} tabs"
        )

    async def _visible(self, key: str):
        root = await self.client.get_root()
        return filter_visible(find_all_by_resource_id(root, self._id(key)))

    async def scrape_tab(self, tab: TabConfig, records: List[ScrapedRecord]) -> List[ScrapedRecord]:
        """Append up to ``tab.max_items`` records for the open tab to *records*."""
        available = len(await self._visible("user_name"))
        count = min(tab.max_items, available)
        logger.info("Tab %s: %d visible entries, reading %d", tab.name, available, count)

        for position in range(count):
            self.token.raise_if_cancelled()

            # Node references die with every navigation; read the list fresh.
            root = await self.client.get_root()
            names = filter_visible(find_all_by_resource_id(root, self._id("user_name")))
            if position >= len(names):
                logger.warning("Tab %s: list shrank to %d entries", tab.name, len(names))
                break
            amounts = filter_visible(find_all_by_resource_id(root, self._id("contribution_amount")))
            levels = filter_visible(find_all_by_resource_id(root, self._id("user_level")))

            name_node = names[position]
            username = decode_unicode_escapes(name_node.label)
            amount = amounts[position].label if position < len(amounts) else ""
            level = levels[position].label if position < len(levels) else ""

            user_id = await self._read_user_id(name_node, username)

            avatar = ""
            if user_id and self.enricher is not None:
                try:
                    avatar = await self.enricher.fetch_avatar_url(user_id) or ""
                except WorkflowCancelled:
                    raise
                except Exception:
                    logger.warning("Avatar lookup for %s failed", user_id, exc_info=True)

            records.append(ScrapedRecord(
                user_id=user_id,
                username=username,
                amount=amount,
                rank_position=position + 1,
                user_level=level,
                profile_picture_url=avatar,
            ))
        return records

    async def _read_user_id(self, name_node, username: str) -> str:
        """Open the profile behind *name_node*, read its id, and come back."""
        if not await self.interaction.click_node(name_node):
            logger.warning("Could not open profile of %s", username)
            return ""
        field = await self.nav.wait_for_element(self._selectors("user_id_field"), token=self.token)
        user_id = ""
        if field is None:
            logger.warning("No user id on profile of %s", username)
        else:
            user_id = strip_identifier_prefix(field.label)
        await self.nav.go_back(1, token=self.token)
        await self.token.sleep(self.config.timing.short_settle)
        return user_id

    async def _cleanup(self) -> None:
        await self.nav.go_back(10, stop_at_home=False)
