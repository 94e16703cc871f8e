"""
Avatar enrichment — look up a scraped user's profile picture on the public
profile page.

    GET {base_url}/user/<user_id>
        -> first <div class="img-preview"> ... </div>
        -> first <img src="..."> inside it
        -> URL without its query string

Enrichment is optional and best effort: it can be switched off, requests
are spaced by a minimum interval, and every miss (non-200, undecodable
body, no preview block, no image, network error, timeout) yields no URL.
"""

from __future__ import annotations

import asyncio
import logging
import time
from html.parser import HTMLParser
from typing import List, Optional, Tuple
from urllib.parse import quote

import aiohttp

from .config import DEFAULT_PROFILE_BASE_URL

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10.0
USER_AGENT = "Mozilla/5.0 (Linux; Android 13) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Mobile Safari/537.36"

PREVIEW_CLASS = "img-preview"


class _AvatarExtractor(HTMLParser):
    """Find the first <img src> inside the first img-preview <div>."""

    def __init__(self) -> None:
        super().__init__()
        self.src: Optional[str] = None
        self._depth = 0
        self._seen_preview = False

    def handle_starttag(self, tag: str, attrs: List[Tuple[str, Optional[str]]]) -> None:
        if self.src is not None:
            return
        attr_dict = dict(attrs)
        if tag == "div":
            if self._depth:
                self._depth += 1
            elif not self._seen_preview and PREVIEW_CLASS in (attr_dict.get("class") or "").split():
                self._seen_preview = True
                self._depth = 1
        elif tag == "img" and self._depth:
            src = (attr_dict.get("src") or "").strip()
            if src:
                self.src = src

    def handle_endtag(self, tag: str) -> None:
        if tag == "div" and self._depth:
            self._depth -= 1


def extract_avatar_url(page: str) -> Optional[str]:
    """Avatar URL from a profile page, query string stripped, or None."""
    if not page:
        return None
    parser = _AvatarExtractor()
    parser.feed(page)
    parser.close()
    if not parser.src:
        return None
    return parser.src.split("?", 1)[0] or None

class AvatarEnricher:
    """Rate-limited profile-page fetcher."""

    def __init__(
        self,
        base_url: str = DEFAULT_PROFILE_BASE_URL,
        enabled: bool = True,
        min_interval: float = 1.0,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.enabled = enabled
        self.min_interval = min_interval
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._lock = asyncio.Lock()
        self._last_request = 0.0

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"User-Agent": USER_AGENT},
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def _throttle(self) -> None:
        async with self._lock:
            wait = self.min_interval - (time.monotonic() - self._last_request)
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_request = time.monotonic()

    def profile_url(self, user_id: str) -> str:
        return f"{self.base_url}/user/{quote(user_id, safe='')}"

    async def fetch_avatar_url(self, user_id: str) -> Optional[str]:
        if not self.enabled or not user_id:
            return None
        await self._throttle()
        url = self.profile_url(user_id)
        try:
            session = await self._ensure_session()
            async with session.get(url, timeout=aiohttp.ClientTimeout(total=self.timeout)) as resp:
                if resp.status != 200:
                    logger.debug("Profile page %s returned HTTP %d", url, resp.status)
                    return None
                page = await resp.text(errors="replace")
            avatar = extract_avatar_url(page)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("Avatar lookup failed for %s: %s", user_id, exc)
            return None
        except Exception as exc:
            logger.warning("Unreadable profile page for %s: %s", user_id, exc)
            return None
        if avatar is None:
            logger.debug("No avatar found on %s", url)
        return avatar
