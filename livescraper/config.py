"""
Runtime configuration for livescraper.

Everything is read from environment variables with sensible defaults so the
CLI works out of the box against a local device node:

    LIVESCRAPER_NODE_URL          device node base URL (http://localhost:18789)
    LIVESCRAPER_NODE_NAME         node name on that host (android)
    LIVESCRAPER_TEST_MODE         "1" suppresses the final post click and
                                  shrinks the Overall tab to 3 records
    LIVESCRAPER_LOCALES           label lookup order, comma separated (en,de)
    LIVESCRAPER_OVERALL_MAX       explicit Overall tab cap (overrides test mode)
    LIVESCRAPER_ENRICH_AVATARS    "0" disables the profile-page avatar lookup
    LIVESCRAPER_ENRICH_INTERVAL   minimum seconds between avatar requests
    LIVESCRAPER_PROFILE_BASE_URL  public profile host (https://www.bigo.tv)
    LIVESCRAPER_HOME_PACKAGE      app relaunched when a workflow exits the target
    LIVESCRAPER_SELECTORS_FILE    JSON file overriding the bundled selectors
    LIVESCRAPER_LOG_DIR           directory for daily log files (console only if unset)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from typing import List, Optional

# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


DEFAULT_NODE_URL = os.getenv("LIVESCRAPER_NODE_URL", "http://localhost:18789")
DEFAULT_NODE_NAME = os.getenv("LIVESCRAPER_NODE_NAME", "android")
DEFAULT_PROFILE_BASE_URL = "https://www.bigo.tv"
DEFAULT_LOCALES = ["en", "de"]
LOG_DIR = os.getenv("LIVESCRAPER_LOG_DIR") or None

# Record caps per ranking tab
TAB_MAX_ITEMS = 3
OVERALL_MAX_ITEMS = 10
OVERALL_MAX_ITEMS_TEST = 3

# Long-mode go-back presses while leaving the target app
MAX_EXIT_PRESSES = 30

# Gestures need API 24 (Android 7.0)
MIN_GESTURE_SDK = 24

# Overlay that may sit on top of the target app without leaving it
CREDENTIAL_MANAGER_PACKAGE = "com.android.credentialmanager"


# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------

@dataclass
class Timing:
    """Settle delays (seconds) between UI interactions."""
    launch_settle: float = 3.0
    home_settle: float = 2.0
    step_settle: float = 2.0
    short_settle: float = 1.0
    tab_settle: float = 2.0
    back_press_delay: float = 0.5
    long_back_initial: float = 2.0
    long_back_poll: float = 1.0
    long_back_press_delay: float = 0.1
    popup_lead: float = 3.0
    popup_after_dismiss: float = 1.0
    popup_trailing: float = 2.0
    element_timeout: float = 5.0
    element_poll: float = 0.5
    tap_duration_ms: int = 100

    @classmethod
    def instant(cls) -> Timing:
        """All delays zero. Used by tests and dry runs."""
        values = {f.name: 0 for f in fields(cls)}
        values["tap_duration_ms"] = 100
        return cls(**values)


# ---------------------------------------------------------------------------
# AutomationConfig
# ---------------------------------------------------------------------------

@dataclass
class AutomationConfig:
    """Options shared by every workflow."""
    test_mode: bool = False
    locales: List[str] = field(default_factory=lambda: list(DEFAULT_LOCALES))
    tab_max_items: int = TAB_MAX_ITEMS
    overall_max_items: Optional[int] = None
    enrich_avatars: bool = True
    enrich_interval: float = 1.0
    profile_base_url: str = DEFAULT_PROFILE_BASE_URL
    home_package: str = ""
    max_exit_presses: int = MAX_EXIT_PRESSES
    dismiss_popups: bool = True
    selectors_file: Optional[str] = None
    timing: Timing = field(default_factory=Timing)

    @property
    def effective_overall_max(self) -> int:
        if self.overall_max_items is not None:
            return self.overall_max_items
        return OVERALL_MAX_ITEMS_TEST if self.test_mode else OVERALL_MAX_ITEMS

    @classmethod
    def from_env(cls) -> AutomationConfig:
        locales_raw = os.getenv("LIVESCRAPER_LOCALES", "")
        locales = [loc.strip() for loc in locales_raw.split(",") if loc.strip()]
        return cls(
            test_mode=_env_bool("LIVESCRAPER_TEST_MODE", False),
            locales=locales or list(DEFAULT_LOCALES),
            overall_max_items=_env_int("LIVESCRAPER_OVERALL_MAX"),
            enrich_avatars=_env_bool("LIVESCRAPER_ENRICH_AVATARS", True),
            enrich_interval=_env_float("LIVESCRAPER_ENRICH_INTERVAL", 1.0),
            profile_base_url=os.getenv("LIVESCRAPER_PROFILE_BASE_URL", DEFAULT_PROFILE_BASE_URL),
            home_package=os.getenv("LIVESCRAPER_HOME_PACKAGE", ""),
            selectors_file=os.getenv("LIVESCRAPER_SELECTORS_FILE") or None,
        )
