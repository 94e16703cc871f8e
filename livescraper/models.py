"""
Scrape records and the aggregate JSON document.

Document shape:

    {
      "summary": {
        "total_users_scraped": 13,
        "total_tabs_scraped": 4,
        "tabs": {"Daily": 3, "Weekly": 3, "Monthly": 3, "Overall": 4}
      },
      "data": {
        "Daily": [
          {"user_id": "RA_H2019", "username": "...", "amount": "1.2M",
           "rank_position": 1, "user_level": "Lv.32",
           "profile_picture_url": "https://..."}
        ]
      }
    }
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List

from .config import AutomationConfig
from .utils import _save_json


@dataclass
class ScrapedRecord:
    """One ranked contributor on one tab."""
    user_id: str = ""
    username: str = ""
    amount: str = ""
    rank_position: int = 0
    user_level: str = ""
    profile_picture_url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> ScrapedRecord:
        return cls(**{k: d[k] for k in cls.__dataclass_fields__ if k in d})


@dataclass(frozen=True)
class TabConfig:
    name: str
    max_items: int
    affordance: str


def default_tabs(config: AutomationConfig) -> List[TabConfig]:
    """Daily, Weekly, Monthly, Overall, in scrape order."""
    return [
        TabConfig("Daily", config.tab_max_items, "tab_daily"),
        TabConfig("Weekly", config.tab_max_items, "tab_weekly"),
        TabConfig("Monthly", config.tab_max_items, "tab_monthly"),
        TabConfig("Overall", config.effective_overall_max, "tab_overall"),
    ]


class ScrapeAggregator:
    """Collects per-tab results and assembles the document in tab order."""

    def __init__(self, tabs: List[TabConfig]) -> None:
        self.tabs = list(tabs)
        self._results: Dict[str, List[ScrapedRecord]] = {}

    def record_tab(self, name: str, records: List[ScrapedRecord]) -> None:
        self._results[name] = list(records)

    def mark_failed(self, name: str) -> None:
        self._results[name] = []

    @property
    def has_results(self) -> bool:
        return bool(self._results)

    def records(self, name: str) -> List[ScrapedRecord]:
        return list(self._results.get(name, []))

    def build(self) -> Dict[str, Any]:
        names = [t.name for t in self.tabs if t.name in self._results]
        names += [n for n in self._results if n not in names]
        counts = {name: len(self._results[name]) for name in names}
        return {
            "summary": {
                "total_users_scraped": sum(counts.values()),
                "total_tabs_scraped": sum(1 for c in counts.values() if c > 0),
                "tabs": counts,
            },
            "data": {name: [r.to_dict() for r in self._results[name]] for name in names},
        }


def document_to_json(document: Dict[str, Any], indent: int = 2) -> str:
    return json.dumps(document, indent=indent, ensure_ascii=False)


def save_document(path: Path, document: Dict[str, Any]) -> None:
    _save_json(Path(path), document)
