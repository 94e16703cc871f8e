"""
Selectors and the selector registry.

A selector is a declarative, immutable description of how to find a node.
Target apps change resource ids between releases and localize their labels,
so every on-screen affordance a workflow needs is configured as an ordered
fallback chain of selectors in ``configs/selectors.json``:

    {
        "apps": {
            "facebook": {
                "package": "com.facebook.katana",
                "ids": {"...": "..."},
                "labels": {"next": {"en": ["NEXT"], "de": ["WEITER"]}},
                "affordances": {
                    "next": [{"label": "next", "exact": true}]
                }
            }
        },
        "popups": {"resource_ids": ["android:id/autofill_dialog_no"]}
    }

Affordance entries:
    {"id": key_or_literal, "index": n}     -> ByResourceId
    {"label": key, "exact": bool}          -> one ByText per localized label
    {"text": literal, "exact": bool}       -> ByText
    {"class": name, "index": n}            -> ByClassName
    {"editable": n}                        -> ByEditableIndex
    {"scrollable": n}                      -> ByScrollableIndex
    {"class_desc": [class, description]}   -> ByClassAndDescription

Labels expand in the configured locale order (e.g. en, then de).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from .config import DEFAULT_LOCALES

logger = logging.getLogger(__name__)

BUNDLED_SELECTORS_PATH = Path(__file__).parent / "configs" / "selectors.json"


# ---------------------------------------------------------------------------
# Selector variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ByText:
    """Text or content description contains *value* (or equals it, trimmed, when exact)."""
    value: str
    exact: bool = False


@dataclass(frozen=True)
class ByResourceId:
    """The *index*-th node (0-based, pre-order) with this resource id."""
    resource_id: str
    index: int = 0


@dataclass(frozen=True)
class ByClassName:
    """The *index*-th node whose class name contains *name*."""
    name: str
    index: int = 0


@dataclass(frozen=True)
class ByEditableIndex:
    """The *index*-th EditText / AutoCompleteTextView."""
    index: int = 0


@dataclass(frozen=True)
class ByScrollableIndex:
    """The *index*-th scrollable container."""
    index: int = 0


@dataclass(frozen=True)
class ByClassAndDescription:
    """Class name contains *class_name* and the content description equals *description*."""
    class_name: str
    description: str


Selector = Union[ByText, ByResourceId, ByClassName, ByEditableIndex, ByScrollableIndex, ByClassAndDescription]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursive dict merge; lists and scalars in *override* replace."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class SelectorRegistry:
    """
    Resolves affordance names to ordered selector chains.

    The bundled ``configs/selectors.json`` is always loaded; an optional
    override file is merged on top of it so a new app release can be
    handled by editing JSON only.
    """

    def __init__(
        self,
        data: Optional[Dict[str, Any]] = None,
        locales: Optional[Sequence[str]] = None,
    ) -> None:
        self._data: Dict[str, Any] = data or {}
        self.locales: List[str] = list(locales or DEFAULT_LOCALES)

    @classmethod
    def load(
        cls,
        override_path: Optional[Union[str, Path]] = None,
        locales: Optional[Sequence[str]] = None,
    ) -> SelectorRegistry:
        data = cls._read(BUNDLED_SELECTORS_PATH)
        if override_path:
            data = _merge(data, cls._read(Path(override_path)))
        return cls(data, locales)

    @staticmethod
    def _read(path: Path) -> Dict[str, Any]:
        if not path.exists():
            logger.warning("No selector file at %s", path)
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            logger.debug("Loaded selectors from %s (%d apps)", path, len(data.get("apps", {})))
            return data
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to load selectors from %s: %s", path, exc)
            return {}

    # ----- Lookups -----

    def _app(self, app: str) -> Dict[str, Any]:
        return self._data.get("apps", {}).get(app, {})

    def package(self, app: str) -> str:
        return self._app(app).get("package", "")

    def resource_id(self, app: str, key: str) -> str:
        """Configured resource id for *key*; a literal ``pkg:id/name`` passes through."""
        ids = self._app(app).get("ids", {})
        if key in ids:
            return ids[key]
        if ":id/" in key:
            return key
        raise KeyError(f"Unknown resource id '{key}' for app '{app}'")

    def labels(self, app: str, key: str) -> List[str]:
        """All variants of a label, preferred locales first, without duplicates."""
        variants: Dict[str, List[str]] = self._app(app).get("labels", {}).get(key, {})
        ordered = [loc for loc in self.locales if loc in variants]
        ordered += [loc for loc in variants if loc not in ordered]
        result: List[str] = []
        for loc in ordered:
            for label in variants[loc]:
                if label not in result:
                    result.append(label)
        return result

    def selectors(self, app: str, affordance: str) -> List[Selector]:
        """Ordered fallback chain for an affordance. Empty if unconfigured."""
        entries = self._app(app).get("affordances", {}).get(affordance)
        if entries is None:
            logger.warning("No selectors configured for %s.%s", app, affordance)
            return []
        chain: List[Selector] = []
        for entry in entries:
            chain.extend(self._expand(app, entry))
        return chain

    def _expand(self, app: str, entry: Dict[str, Any]) -> List[Selector]:
        exact = bool(entry.get("exact", False))
        if "id" in entry:
            return [ByResourceId(self.resource_id(app, entry["id"]), int(entry.get("index", 0)))]
        if "label" in entry:
            return [ByText(label, exact) for label in self.labels(app, entry["label"])]
        if "text" in entry:
            return [ByText(entry["text"], exact)]
        if "class" in entry:
            return [ByClassName(entry["class"], int(entry.get("index", 0)))]
        if "editable" in entry:
            return [ByEditableIndex(int(entry["editable"]))]
        if "scrollable" in entry:
            return [ByScrollableIndex(int(entry["scrollable"]))]
        if "class_desc" in entry:
            cls_name, desc = entry["class_desc"]
            return [ByClassAndDescription(cls_name, desc)]
        logger.warning("Ignoring unrecognised selector entry for %s: %s", app, entry)
        return []

    # ----- Popups -----

    def popup_resource_ids(self) -> List[str]:
        return list(self._data.get("popups", {}).get("resource_ids", []))

    def close_sheet(self) -> Dict[str, str]:
        return dict(self._data.get("popups", {}).get("close_sheet", {}))
