"""JSON key-value storage.

A flat get/set store: one JSON file per key under a configurable base
directory. There is no database; reads and writes go through plain helper
methods that load and dump JSON.

Directory layout:

    {base}/
      kv/
        {key}.json    ← one value per key (aiComplianceStats, globalPrompts, ...)

Persistence is best-effort: read and write failures are logged and the
caller gets the default back (get) or False (set). Nothing is raised.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

STORAGE_KEYS = {
    "characters": "characters",
    "conversations": "conversations",
    "api_configs": "apiConfigs",
    "app_settings": "appSettings",
    "global_prompts": "globalPrompts",
    "compliance_stats": "aiComplianceStats",
}

M = TypeVar("M", bound=BaseModel)

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class KeyValueStore:
    def __init__(self, base_path: Path) -> None:
        self._base = Path(base_path)
        self._root = self._base / "kv"
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _path(self, key: str) -> Path:
        if not _KEY_RE.match(key) or key.startswith("."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._root / f"{key}.json"

    # ------------------------------------------------------------------
    # get / set
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.is_file():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to read key %s: %s", key, e)
            return default

    def set(self, key: str, value: Any) -> bool:
        path = self._path(key)
        try:
            payload = json.dumps(value, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.warning("Value for key %s is not JSON serialisable: %s", key, e)
            return False
        try:
            path.write_text(payload, encoding="utf-8")
        except OSError as e:
            logger.warning("Failed to write key %s: %s", key, e)
            return False
        return True

    def delete(self, key: str) -> bool:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("Failed to delete key %s: %s", key, e)
            return False
        return True

    def keys(self) -> list[str]:
        return sorted(p.stem for p in self._root.glob("*.json"))

    def export_data(self) -> dict[str, Any]:
        """Dump every known application key (missing keys map to None)."""
        return {key: self.get(key) for key in STORAGE_KEYS.values()}

    # ------------------------------------------------------------------
    # Model lists (characters, conversations, apiConfigs, ...)
    # ------------------------------------------------------------------

    def get_models(self, key: str, model: type[M]) -> list[M]:
        """Validated entries stored under ``key``; invalid entries are skipped."""
        raw = self.get(key, [])
        if not isinstance(raw, list):
            logger.warning("Expected a list under key %s, got %s", key, type(raw).__name__)
            return []
        items: list[M] = []
        for entry in raw:
            try:
                items.append(model.model_validate(entry))
            except ValidationError as e:
                logger.warning("Skipping invalid entry under key %s: %s", key, e)
        return items

    def set_models(self, key: str, items: list[BaseModel]) -> bool:
        return self.set(key, [item.model_dump(mode="json") for item in items])
