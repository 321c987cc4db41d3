from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Protocol

from dbml_erd.graph_model import PositionMap

logger = logging.getLogger("position_store")

KEY_LENGTH = 16


def diagram_key(source: str | None) -> str:
    """Stable storage key for a DBML source; identical text gives the same key."""
    if not source:
        return "default"
    return hashlib.sha256(source.encode("utf-8")).hexdigest()[:KEY_LENGTH]


class PositionStore(Protocol):
    def load(self, key: str) -> PositionMap: ...

    def save(self, key: str, positions: PositionMap) -> None: ...


class MemoryPositionStore:
    def __init__(self) -> None:
        self._data: dict[str, PositionMap] = {}

    def load(self, key: str) -> PositionMap:
        return json.loads(json.dumps(self._data.get(key, {})))

    def save(self, key: str, positions: PositionMap) -> None:
        self._data[key] = json.loads(json.dumps(positions))

    def keys(self) -> list[str]:
        return sorted(self._data)


class JsonPositionStore:
    """One ``positions-<key>.json`` file per diagram key."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        safe = "".join(ch for ch in key if ch.isalnum() or ch in "-_") or "default"
        return self.directory / f"positions-{safe}.json"

    def load(self, key: str) -> PositionMap:
        path = self.path_for(key)
        if not path.exists():
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Could not read positions from '%s': %s", path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring positions file '%s': expected a JSON object.", path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, dict)}

    def save(self, key: str, positions: PositionMap) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(positions, f, indent=2)
        logger.debug("Saved %d positions to '%s'.", len(positions), path)
