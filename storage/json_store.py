"""Keyed state stores used for per-user assistant state.

Two implementations share the same small interface (``get``/``set``/
``delete``/``keys``): an in-memory map for tests and a JSON file that is
loaded fully at startup and rewritten in full on every mutation.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger(__name__)


class KeyedStore:
    """Interface for per-user state keyed by user id."""

    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> Iterable[str]:
        raise NotImplementedError


class InMemoryStore(KeyedStore):
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(str(key), default)

    def set(self, key: str, value: Any) -> None:
        self._data[str(key)] = value

    def delete(self, key: str) -> None:
        self._data.pop(str(key), None)

    def keys(self) -> Iterable[str]:
        return list(self._data.keys())


class JsonFileStore(InMemoryStore):
    """In-memory map mirrored to a JSON file.

    Load and save failures are logged and never raised: callers treat this
    state as best-effort.
    """

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                logger.warning(f"Ignoring {self.path}: expected a JSON object")
                return
            self._data = data
            logger.info(f"Loaded state for {len(data)} users from {self.path}")
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load state from {self.path}: {e}")

    def _save(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, ensure_ascii=False, indent=2, default=str)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save state to {self.path}: {e}")

    def set(self, key: str, value: Any) -> None:
        super().set(key, value)
        self._save()

    def delete(self, key: str) -> None:
        if str(key) not in self._data:
            return
        super().delete(key)
        self._save()
