"""JSON-backed key/value store for front-end form values."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any, Optional

from .data import PREFERENCES_JSON_PATH

logger = logging.getLogger(__name__)


def load_preferences(path: str | Path | None = None) -> dict[str, Any]:
    """Load stored preferences, returning an empty mapping when unavailable."""

    preferences_path = Path(path) if path is not None else PREFERENCES_JSON_PATH
    try:
        raw_text = preferences_path.read_text(encoding="utf-8")
    except (FileNotFoundError, OSError):
        return {}
    try:
        raw_data = json.loads(raw_text)
    except json.JSONDecodeError:
        logger.warning("Ignoring unreadable preferences file %s", preferences_path)
        return {}
    if not isinstance(raw_data, dict):
        return {}
    return {str(key): value for key, value in raw_data.items() if value is not None}


def save_preferences(values: dict[str, Any], path: str | Path | None = None) -> None:
    """Persist preferences to the JSON file, dropping absent values."""

    preferences_path = Path(path) if path is not None else PREFERENCES_JSON_PATH
    preferences_path.parent.mkdir(parents=True, exist_ok=True)
    serializable = {key: value for key, value in sorted(values.items()) if value is not None}
    preferences_path.write_text(
        json.dumps(serializable, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )


class PreferenceStore:
    """Preferences keyed by string identifiers.

    The file is read once on construction and rewritten after every change.
    Setting a key to ``None`` removes it.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path is not None else PREFERENCES_JSON_PATH
        self._values = load_preferences(self.path)

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        if value is None:
            if key not in self._values:
                return
            del self._values[key]
        else:
            if self._values.get(key) == value:
                return
            self._values[key] = value
        save_preferences(self._values, self.path)

    def remove(self, key: str) -> None:
        self.set(key, None)

    def setdefault(self, key: str, default: Any) -> Any:
        """Return the stored value, storing ``default`` first when missing."""

        if key not in self._values and default is not None:
            self.set(key, default)
        return self._values.get(key, default)

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def as_dict(self) -> dict[str, Any]:
        return dict(self._values)
