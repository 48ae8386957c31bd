"""
Persistent preference store.

Keeps small per-instance values (the last selected view) across restarts.
"""

import json
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional


VIEW_KEY = "view"


class PreferenceStore(ABC):
    """Key-value store scoped by instance id."""

    @abstractmethod
    def get(self, instance_id: str, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    def set(self, instance_id: str, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def remove(self, instance_id: str, key: str) -> None:
        pass


class MemoryPreferenceStore(PreferenceStore):
    """Process-local store."""

    def __init__(self):
        self._values: dict[str, dict[str, Any]] = {}

    def get(self, instance_id: str, key: str) -> Optional[Any]:
        return self._values.get(instance_id, {}).get(key)

    def set(self, instance_id: str, key: str, value: Any) -> None:
        self._values.setdefault(instance_id, {})[key] = value

    def remove(self, instance_id: str, key: str) -> None:
        values = self._values.get(instance_id)
        if values is not None:
            values.pop(key, None)
            if not values:
                del self._values[instance_id]


class JsonPreferenceStore(PreferenceStore):
    """
    Store backed by a JSON file.

    The whole file is rewritten on every change; a missing or unreadable
    file starts out empty.
    """

    def __init__(self, path: Path):
        """
        Args:
            path: JSON file holding {instance_id: {key: value}}
        """
        self._path = Path(path)
        self._values: dict[str, dict[str, Any]] = {}
        self._load()

    def _load(self) -> None:
        """Load preferences from disk."""
        if not self._path.exists():
            return
        try:
            with open(self._path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            print(f"Error loading preferences: {e}", file=sys.stderr)
            return
        if isinstance(data, dict):
            self._values = {k: v for k, v in data.items() if isinstance(v, dict)}

    def _save(self) -> None:
        """Save preferences to disk."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, 'w') as f:
                json.dump(self._values, f, indent=2)
        except OSError as e:
            print(f"Error saving preferences: {e}", file=sys.stderr)

    def get(self, instance_id: str, key: str) -> Optional[Any]:
        return self._values.get(instance_id, {}).get(key)

    def set(self, instance_id: str, key: str, value: Any) -> None:
        self._values.setdefault(instance_id, {})[key] = value
        self._save()

    def remove(self, instance_id: str, key: str) -> None:
        values = self._values.get(instance_id)
        if values is None or key not in values:
            return
        del values[key]
        if not values:
            del self._values[instance_id]
        self._save()
