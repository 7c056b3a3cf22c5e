"""
Durable key/value state shared across runs.

The store is a flat JSON object on disk. News Clipper keeps its
update-check timestamps here, but other keys written by other tools are
preserved untouched.
"""

import json
import time
from pathlib import Path
from typing import Any, Dict, Optional

from newsclipper.common import atomic_write, logger
from newsclipper.models import CheckKind


class StateStore:
    """String-keyed persistent state."""

    def __init__(self, path: Path):
        self.path = path
        self._data: Optional[Dict[str, Any]] = None

    def _load(self) -> Dict[str, Any]:
        if self._data is None:
            self._data = {}
            if self.path.exists():
                try:
                    with open(self.path) as f:
                        loaded = json.load(f)
                    if isinstance(loaded, dict):
                        self._data = loaded
                    else:
                        logger.warning(f"Ignoring state file {self.path}: not a JSON object")
                except (OSError, ValueError) as e:
                    logger.warning(f"Failed to load state file {self.path}: {e}")
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value."""
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set a value and persist the whole store."""
        data = self._load()
        data[key] = value
        atomic_write(self.path, json.dumps(data, indent=2, sort_keys=True))

    def delete(self, key: str) -> None:
        """Remove a key if present."""
        data = self._load()
        if key in data:
            del data[key]
            atomic_write(self.path, json.dumps(data, indent=2, sort_keys=True))

    def keys(self):
        return list(self._load().keys())

    # Update-check timestamps

    def last_check(self, handler_name: str, kind: CheckKind) -> Optional[float]:
        """Get the last time a check of this kind completed for a handler."""
        value = self.get(kind.state_key(handler_name))
        try:
            return float(value) if value is not None else None
        except (TypeError, ValueError):
            return None

    def mark_checked(self, handler_name: str, kind: CheckKind, when: Optional[float] = None) -> None:
        """Record that a check of this kind completed."""
        self.set(kind.state_key(handler_name), when if when is not None else time.time())

    def check_due(
        self,
        handler_name: str,
        kind: CheckKind,
        interval: int,
        now: Optional[float] = None,
    ) -> bool:
        """Check if the interval since the last check of this kind has passed."""
        last = self.last_check(handler_name, kind)
        if last is None:
            return True
        now = now if now is not None else time.time()
        return now - last >= interval
