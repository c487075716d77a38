from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime
from typing import Any, Dict, Optional, Set

logger = logging.getLogger("dash")


def _write_atomic(path: str, data: Any) -> None:
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=".json")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def _read_json(path: Optional[str]) -> Any:
    if not path or not os.path.exists(path):
        return None
    try:
        with open(path, "r") as f:
            return json.load(f)
    except (IOError, json.JSONDecodeError) as e:
        logger.error("Failed to load store %s: %s", path, e)
        return None


class OverrideStore:
    """A persisted set of ids the user marked locally.

    With ``path=None`` the store lives in memory only.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._ids: Set[str] = set()
        self.load()

    def load(self) -> None:
        data = _read_json(self.path)
        self._ids = {str(i) for i in data} if isinstance(data, list) else set()

    def save(self) -> None:
        if not self.path:
            return
        try:
            _write_atomic(self.path, sorted(self._ids))
        except (IOError, OSError) as e:
            logger.error("Failed to save store %s: %s", self.path, e)

    def is_marked(self, id: str) -> bool:
        return id in self._ids

    def mark(self, id: str) -> None:
        if id in self._ids:
            return
        self._ids.add(id)
        self.save()

    def unmark(self, id: str) -> None:
        if id not in self._ids:
            return
        self._ids.discard(id)
        self.save()

    def toggle(self, id: str) -> bool:
        if self.is_marked(id):
            self.unmark(id)
            return False
        self.mark(id)
        return True

    def all_marked(self) -> Set[str]:
        return set(self._ids)

    def clear(self) -> None:
        if not self._ids:
            return
        self._ids.clear()
        self.save()


class DoneStore(OverrideStore):
    """Done notifications, remembered with the update time they had.

    A notification updated after it was marked done shows up again.
    """

    def __init__(self, path: Optional[str] = None):
        self._done_at: Dict[str, Optional[str]] = {}
        super().__init__(path)

    def load(self) -> None:
        data = _read_json(self.path)
        if isinstance(data, dict):
            self._done_at = {str(k): v for k, v in data.items()}
        elif isinstance(data, list):
            self._done_at = {str(i): None for i in data}
        else:
            self._done_at = {}
        self._ids = set(self._done_at)

    def save(self) -> None:
        if not self.path:
            return
        try:
            _write_atomic(self.path, self._done_at)
        except (IOError, OSError) as e:
            logger.error("Failed to save store %s: %s", self.path, e)

    def mark(self, id: str, updated_at: Optional[datetime] = None) -> None:
        stamp = updated_at.isoformat() if updated_at else None
        if id in self._ids and self._done_at.get(id) == stamp:
            return
        self._ids.add(id)
        self._done_at[id] = stamp
        self.save()

    def unmark(self, id: str) -> None:
        self._done_at.pop(id, None)
        super().unmark(id)

    def clear(self) -> None:
        self._done_at.clear()
        super().clear()

    def snapshot(self) -> "DoneStore":
        """An in-memory copy safe to read from a worker thread."""
        copy = DoneStore(None)
        copy._done_at = dict(self._done_at)
        copy._ids = set(self._ids)
        return copy

    def is_done(self, id: str, updated_at: Optional[datetime] = None) -> bool:
        if id not in self._ids:
            return False
        stamp = self._done_at.get(id)
        if stamp is None or updated_at is None:
            return True
        return updated_at <= datetime.fromisoformat(stamp)
