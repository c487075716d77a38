from __future__ import annotations

import hashlib
import json
import logging
import os
import time
from typing import Any, Callable, Optional

logger = logging.getLogger("dash")


class Cache:
    """JSON file cache with a time-to-live, keyed by arbitrary strings."""

    def __init__(self, cache_dir: str, ttl: int, clock: Callable[[], float] = time.time):
        self.cache_dir = cache_dir
        self.ttl = ttl
        self.clock = clock
        os.makedirs(self.cache_dir, exist_ok=True)

    def _entry_path(self, key: str) -> str:
        digest = hashlib.sha256(key.encode()).hexdigest()
        return os.path.join(self.cache_dir, f"{digest}.json")

    def get(self, key: str) -> Optional[Any]:
        path = self._entry_path(key)
        if not os.path.exists(path):
            return None

        try:
            with open(path, "r") as f:
                entry = json.load(f)
        except (IOError, json.JSONDecodeError) as e:
            logger.warning("Unreadable cache entry %s: %s", path, e)
            return None

        if self.clock() - entry.get("stored_at", 0) > self.ttl:
            logger.debug("Cache entry for %s is stale", key)
            return None
        return entry.get("value")

    def set(self, key: str, value: Any) -> None:
        path = self._entry_path(key)
        try:
            with open(path, "w") as f:
                json.dump({"stored_at": self.clock(), "value": value}, f)
        except IOError as e:
            logger.warning("Could not write cache entry %s: %s", path, e)

    def remember(self, key: str, loader: Callable[[], Any]) -> Any:
        """Return the cached value for ``key``, loading and storing it on a miss."""
        value = self.get(key)
        if value is not None:
            return value
        value = loader()
        self.set(key, value)
        return value

    def invalidate(self, key: str) -> None:
        path = self._entry_path(key)
        if os.path.exists(path):
            os.unlink(path)
