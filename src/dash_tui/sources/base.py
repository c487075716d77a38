from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..datamodels import FetchResult, Notification, PageCursor


class SourceError(Exception):
    """A remote fetch failed."""


class MutationError(Exception):
    """A mutation command exited unsuccessfully."""

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class RemoteSource(ABC):
    """Abstract base class for a paginated remote list."""

    def __init__(self, config: Dict[str, Any]):
        self.config = config

    @abstractmethod
    def fetch(
        self, filters: str, limit: int, cursor: Optional[PageCursor]
    ) -> FetchResult:
        """Return one page of rows matching ``filters``."""
        pass


class NotificationSource(RemoteSource):
    @abstractmethod
    def fetch_thread(self, thread_id: str) -> Optional[Notification]:
        """Return a single notification thread, or None if it is gone."""
        pass


class SuggestionSource(ABC):
    """Completion pools for the comment, label and assignee inputs."""

    @abstractmethod
    def viewer_login(self) -> str:
        pass

    @abstractmethod
    def list_labels(self, repo: str) -> List[str]:
        pass

    @abstractmethod
    def list_users(self, repo: str) -> List[str]:
        pass


class MutationExecutor(ABC):
    @abstractmethod
    def execute(self, action_id: str, args: List[str], cwd: Optional[str] = None) -> str:
        """Run one mutation; raise MutationError on failure."""
        pass
