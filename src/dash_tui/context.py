from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .config import get_defaults, resolve_repo_path
from .datamodels import Notification, Task
from .messages import Effects
from .sources.base import MutationExecutor
from .stores import DoneStore, OverrideStore
from .tasks import TaskRegistry


@dataclass
class ProgramContext:
    """Process-wide state handed to the coordinator and every section."""

    config: Dict[str, Any]
    executor: MutationExecutor
    git: Optional[MutationExecutor] = None
    repo: Optional[str] = None
    repo_path: Optional[str] = None
    user: str = ""
    view: str = "prs"
    clock: Callable[[], float] = time.time
    tasks: TaskRegistry = None  # type: ignore[assignment]
    bookmarks: OverrideStore = field(default_factory=OverrideStore)
    done: DoneStore = field(default_factory=DoneStore)
    labels: List[str] = field(default_factory=list)
    users: List[str] = field(default_factory=list)
    notification_subject: Optional[Notification] = None

    def __post_init__(self) -> None:
        if self.tasks is None:
            self.tasks = TaskRegistry(clock=self.clock)

    @property
    def defaults(self) -> Dict[str, Any]:
        return get_defaults(self.config)

    @property
    def smart_filtering_at_launch(self) -> bool:
        return bool(self.config.get("smart_filtering_at_launch", True))

    def start_task(self, task: Task) -> Effects:
        return self.tasks.start(task)

    def repo_path_for(self, repo: str) -> Optional[str]:
        if self.repo and repo == self.repo and self.repo_path:
            return self.repo_path
        return resolve_repo_path(self.config, repo)
