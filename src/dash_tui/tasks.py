from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional

from rich.spinner import Spinner
from rich.text import Text

from .config import SPINNER_INTERVAL, TASK_CLEAR_DELAY
from .datamodels import Task, TaskState
from .messages import ClearTask, Delayed, Effects, SpinnerTick

logger = logging.getLogger("dash")

SUCCESS_ICON = "✓"
FAILURE_ICON = "✗"


class TaskRegistry:
    """Tracks named background operations for the status line."""

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        clear_delay: float = TASK_CLEAR_DELAY,
    ):
        self.clock = clock
        self.clear_delay = clear_delay
        self.tasks: Dict[str, Task] = {}
        self._ticking = False
        self._spinner = Spinner("dots")

    def start(self, task: Task) -> Effects:
        task.state = TaskState.START
        task.error = None
        task.finished_time = None
        task.start_time = self.clock()
        self.tasks[task.id] = task
        logger.info("Task started: %s", task.id)
        if self._ticking:
            return []
        self._ticking = True
        return [Delayed(SPINNER_INTERVAL, SpinnerTick())]

    def finish(self, task_id: str, error: Optional[str] = None) -> Effects:
        task = self.tasks.get(task_id)
        if task is None:
            logger.debug("Finish for unknown task %s", task_id)
            return []
        task.finished_time = self.clock()
        if error is not None:
            task.state = TaskState.ERROR
            task.error = error
            logger.error("Task %s failed: %s", task_id, error)
        else:
            task.state = TaskState.FINISHED
            logger.info("Task finished: %s", task_id)
        return [Delayed(self.clear_delay, ClearTask(task_id, task.finished_time))]

    def report_error(self, task_id: str, error: str) -> Effects:
        """Record a failure that never reached a worker."""
        effects = self.start(Task(id=task_id, start_text=error, finished_text=error))
        return effects + self.finish(task_id, error)

    def clear(self, msg: ClearTask) -> None:
        task = self.tasks.get(msg.task_id)
        # A restarted task with the same id keeps its entry.
        if task is None or task.state is TaskState.START:
            return
        if task.finished_time != msg.finished_time:
            return
        del self.tasks[msg.task_id]

    def tick(self) -> Effects:
        if self.running():
            return [Delayed(SPINNER_INTERVAL, SpinnerTick())]
        self._ticking = False
        return []

    def running(self) -> List[Task]:
        return [t for t in self.tasks.values() if t.state is TaskState.START]

    def current(self) -> Optional[Task]:
        """The task shown in the status line, if any."""
        if not self.tasks:
            return None

        def sort_key(task: Task):
            finished = task.state is not TaskState.START
            when = task.finished_time if finished else task.start_time
            return (finished, -(when or 0.0))

        return sorted(self.tasks.values(), key=sort_key)[0]

    def render(self) -> Text:
        task = self.current()
        if task is None:
            return Text("")

        if task.state is TaskState.START:
            running = len(self.running())
            line = Text()
            if running > 1:
                line.append(f"[{running}] ", style="bold")
            frame = self._spinner.render(self.clock())
            line.append_text(frame if isinstance(frame, Text) else Text(str(frame)))
            line.append(" ")
            line.append(task.start_text, style="italic")
            return line
        if task.state is TaskState.ERROR:
            return Text(f"{FAILURE_ICON} {task.error}", style="bold red")
        return Text(f"{SUCCESS_ICON} {task.finished_text}", style="green")
