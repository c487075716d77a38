from __future__ import annotations

import logging
import subprocess
from typing import List, Optional

from .base import MutationError, MutationExecutor

logger = logging.getLogger("dash")


class CliExecutor(MutationExecutor):
    """Runs mutations by shelling out to a command line tool."""

    def __init__(self, program: str = "gh"):
        self.program = program

    def execute(self, action_id: str, args: List[str], cwd: Optional[str] = None) -> str:
        cmd = [self.program, *args]
        logger.info("Running task %s: %s", action_id, " ".join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, cwd=cwd)
        except OSError as e:
            raise MutationError(f"{self.program} could not be started: {e}") from e
        if result.returncode != 0:
            message = result.stderr.strip() or f"{self.program} exited with {result.returncode}"
            raise MutationError(message, result.returncode)
        return result.stdout


def gh_executor() -> CliExecutor:
    return CliExecutor("gh")


def git_executor() -> CliExecutor:
    return CliExecutor("git")
