from __future__ import annotations

import logging
import re
import subprocess
from typing import Any, Dict, List, Optional

from ..datamodels import Branch, FetchResult, PageCursor
from .base import RemoteSource, SourceError
from .github import parse_timestamp

logger = logging.getLogger("dash")

BRANCH_FORMAT = "%(refname:short)%09%(committerdate:iso-strict)%09%(HEAD)%09%(upstream:track,nobracket)%09%(contents:subject)"

_REMOTE_URL = re.compile(
    r"^(?:(?:https?|ssh|git)://(?:[^@/]+@)?[^/]+/|[^@]+@[^:]+:)(?P<repo>[^/]+(?:/[^/]+)+?)(?:\.git)?/?$"
)
_TRACK = re.compile(r"(ahead|behind) (\d+)")


def _git(args: List[str], cwd: Optional[str]) -> str:
    try:
        out = subprocess.run(
            ["git", *args], capture_output=True, text=True, cwd=cwd, check=True
        )
    except (OSError, subprocess.CalledProcessError) as e:
        raise SourceError(f"git {' '.join(args)} failed: {e}") from e
    return out.stdout


def parse_remote_url(url: str) -> Optional[str]:
    """Return ``owner/name`` (``group/subgroup/name`` on GitLab) for an ssh or https remote URL."""
    match = _REMOTE_URL.match(url.strip())
    return match["repo"] if match else None


def repo_root(cwd: Optional[str] = None) -> Optional[str]:
    try:
        return _git(["rev-parse", "--show-toplevel"], cwd).strip() or None
    except SourceError:
        return None


def current_repo(cwd: Optional[str] = None) -> Optional[str]:
    """``owner/name`` of the origin remote of the clone at ``cwd``."""
    try:
        url = _git(["remote", "get-url", "origin"], cwd)
    except SourceError as e:
        logger.info("No origin remote: %s", e)
        return None
    return parse_remote_url(url)


def parse_branch_line(line: str, repo: str = "") -> Optional[Branch]:
    parts = line.split("\t", 4)
    if len(parts) < 5 or not parts[0]:
        return None
    name, date, head, track, subject = parts
    counts = {kind: int(n) for kind, n in _TRACK.findall(track)}
    return Branch(
        name=name,
        repo=repo,
        updated_at=parse_timestamp(date),
        last_commit_msg=subject,
        is_current=head.strip() == "*",
        ahead=counts.get("ahead", 0),
        behind=counts.get("behind", 0),
    )


class GitSource(RemoteSource):
    """Local branches of a clone, returned as a single page."""

    def __init__(self, config: Dict[str, Any], repo_path: Optional[str], repo: str = ""):
        super().__init__(config)
        self.repo_path = repo_path
        self.repo = repo

    def fetch(self, filters: str, limit: int, cursor: Optional[PageCursor]) -> FetchResult:
        if not self.repo_path:
            raise SourceError("Not inside a git repository")
        output = _git(
            ["for-each-ref", "--sort=-committerdate", f"--format={BRANCH_FORMAT}", "refs/heads"],
            self.repo_path,
        )
        branches = [b for b in (parse_branch_line(l, self.repo) for l in output.splitlines()) if b]
        terms = [t.lower() for t in filters.split() if ":" not in t]
        if terms:
            branches = [b for b in branches if all(t in b.name.lower() for t in terms)]
        return FetchResult(
            rows=branches[:limit],
            total_count=len(branches),
            page_cursor=PageCursor(None, False),
        )
