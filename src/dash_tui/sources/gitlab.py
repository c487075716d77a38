from __future__ import annotations

import json
import logging
import subprocess
from abc import abstractmethod
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from ..cache import Cache
from ..config import CACHE_DIR, CACHE_TTL
from ..datamodels import FetchResult, Issue, Label, Notification, PageCursor, PullRequest
from .base import MutationError, NotificationSource, RemoteSource, SourceError, SuggestionSource
from .gh_cli import CliExecutor
from .github import parse_timestamp

logger = logging.getLogger("dash")

MR_STATES = {"opened": "OPEN", "closed": "CLOSED", "merged": "MERGED", "locked": "CLOSED"}

# GitLab to-do actions mapped onto the notification reasons the filters know.
TODO_REASONS = {
    "assigned": "assign",
    "mentioned": "mention",
    "directly_addressed": "mention",
    "review_requested": "review_requested",
    "approval_required": "review_requested",
    "build_failed": "ci_activity",
    "unmergeable": "state_change",
    "marked": "subscribed",
}

TODO_SUBJECTS = {"MergeRequest": "PullRequest", "Issue": "Issue"}


def parse_query(filters: str) -> Dict[str, str]:
    """Pick the GitHub style tokens that have a ``glab`` list flag."""
    parsed: Dict[str, str] = {}
    for token in filters.split():
        key, sep, value = token.partition(":")
        if not sep or not value:
            continue
        if key in ("repo", "author", "assignee", "label"):
            parsed[key] = value
        elif key in ("reviewer", "review-requested"):
            parsed["reviewer"] = value
        elif key in ("is", "state") and value in ("open", "opened", "closed", "merged", "all"):
            parsed["state"] = value
        elif key == "draft" and value == "true":
            parsed["draft"] = value
    return parsed


def list_args(kind: str, filters: str, limit: int, page: int) -> List[str]:
    """Arguments for ``glab mr list`` or ``glab issue list``."""
    parsed = parse_query(filters)
    args = [kind, "list", "--output", "json", "--per-page", str(limit), "--page", str(page)]
    if "repo" in parsed:
        args += ["--repo", parsed["repo"]]
    state = parsed.get("state")
    if state == "closed":
        args.append("--closed")
    elif state == "merged" and kind == "mr":
        args.append("--merged")
    elif state == "all":
        args.append("--all")
    for key in ("author", "assignee", "label"):
        if key in parsed:
            args += [f"--{key}", parsed[key]]
    if kind == "mr":
        if "reviewer" in parsed:
            args += ["--reviewer", parsed["reviewer"]]
        if "draft" in parsed:
            args.append("--draft")
    return args


def _project(reference: str, sep: str) -> str:
    return reference.rsplit(sep, 1)[0] if sep in reference else ""


def _usernames(items: Optional[List[Dict[str, Any]]]) -> List[str]:
    return [u["username"] for u in items or [] if u.get("username")]


def _labels(names: List[str], colors: Dict[str, str]) -> List[Label]:
    return [Label(name=name, color=colors.get(name, "")) for name in names]


def parse_merge_request(item: Dict[str, Any], colors: Optional[Dict[str, str]] = None) -> PullRequest:
    return PullRequest(
        number=item["iid"],
        repo=_project((item.get("references") or {}).get("full", ""), "!"),
        title=item.get("title", ""),
        url=item.get("web_url", ""),
        updated_at=parse_timestamp(item.get("updated_at")),
        author=(item.get("author") or {}).get("username", ""),
        state=MR_STATES.get(item.get("state", ""), "OPEN"),
        is_draft=bool(item.get("draft") or item.get("work_in_progress")),
        body=item.get("description") or "",
        head_ref=item.get("source_branch", ""),
        base_ref=item.get("target_branch", ""),
        labels=_labels(item.get("labels") or [], colors or {}),
        assignees=_usernames(item.get("assignees")),
    )


def parse_gitlab_issue(item: Dict[str, Any], colors: Optional[Dict[str, str]] = None) -> Issue:
    return Issue(
        number=item["iid"],
        repo=_project((item.get("references") or {}).get("full", ""), "#"),
        title=item.get("title", ""),
        url=item.get("web_url", ""),
        updated_at=parse_timestamp(item.get("updated_at")),
        author=(item.get("author") or {}).get("username", ""),
        state=MR_STATES.get(item.get("state", ""), "OPEN"),
        body=item.get("description") or "",
        labels=_labels(item.get("labels") or [], colors or {}),
        assignees=_usernames(item.get("assignees")),
    )


def parse_todo(item: Dict[str, Any]) -> Notification:
    target = item.get("target") or {}
    action = item.get("action_name", "")
    return Notification(
        id=str(item["id"]),
        repo=(item.get("project") or {}).get("path_with_namespace", ""),
        title=target.get("title") or item.get("body", ""),
        url=item.get("target_url", ""),
        updated_at=parse_timestamp(item.get("updated_at") or item.get("created_at")),
        reason=TODO_REASONS.get(action, action),
        subject_type=TODO_SUBJECTS.get(item.get("target_type", ""), item.get("target_type", "")),
        unread=item.get("state") == "pending",
        number=target.get("iid") or 0,
    )


class GlabClient(SuggestionSource):
    """Reads GitLab through the ``glab`` CLI, which owns the host and the token."""

    def __init__(self, config: Dict[str, Any], cache: Optional[Cache] = None):
        self.config = config
        self.cache = cache

    def run(self, args: List[str]) -> Any:
        logger.debug("Running glab %s", " ".join(args))
        try:
            out = subprocess.run(["glab", *args], capture_output=True, text=True, check=True)
        except OSError as e:
            raise SourceError(f"glab could not be started: {e}") from e
        except subprocess.CalledProcessError as e:
            logger.error("glab %s failed: %s", " ".join(args), e.stderr)
            raise SourceError(f"glab command failed: {(e.stderr or '').strip()}") from e
        try:
            return json.loads(out.stdout or "null")
        except ValueError as e:
            raise SourceError(f"Could not parse glab output: {e}") from e

    def api(self, path: str) -> Any:
        return self.run(["api", path])

    def _cached(self, key: str, loader):
        if self.cache is None:
            return loader()
        return self.cache.remember(key, loader)

    def viewer_login(self) -> str:
        return self.api("user")["username"]

    def label_colors(self, repo: str) -> Dict[str, str]:
        if not repo:
            return {}

        def load() -> Dict[str, str]:
            labels = self.run(["label", "list", "--repo", repo, "--output", "json", "--per-page", "100"])
            return {l["name"]: (l.get("color") or "").lstrip("#") for l in labels or []}

        try:
            return self._cached(f"gitlab-labels:{repo}", load)
        except SourceError as e:
            logger.debug("No label colors for %s: %s", repo, e)
            return {}

    def list_labels(self, repo: str) -> List[str]:
        return list(self.label_colors(repo))

    def list_users(self, repo: str) -> List[str]:
        def load() -> List[str]:
            members = self.api(f"projects/{quote(repo, safe='')}/members/all?per_page=100")
            return _usernames(members)

        return self._cached(f"gitlab-users:{repo}", load)


class _GlabListSource(RemoteSource):
    """Page-numbered ``glab`` listing; a full page means there may be more."""

    kind = "mr"

    def __init__(self, config: Dict[str, Any], client: GlabClient):
        super().__init__(config)
        self.client = client

    @abstractmethod
    def parse(self, item: Dict[str, Any], colors: Dict[str, str]) -> Any:
        pass

    def fetch(self, filters: str, limit: int, cursor: Optional[PageCursor]) -> FetchResult:
        page = int(cursor.token) if cursor and cursor.token else 1
        items = self.client.run(list_args(self.kind, filters, limit, page)) or []
        colors = self.client.label_colors(parse_query(filters).get("repo", ""))
        rows = [self.parse(item, colors) for item in items]
        has_next = len(items) >= limit
        logger.info("Fetched %d %s rows from GitLab (page %d)", len(rows), self.kind, page)
        return FetchResult(
            rows=rows,
            total_count=(page - 1) * limit + len(rows),
            page_cursor=PageCursor(str(page + 1) if has_next else None, has_next),
        )


class MergeRequestSource(_GlabListSource):
    kind = "mr"

    def parse(self, item: Dict[str, Any], colors: Dict[str, str]) -> PullRequest:
        return parse_merge_request(item, colors)


class GitLabIssueSource(_GlabListSource):
    kind = "issue"

    def parse(self, item: Dict[str, Any], colors: Dict[str, str]) -> Issue:
        return parse_gitlab_issue(item, colors)


class TodoSource(NotificationSource):
    """GitLab to-do items standing in for notifications.

    Pending to-dos are unread. ``is:all`` also lists the ones marked done.
    """

    def __init__(self, config: Dict[str, Any], client: GlabClient):
        super().__init__(config)
        self.client = client

    def fetch(self, filters: str, limit: int, cursor: Optional[PageCursor]) -> FetchResult:
        tokens = filters.split()
        repos = [t[len("repo:"):] for t in tokens if t.startswith("repo:")]
        include_read = "is:all" in tokens or "is:read" in tokens
        page = int(cursor.token) if cursor and cursor.token else 1

        states = ["pending", "done"] if include_read else ["pending"]
        rows: List[Notification] = []
        has_next = False
        for state in states:
            items = self.client.api(f"todos?state={state}&per_page={limit}&page={page}") or []
            has_next = has_next or len(items) >= limit
            rows += [parse_todo(item) for item in items]
        if repos:
            rows = [n for n in rows if n.repo in repos]
        return FetchResult(
            rows=rows,
            total_count=len(rows),
            page_cursor=PageCursor(str(page + 1) if has_next else None, has_next),
        )

    def fetch_thread(self, thread_id: str) -> Optional[Notification]:
        # The to-do API has no single item lookup.
        logger.debug("Cannot look up GitLab to-do %s on its own", thread_id)
        return None


def _edit_args(extra: List[str]) -> List[str]:
    args: List[str] = []
    pairs = zip(extra[::2], extra[1::2])
    for flag, value in pairs:
        if flag == "--add-assignee":
            args += ["--assignee", f"+{value}"]
        elif flag == "--remove-assignee":
            args += ["--assignee", f"-{value}"]
        elif flag == "--add-label":
            args += ["--label", value]
        elif flag == "--remove-label":
            args += ["--unlabel", value]
    return args


def _api_args(args: List[str]) -> List[str]:
    method, path = args[2], args[3]
    if path == "notifications":
        return ["api", "-X", "POST", "todos/mark_as_done"]
    parts = path.split("/")
    if len(parts) == 3 and parts[:2] == ["notifications", "threads"]:
        return ["api", "-X", "POST", f"todos/{parts[2]}/mark_as_done"]
    raise MutationError(f"{method} {path} has no GitLab equivalent")


def glab_args(args: List[str]) -> List[str]:
    """Translate a ``gh`` command line into the matching ``glab`` one."""
    if not args:
        return args
    if args[0] == "api":
        return _api_args(args)
    if args[0] not in ("pr", "issue"):
        raise MutationError(f"gh {args[0]} has no GitLab equivalent")

    kind = "mr" if args[0] == "pr" else "issue"
    sub, rest = args[1], args[2:]
    if sub == "checkout":
        return [kind, "checkout", *rest]
    if sub == "create":
        flags = dict(zip(rest[::2], rest[1::2]))
        out = [kind, "create", "--title", flags.get("--title", ""), "--description", flags.get("--body", "")]
        if "--head" in flags:
            out += ["--source-branch", flags["--head"]]
        if "-R" in flags:
            out += ["-R", flags["-R"]]
        return out + ["--yes"]
    if sub == "view":
        # gh pr view --web <branch> -R <repo>
        return [kind, "view", rest[1], "--web", *rest[2:]]

    number, repo, extra = rest[0], rest[2], rest[3:]
    target = [number, "-R", repo]
    if sub in ("close", "reopen"):
        return [kind, sub, *target]
    if sub == "merge":
        return [kind, "merge", *target, "--yes"]
    if sub == "ready":
        return [kind, "update", *target, "--ready"]
    if sub == "update-branch":
        return [kind, "rebase", *target]
    if sub == "comment":
        return [kind, "note", *target, "-m", extra[1]]
    if sub == "review":
        return [kind, "approve", *target]
    if sub == "edit":
        return [kind, "update", *target, *_edit_args(extra)]
    raise MutationError(f"gh {args[0]} {sub} has no GitLab equivalent")


class GlabExecutor(CliExecutor):
    """Runs the dashboard's mutations through ``glab``."""

    def __init__(self):
        super().__init__("glab")

    def execute(self, action_id: str, args: List[str], cwd: Optional[str] = None) -> str:
        return super().execute(action_id, glab_args(list(args)), cwd=cwd)


def create_gitlab_client(config: Dict[str, Any]) -> GlabClient:
    return GlabClient(config, cache=Cache(cache_dir=CACHE_DIR, ttl=CACHE_TTL))
