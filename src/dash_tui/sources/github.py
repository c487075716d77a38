from __future__ import annotations

import logging
import os
import re
import subprocess
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..cache import Cache
from ..config import (
    CACHE_DIR,
    CACHE_TTL,
    GITHUB_API_URL,
    GITHUB_GRAPHQL_URL,
    HTTP_TIMEOUT,
    REQUEST_HEADERS,
)
from ..datamodels import (
    EPOCH,
    Comment,
    FetchResult,
    Issue,
    Label,
    Notification,
    PageCursor,
    PullRequest,
)
from .base import NotificationSource, RemoteSource, SourceError, SuggestionSource

logger = logging.getLogger("dash")

_SUBJECT_URL = re.compile(r"/repos/(?P<repo>[^/]+/[^/]+)/(?P<kind>pulls|issues|commits|releases)/(?P<ref>[^/]+)$")

PR_FIELDS = """
  number title url body state isDraft updatedAt additions deletions
  headRefName baseRefName reviewDecision
  author { login }
  repository { nameWithOwner }
  labels(first: 20) { nodes { name color } }
  assignees(first: 10) { nodes { login } }
  comments(last: 5) { nodes { author { login } body updatedAt } }
"""

ISSUE_FIELDS = """
  number title url body state updatedAt
  author { login }
  repository { nameWithOwner }
  labels(first: 20) { nodes { name color } }
  assignees(first: 10) { nodes { login } }
  comments(last: 5) { nodes { author { login } body updatedAt } }
"""

SEARCH_QUERY = """
query Search($query: String!, $limit: Int!, $endCursor: String) {
  search(type: ISSUE, first: $limit, after: $endCursor, query: $query) {
    issueCount
    pageInfo { hasNextPage endCursor }
    nodes { ... on %(type)s { %(fields)s } }
  }
}
"""


def parse_timestamp(value: Optional[str]) -> datetime:
    if not value:
        return EPOCH
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _login(node: Optional[Dict[str, Any]]) -> str:
    return (node or {}).get("login") or "ghost"


def _labels(node: Dict[str, Any]) -> List[Label]:
    return [
        Label(name=l["name"], color=l.get("color", ""))
        for l in (node.get("labels") or {}).get("nodes", [])
    ]


def _assignees(node: Dict[str, Any]) -> List[str]:
    return [a["login"] for a in (node.get("assignees") or {}).get("nodes", [])]


def _comments(node: Dict[str, Any]) -> List[Comment]:
    return [
        Comment(
            author=_login(c.get("author")),
            body=c.get("body", ""),
            updated_at=parse_timestamp(c.get("updatedAt")),
        )
        for c in (node.get("comments") or {}).get("nodes", [])
    ]


def parse_pull_request(node: Dict[str, Any]) -> PullRequest:
    return PullRequest(
        number=node["number"],
        repo=node["repository"]["nameWithOwner"],
        title=node.get("title", ""),
        url=node.get("url", ""),
        updated_at=parse_timestamp(node.get("updatedAt")),
        author=_login(node.get("author")),
        state=node.get("state", "OPEN"),
        is_draft=node.get("isDraft", False),
        body=node.get("body") or "",
        head_ref=node.get("headRefName", ""),
        base_ref=node.get("baseRefName", ""),
        additions=node.get("additions", 0),
        deletions=node.get("deletions", 0),
        review_decision=node.get("reviewDecision") or "",
        labels=_labels(node),
        assignees=_assignees(node),
        comments=_comments(node),
    )


def parse_issue(node: Dict[str, Any]) -> Issue:
    return Issue(
        number=node["number"],
        repo=node["repository"]["nameWithOwner"],
        title=node.get("title", ""),
        url=node.get("url", ""),
        updated_at=parse_timestamp(node.get("updatedAt")),
        author=_login(node.get("author")),
        state=node.get("state", "OPEN"),
        body=node.get("body") or "",
        labels=_labels(node),
        assignees=_assignees(node),
        comments=_comments(node),
    )


def parse_notification(item: Dict[str, Any]) -> Notification:
    subject = item.get("subject") or {}
    repository = item.get("repository") or {}
    repo = repository.get("full_name", "")
    url = repository.get("html_url", "")
    number = 0
    match = _SUBJECT_URL.search(subject.get("url") or "")
    if match:
        kind = {"pulls": "pull", "issues": "issues", "commits": "commit", "releases": "releases"}[match["kind"]]
        url = f"https://github.com/{match['repo']}/{kind}/{match['ref']}"
        if match["ref"].isdigit():
            number = int(match["ref"])
    return Notification(
        id=str(item["id"]),
        repo=repo,
        title=subject.get("title", ""),
        url=url,
        updated_at=parse_timestamp(item.get("updated_at")),
        reason=item.get("reason", ""),
        subject_type=subject.get("type", ""),
        unread=bool(item.get("unread", False)),
        number=number,
    )


def search_query(filters: str, kind: str) -> str:
    tokens = filters.split()
    if f"is:{kind}" not in tokens:
        tokens.insert(0, f"is:{kind}")
    if not any(t.startswith("sort:") for t in tokens):
        tokens.append("sort:updated-desc")
    return " ".join(tokens)


def _token_from_gh() -> str:
    try:
        out = subprocess.run(
            ["gh", "auth", "token"], capture_output=True, text=True, check=True
        )
    except (OSError, subprocess.CalledProcessError) as e:
        logger.warning("Could not read a token from gh: %s", e)
        return ""
    return out.stdout.strip()


class GitHubClient(SuggestionSource):
    """Thin HTTP client for the GitHub GraphQL and REST APIs."""

    def __init__(self, config: Dict[str, Any], cache: Optional[Cache] = None):
        self.config = config
        self.cache = cache
        self._session: Optional[requests.Session] = None

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = self._create_session()
        return self._session

    def _create_session(self) -> requests.Session:
        s = requests.Session()
        s.headers.update(REQUEST_HEADERS)
        token = os.environ.get("GH_TOKEN") or os.environ.get("GITHUB_TOKEN") or _token_from_gh()
        if token:
            s.headers["Authorization"] = f"Bearer {token}"
        retries = Retry(
            total=5, backoff_factor=0.3, status_forcelist=[429, 500, 502, 503, 504]
        )
        adapter = HTTPAdapter(max_retries=retries)
        s.mount("https://", adapter)
        return s

    def graphql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = self.session.post(
                GITHUB_GRAPHQL_URL,
                json={"query": query, "variables": variables},
                timeout=HTTP_TIMEOUT,
            )
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise SourceError(f"GitHub query failed: {e}") from e
        if payload.get("errors"):
            raise SourceError(payload["errors"][0].get("message", "GitHub query failed"))
        return payload.get("data") or {}

    def rest(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        try:
            resp = self.session.request(
                method, f"{GITHUB_API_URL}/{path.lstrip('/')}", timeout=HTTP_TIMEOUT, **kwargs
            )
        except requests.RequestException as e:
            raise SourceError(f"GitHub request failed: {e}") from e
        if resp.status_code >= 400 and resp.status_code != 404:
            raise SourceError(f"GitHub request failed: {resp.status_code} {resp.reason}")
        return resp

    def search(self, kind: str, filters: str, limit: int, cursor: Optional[PageCursor]) -> Dict[str, Any]:
        type_name, fields = ("PullRequest", PR_FIELDS) if kind == "pr" else ("Issue", ISSUE_FIELDS)
        query = SEARCH_QUERY % {"type": type_name, "fields": fields}
        variables = {
            "query": search_query(filters, kind),
            "limit": limit,
            "endCursor": cursor.token if cursor else None,
        }
        logger.debug("Searching %s: %s", kind, variables["query"])
        return self.graphql(query, variables)["search"]

    def viewer_login(self) -> str:
        data = self.graphql("query { viewer { login } }", {})
        return data["viewer"]["login"]

    def _cached(self, key: str, loader):
        if self.cache is None:
            return loader()
        return self.cache.remember(key, loader)

    def list_labels(self, repo: str) -> List[str]:
        def load() -> List[str]:
            resp = self.rest("GET", f"repos/{repo}/labels", params={"per_page": 100})
            return [] if resp.status_code == 404 else [l["name"] for l in resp.json()]

        return self._cached(f"labels:{repo}", load)

    def list_users(self, repo: str) -> List[str]:
        def load() -> List[str]:
            resp = self.rest("GET", f"repos/{repo}/assignees", params={"per_page": 100})
            return [] if resp.status_code == 404 else [u["login"] for u in resp.json()]

        return self._cached(f"users:{repo}", load)


class PullRequestSource(RemoteSource):
    def __init__(self, config: Dict[str, Any], client: GitHubClient):
        super().__init__(config)
        self.client = client

    def fetch(self, filters: str, limit: int, cursor: Optional[PageCursor]) -> FetchResult:
        search = self.client.search("pr", filters, limit, cursor)
        page = search.get("pageInfo") or {}
        return FetchResult(
            rows=[parse_pull_request(n) for n in search.get("nodes", []) if n],
            total_count=search.get("issueCount", 0),
            page_cursor=PageCursor(page.get("endCursor"), bool(page.get("hasNextPage"))),
        )


class IssueSource(RemoteSource):
    def __init__(self, config: Dict[str, Any], client: GitHubClient):
        super().__init__(config)
        self.client = client

    def fetch(self, filters: str, limit: int, cursor: Optional[PageCursor]) -> FetchResult:
        search = self.client.search("issue", filters, limit, cursor)
        page = search.get("pageInfo") or {}
        return FetchResult(
            rows=[parse_issue(n) for n in search.get("nodes", []) if n],
            total_count=search.get("issueCount", 0),
            page_cursor=PageCursor(page.get("endCursor"), bool(page.get("hasNextPage"))),
        )


class GitHubNotificationSource(NotificationSource):
    """Notifications over REST; the cursor token is the next page number.

    Only ``repo:`` and ``is:read``/``is:all`` tokens are understood here.
    """

    def __init__(self, config: Dict[str, Any], client: GitHubClient):
        super().__init__(config)
        self.client = client

    def fetch(self, filters: str, limit: int, cursor: Optional[PageCursor]) -> FetchResult:
        tokens = filters.split()
        repos = [t[len("repo:"):] for t in tokens if t.startswith("repo:")]
        include_read = "is:all" in tokens or "is:read" in tokens
        page = int(cursor.token) if cursor and cursor.token else 1

        path = f"repos/{repos[0]}/notifications" if len(repos) == 1 else "notifications"
        params = {"per_page": min(max(limit, 1), 50), "page": page, "all": str(include_read).lower()}
        resp = self.client.rest("GET", path, params=params)
        if resp.status_code == 404:
            raise SourceError(f"No notifications endpoint for {path}")

        rows = [parse_notification(item) for item in resp.json()]
        if len(repos) > 1:
            rows = [n for n in rows if n.repo in repos]
        has_next = "next" in resp.links
        return FetchResult(
            rows=rows,
            total_count=len(rows),
            page_cursor=PageCursor(str(page + 1) if has_next else None, has_next),
        )

    def fetch_thread(self, thread_id: str) -> Optional[Notification]:
        resp = self.client.rest("GET", f"notifications/threads/{thread_id}")
        if resp.status_code == 404:
            return None
        return parse_notification(resp.json())


def create_client(config: Dict[str, Any]) -> GitHubClient:
    return GitHubClient(config, cache=Cache(cache_dir=CACHE_DIR, ttl=CACHE_TTL))
