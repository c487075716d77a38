from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from ..datamodels import SectionType
from .base import MutationExecutor, NotificationSource, RemoteSource, SuggestionSource
from .gh_cli import gh_executor, git_executor
from .git import GitSource
from .github import (
    GitHubNotificationSource,
    IssueSource,
    PullRequestSource,
    create_client,
)
from .gitlab import (
    GitLabIssueSource,
    GlabExecutor,
    MergeRequestSource,
    TodoSource,
    create_gitlab_client,
)


class Provider:
    """The sources, suggestion pools and mutation executor of one host."""

    name = ""
    sources: Dict[SectionType, RemoteSource]
    suggestions: SuggestionSource
    executor: MutationExecutor


class GitHubProvider(Provider):
    name = "github"

    def __init__(self, config: Dict[str, Any], repo_path: Optional[str], repo: str):
        client = create_client(config)
        self.sources = {
            SectionType.PRS: PullRequestSource(config, client),
            SectionType.ISSUES: IssueSource(config, client),
            SectionType.NOTIFICATIONS: GitHubNotificationSource(config, client),
            SectionType.REPO: GitSource(config, repo_path, repo),
        }
        self.suggestions = client
        self.executor = gh_executor()


class GitLabProvider(Provider):
    name = "gitlab"

    def __init__(self, config: Dict[str, Any], repo_path: Optional[str], repo: str):
        client = create_gitlab_client(config)
        self.sources = {
            SectionType.PRS: MergeRequestSource(config, client),
            SectionType.ISSUES: GitLabIssueSource(config, client),
            SectionType.NOTIFICATIONS: TodoSource(config, client),
            SectionType.REPO: GitSource(config, repo_path, repo),
        }
        self.suggestions = client
        self.executor = GlabExecutor()


AVAILABLE_PROVIDERS: Dict[str, Callable[..., Provider]] = {
    "github": GitHubProvider,
    "gitlab": GitLabProvider,
}


class SourceManager:
    def __init__(self, config: Dict[str, Any], repo_path: Optional[str] = None, repo: str = ""):
        self.config = config
        name = config.get("provider", "github")
        provider_class = AVAILABLE_PROVIDERS.get(name)
        if provider_class is None:
            raise ValueError(f"Unknown provider: {name}")
        self.provider = provider_class(config, repo_path, repo)
        self.executor: MutationExecutor = self.provider.executor
        self.git: MutationExecutor = git_executor()

    def source_for(self, section_type: SectionType) -> RemoteSource:
        return self.provider.sources[section_type]

    @property
    def notifications(self) -> NotificationSource:
        return self.provider.sources[SectionType.NOTIFICATIONS]

    @property
    def suggestions(self) -> SuggestionSource:
        return self.provider.suggestions
