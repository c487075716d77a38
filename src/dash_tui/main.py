#!/usr/bin/env python3
# -*- coding: utf-8 -*-
from __future__ import annotations

import argparse
import logging
import os
import sys

from .app import DashApp
from .config import VIEWS, bookmarks_file, done_file, load_config, setup_logging
from .context import ProgramContext
from .coordinator import ViewCoordinator
from .sources.git import current_repo, repo_root
from .sources.manager import SourceManager
from .stores import DoneStore, OverrideStore

logger = logging.getLogger("dash")


def build_coordinator(config: dict, cwd: str) -> ViewCoordinator:
    repo_path = repo_root(cwd)
    repo = current_repo(repo_path) if repo_path else None
    logger.info("Current repository: %s (%s)", repo, repo_path)

    sources = SourceManager(config, repo_path=repo_path, repo=repo or "")
    ctx = ProgramContext(
        config=config,
        executor=sources.executor,
        git=sources.git,
        repo=repo,
        repo_path=repo_path,
        bookmarks=OverrideStore(bookmarks_file()),
        done=DoneStore(done_file()),
    )
    return ViewCoordinator(ctx, sources, sources.suggestions)


# --- Entrypoint ---
def main() -> None:
    parser = argparse.ArgumentParser(description="GitHub dashboard for the terminal")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--theme", type=str, help="Textual theme for this run")
    parser.add_argument("--view", choices=VIEWS, help="View to open at launch")
    parser.add_argument("--repo", type=str, help="Directory of the clone to use for the repo view")
    args = parser.parse_args()

    debug_path = setup_logging(args.debug)
    if debug_path:
        print(f"Debug logging enabled: {debug_path}", file=sys.stderr)

    config = load_config()
    if args.view:
        config.setdefault("defaults", {})["view"] = args.view
    theme_name = args.theme or config.get("theme") or "dracula"
    logger.info("Using theme: %s", theme_name)

    startup_error = None
    try:
        coordinator = build_coordinator(config, os.path.abspath(args.repo or os.getcwd()))
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        coordinator, startup_error = None, f"Invalid configuration in `~/.config/dash/config.json`: {e}"

    try:
        app = DashApp(coordinator, theme=theme_name, startup_error=startup_error)
        app.run()
    except Exception as e:
        logger.exception("Application crashed: %s", e)
        print(f"Application crashed: {e}", file=sys.stderr)


if __name__ == "__main__":
    main()
