from __future__ import annotations

import copy
import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

# --- Configuration ---
GITHUB_API_URL = "https://api.github.com"
GITHUB_GRAPHQL_URL = "https://api.github.com/graphql"
HTTP_TIMEOUT = 15

CONFIG_PATH = os.path.expanduser("~/.config/dash/config.json")
CACHE_DIR = os.path.expanduser("~/.cache/dash")
CACHE_TTL = 60 * 60

REQUEST_HEADERS = {
    "Accept": "application/vnd.github+json",
    "User-Agent": "dash-tui",
}

# Seconds a finished task stays visible in the status line.
TASK_CLEAR_DELAY = 2.0
SPINNER_INTERVAL = 0.1

VIEWS = ("notifications", "prs", "issues", "repo")

DEFAULT_CONFIG: Dict[str, Any] = {
    "provider": "github",
    "theme": "dracula",
    "smart_filtering_at_launch": True,
    "defaults": {
        "view": "prs",
        "prs_limit": 20,
        "issues_limit": 20,
        "notifications_limit": 20,
        "branches_limit": 50,
        "refetch_interval_minutes": 30,
        "preview_open": True,
    },
    "pr_sections": [
        {"title": "My Pull Requests", "filters": "is:open author:@me"},
        {"title": "Needs My Review", "filters": "is:open review-requested:@me"},
        {"title": "Involved", "filters": "is:open involves:@me -author:@me"},
    ],
    "issues_sections": [
        {"title": "My Issues", "filters": "is:open author:@me"},
        {"title": "Assigned", "filters": "is:open assignee:@me"},
        {"title": "Involved", "filters": "is:open involves:@me -author:@me"},
    ],
    "notifications_sections": [
        {"title": "All", "filters": ""},
        {"title": "Review Requested", "filters": "reason:review-requested"},
    ],
    "repo_sections": [
        {"title": "Local Branches", "filters": ""},
    ],
    "repo_paths": {},
    "keybindings": {},
}

# --- Logging ---
logger = logging.getLogger("dash")


def setup_logging(debug: bool = False) -> Optional[str]:
    """Configure logging."""
    if not debug:
        logging.basicConfig(level=logging.CRITICAL, handlers=[logging.NullHandler()])
        return None

    ts = datetime.now().strftime("%Y%m%dT%H%M%S")
    pid = os.getpid()
    debug_path = f"/tmp/dash_debug_{ts}_{pid}.log"

    logging.basicConfig(
        level=logging.DEBUG,
        filename=debug_path,
        filemode="a",
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    logger.debug("Debug logging enabled to %s", debug_path)
    return debug_path


def state_dir() -> str:
    """Per-user directory holding bookmark and done stores."""
    base = os.environ.get("XDG_STATE_HOME") or os.path.expanduser("~/.local/state")
    return os.path.join(base, "dash")


def bookmarks_file() -> str:
    return os.path.join(state_dir(), "bookmarks.json")


def done_file() -> str:
    return os.path.join(state_dir(), "done.json")


def ensure_config_file_exists() -> None:
    """Write the default config file if the user's config file is not found."""
    if not os.path.exists(CONFIG_PATH):
        logger.info("Config file not found at %s, creating default.", CONFIG_PATH)
        save_config(DEFAULT_CONFIG)


def load_config() -> Dict[str, Any]:
    """Load the main configuration file."""
    ensure_config_file_exists()
    try:
        with open(CONFIG_PATH, "r") as f:
            config = json.load(f)
            logger.info("Loaded config from %s", CONFIG_PATH)
            return config
    except (IOError, json.JSONDecodeError) as e:
        logger.error("Failed to load config from %s: %s", CONFIG_PATH, e)
        return {}


def save_config(config: Dict[str, Any]) -> None:
    """Save the main configuration file."""
    try:
        os.makedirs(os.path.dirname(CONFIG_PATH), exist_ok=True)
        with open(CONFIG_PATH, "w") as f:
            json.dump(config, f, indent=2)
        logger.info("Saved config to %s", CONFIG_PATH)
    except IOError as e:
        logger.error("Failed to save config to %s: %s", CONFIG_PATH, e)


def get_defaults(config: Dict[str, Any]) -> Dict[str, Any]:
    """Return the `defaults` block with built-in values filled in."""
    defaults = dict(DEFAULT_CONFIG["defaults"])
    defaults.update(config.get("defaults") or {})
    return defaults


def get_section_configs(config: Dict[str, Any], view: str) -> List[Dict[str, Any]]:
    key = {
        "prs": "pr_sections",
        "issues": "issues_sections",
        "notifications": "notifications_sections",
        "repo": "repo_sections",
    }[view]
    sections = config.get(key) or DEFAULT_CONFIG[key]
    return copy.deepcopy(sections)


def resolve_repo_path(config: Dict[str, Any], repo: str) -> Optional[str]:
    """Map `owner/name` to a local clone path.

    An `owner/*` entry maps every repository of that owner to a directory
    of the same name under the configured parent.
    """
    repo_paths: Dict[str, str] = config.get("repo_paths") or {}
    if repo in repo_paths:
        return os.path.expanduser(repo_paths[repo])
    owner, _, name = repo.partition("/")
    wildcard = repo_paths.get(f"{owner}/*")
    if wildcard and name:
        parent = os.path.expanduser(wildcard.rstrip("/").removesuffix("/*"))
        return os.path.join(parent, name)
    return None
