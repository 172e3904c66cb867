"""
Trigger Gate - решает, запускать ли pipeline для push события
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Optional


logger = logging.getLogger(__name__)


BRANCH_PREFIX = "refs/heads/"


@dataclass
class PushEvent:
    """Push event that may trigger a deploy"""
    ref: str
    sha: str = ""
    repository: str = ""
    server_url: str = "https://github.com"

    @property
    def branch(self) -> Optional[str]:
        """Branch name, or None for tags and other refs"""
        if self.ref.startswith(BRANCH_PREFIX):
            return self.ref[len(BRANCH_PREFIX):]
        return None

    @property
    def repository_url(self) -> str:
        return f"{self.server_url.rstrip('/')}/{self.repository}.git"

    def authenticated_url(self, token: Optional[str]) -> str:
        """Clone URL carrying the token, so private repositories can be fetched"""
        if not token:
            return self.repository_url
        scheme, _, host = self.server_url.rpartition("://")
        return f"{scheme or 'https'}://x-access-token:{token}@{host.rstrip('/')}/{self.repository}.git"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PushEvent":
        """Build the event from GitHub Actions environment variables

        The JSON payload at GITHUB_EVENT_PATH wins over the plain variables
        when it carries the fields.
        """
        env = os.environ if environ is None else environ

        ref = env.get("GITHUB_REF", "")
        sha = env.get("GITHUB_SHA", "")
        repository = env.get("GITHUB_REPOSITORY", "")
        server_url = env.get("GITHUB_SERVER_URL", "https://github.com")

        event_path = env.get("GITHUB_EVENT_PATH")
        if event_path and Path(event_path).is_file():
            try:
                with open(event_path, 'r', encoding='utf-8') as f:
                    payload = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Ignoring unreadable event payload {event_path}: {e}")
                payload = {}

            if isinstance(payload, dict):
                ref = payload.get("ref") or ref
                sha = payload.get("after") or sha
                repo = payload.get("repository")
                if isinstance(repo, dict) and repo.get("full_name"):
                    repository = repo["full_name"]

        return cls(ref=ref, sha=sha, repository=repository, server_url=server_url)


class TriggerGate:
    """Allow-list of branches that trigger a deploy"""

    def __init__(self, branches: Iterable[str] = ("main",)):
        self.branches = frozenset(branches)

    def matches(self, event: PushEvent) -> bool:
        """True if the event's branch is allow-listed; anything else is a no-op"""
        branch = event.branch
        if branch is None or branch not in self.branches:
            logger.info(
                f"Ignoring push to {event.ref or '<no ref>'}: "
                f"not in {sorted(self.branches)}"
            )
            return False
        return True
