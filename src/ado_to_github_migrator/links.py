"""
Resolution of ADO relation URLs into public URLs.

Work item relations point either at other work items (REST API URLs), at
GitHub artifacts through ADO's GitHub connection (``vstfs:///GitHub/...``
artifact links), or at arbitrary hyperlinks.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final
from urllib.parse import unquote

from .models import work_item_web_url

if TYPE_CHECKING:
    from .config import MigrationConfig
    from .state import MigrationState

logger: logging.Logger = logging.getLogger(__name__)

GITHUB_BASE_URL: Final[str] = "https://github.com"

_WORK_ITEM_API_RE: Final[re.Pattern[str]] = re.compile(r"/_apis/wit/workItems/(\d+)/?$", re.IGNORECASE)
_WORK_ITEM_WEB_RE: Final[re.Pattern[str]] = re.compile(r"/_workitems/edit/(\d+)/?$", re.IGNORECASE)
# vstfs:///GitHub/PullRequest/<repo id>%2F<number>
_ARTIFACT_RE: Final[re.Pattern[str]] = re.compile(
    r"^vstfs:///GitHub/(?P<kind>Commit|PullRequest|Issue)/(?P<repo>[^/%]+)(?:%2F|/)(?P<target>.+)$",
    re.IGNORECASE,
)
_GITHUB_REF_RE: Final[re.Pattern[str]] = re.compile(
    r"^https://github\.com/(?P<owner>[^/]+)/(?P<repo>[^/]+)/(?P<kind>issues|pull|commit)/(?P<id>[0-9A-Za-z]+)"
)

_ARTIFACT_PATHS: Final[dict[str, str]] = {
    "commit": "commit",
    "pullrequest": "pull",
    "issue": "issues",
}


@dataclass(frozen=True)
class GithubReference:
    """A parsed GitHub issue, pull request or commit URL."""

    owner: str
    repo: str
    kind: str  # "issues", "pull" or "commit"
    id: str

    @property
    def is_commit(self) -> bool:
        return self.kind == "commit"

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def short_id(self) -> str:
        return self.id[:7] if self.is_commit else self.id

    def mention(self) -> str:
        """Cross-reference form, ``owner/repo#12`` or ``owner/repo@abc1234``."""
        separator = "@" if self.is_commit else "#"
        return f"{self.full_name}{separator}{self.short_id}"


def parse_github_reference(url: str | None) -> GithubReference | None:
    if not url:
        return None
    match = _GITHUB_REF_RE.match(url)
    if not match:
        return None
    return GithubReference(**match.groupdict())


def work_item_id(url: str | None) -> int | None:
    """Extract the work item id from an ADO API or web URL."""
    if not url:
        return None
    match = _WORK_ITEM_API_RE.search(url) or _WORK_ITEM_WEB_RE.search(url)
    return int(match.group(1)) if match else None


def issue_number(url: str) -> int:
    """Numeric suffix of a GitHub issue URL (0 if there is none)."""
    match = re.search(r"(\d+)/?$", url)
    return int(match.group(1)) if match else 0


class LinkResolver:
    """Resolves relation references to public ADO or GitHub URLs."""

    def __init__(
        self,
        config: MigrationConfig,
        state: MigrationState,
        *,
        ado_org: str,
        ado_project: str,
        github_org: str,
    ) -> None:
        self.config: MigrationConfig = config
        self.state: MigrationState = state
        self.ado_org: str = ado_org
        self.ado_project: str = ado_project
        self.github_org: str = github_org

    def resolve(self, reference: str, *, prefer_mapped: bool = False) -> str | None:
        """Resolve a reference.

        Returns the mapped GitHub issue URL (when ``prefer_mapped`` is set
        and a mapping exists), the public URL of a work item or GitHub
        artifact, the reference itself for plain URLs, or None when the
        artifact's repository is unknown.
        """
        if prefer_mapped:
            mapped = self.state.lookup(reference)
            if mapped:
                return mapped

        if _WORK_ITEM_API_RE.search(reference):
            item_id = work_item_id(reference)
            return work_item_web_url(self.ado_org, self.ado_project, item_id)  # pyright: ignore[reportArgumentType]

        match = _ARTIFACT_RE.match(reference)
        if not match:
            return reference

        repo_id = match.group("repo")
        target = unquote(match.group("target"))
        repo_name = self.config.repositories.get(repo_id) or self.config.repositories.get(repo_id.lower())
        if not repo_name:
            logger.warning(f"Cannot resolve {reference}: repository id {repo_id} is not in the repositories config")
            return None

        repo_path = repo_name if "/" in repo_name else f"{self.github_org}/{repo_name}"
        path = _ARTIFACT_PATHS[match.group("kind").lower()]
        return f"{GITHUB_BASE_URL}/{repo_path}/{path}/{target}"
