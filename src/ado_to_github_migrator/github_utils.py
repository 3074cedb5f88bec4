from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

from github import Github, GithubException, UnknownObjectException

from . import utils
from .exceptions import MigrationError
from .links import parse_github_reference
from .models import IssueSnapshot, PullRequestStatus

if TYPE_CHECKING:
    from github.Issue import Issue
    from github.Repository import Repository

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

_TOKEN_ENV_VAR: Final[str] = "GITHUB_TOKEN"  # noqa: S105
_DEFAULT_TOKEN_PASS_PATH: Final[str] = "github/cli/token"  # noqa: S105

# OAuth scopes allowing Projects (v2) writes
PROJECT_SCOPES: Final[frozenset[str]] = frozenset({"project"})
STATUS_FIELD: Final[str] = "Status"


def get_token(token: str | None = None, pass_path: str | None = None) -> str | None:
    """Get the GitHub token from the argument, a pass path, env var GITHUB_TOKEN, or the default pass location."""
    return utils.resolve_token(
        token, env_var=_TOKEN_ENV_VAR, pass_path=pass_path, default_pass_path=_DEFAULT_TOKEN_PASS_PATH
    )


def get_client(token: str | None = None) -> Github:
    """Get a GitHub client using the token."""
    return Github(token)


def get_repo(client: Github, repo_path: str) -> Repository:
    try:
        return client.get_repo(repo_path)
    except UnknownObjectException as e:
        msg = f"GitHub repository {repo_path} not found or not accessible"
        raise MigrationError(msg) from e
    except GithubException as e:
        msg = f"Error loading GitHub repository {repo_path}: {e}"
        raise MigrationError(msg) from e


def list_issues(repo: Repository) -> dict[str, IssueSnapshot]:
    """All issues of the repository (pull requests excluded), keyed by URL."""
    issues: dict[str, IssueSnapshot] = {}
    for issue in repo.get_issues(state="all"):
        if issue.pull_request is not None:
            continue
        snapshot = IssueSnapshot.from_issue(issue)
        issues[snapshot.url] = snapshot
    logger.info(f"Found {len(issues)} existing issues in {repo.full_name}")
    return issues


def has_project_scope(client: Github) -> bool:
    """Whether the token may write to Projects.

    Tokens without classic OAuth scopes (fine-grained tokens, apps) report no
    scopes; those are assumed to be allowed and fail later if they are not.
    """
    _ = client.get_user().login
    scopes = client.oauth_scopes
    if scopes is None:
        logger.debug("Token reports no OAuth scopes, assuming project access")
        return True
    return bool(PROJECT_SCOPES.intersection(scopes))


class PullRequestLookup:
    """Fetches (and caches) the state of linked pull requests."""

    def __init__(self, client: Github) -> None:
        self._client: Github = client
        self._cache: dict[str, PullRequestStatus | None] = {}

    def status(self, url: str | None) -> PullRequestStatus | None:
        reference = parse_github_reference(url)
        if reference is None or reference.kind != "pull":
            return None
        if url in self._cache:
            return self._cache[url]

        status: PullRequestStatus | None = None
        try:
            pull = self._client.get_repo(reference.full_name).get_pull(int(reference.id))
            status = PullRequestStatus(merged=bool(pull.merged), closed=pull.state == "closed")
        except GithubException as e:
            logger.warning(f"Could not get state of pull request {url}: {e.status}")
        except OSError as e:
            logger.warning(f"Could not get state of pull request {url}: {e}")
            return None
        self._cache[url] = status  # pyright: ignore[reportArgumentType]
        return status


_FIND_PROJECT_QUERY: Final[str] = """
query FindProject($login: String!, $title: String!) {
    repositoryOwner(login: $login) {
        ... on ProjectV2Owner {
            projectsV2(first: 20, query: $title) {
                nodes {
                    id
                    title
                    field(name: "Status") {
                        ... on ProjectV2SingleSelectField {
                            id
                            options {
                                id
                                name
                            }
                        }
                    }
                }
            }
        }
    }
}
"""

_ADD_ITEM_MUTATION: Final[str] = """
mutation AddItem($project: ID!, $content: ID!) {
    addProjectV2ItemById(input: {projectId: $project, contentId: $content}) {
        item {
            id
        }
    }
}
"""

_SET_STATUS_MUTATION: Final[str] = """
mutation SetStatus($project: ID!, $item: ID!, $field: ID!, $option: String!) {
    updateProjectV2ItemFieldValue(
        input: {projectId: $project, itemId: $item, fieldId: $field, value: {singleSelectOptionId: $option}}
    ) {
        projectV2Item {
            id
        }
    }
}
"""


def _graphql(client: Github, query: str, variables: dict[str, Any]) -> dict[str, Any]:
    # Projects (v2) are GraphQL only; PyGithub's requester provides auth and error handling
    _, data = client.requester.graphql_query(query, variables)
    return data.get("data") or {}


@dataclass
class ProjectBoard:
    """A GitHub Projects (v2) board and its Status field."""

    client: Github
    project_id: str
    title: str
    status_field_id: str | None
    status_options: dict[str, str]

    @classmethod
    def find(cls, client: Github, owner: str, title: str) -> ProjectBoard | None:
        """Find a project by exact title, or None if the owner has no such project."""
        data = _graphql(client, _FIND_PROJECT_QUERY, {"login": owner, "title": title})
        nodes: list[dict[str, Any]] = ((data.get("repositoryOwner") or {}).get("projectsV2") or {}).get("nodes") or []
        for node in nodes:
            if node and node.get("title") == title:
                status_field: dict[str, Any] = node.get("field") or {}
                options = {option["name"]: option["id"] for option in status_field.get("options") or []}
                logger.info(f"Using project '{title}' ({len(options)} status columns)")
                return cls(
                    client=client,
                    project_id=node["id"],
                    title=title,
                    status_field_id=status_field.get("id"),
                    status_options=options,
                )
        logger.warning(f"Project '{title}' not found for {owner}")
        return None

    def add_issue(self, issue: Issue) -> str:
        """Add an issue to the board (a no-op for issues already on it); returns the item id."""
        data = _graphql(self.client, _ADD_ITEM_MUTATION, {"project": self.project_id, "content": issue.node_id})
        return data["addProjectV2ItemById"]["item"]["id"]

    def set_status(self, item_id: str, column: str) -> bool:
        """Move an item to a status column; False if the board has no such column."""
        option_id = self.status_options.get(column)
        if self.status_field_id is None or option_id is None:
            logger.warning(f"Project '{self.title}' has no status column '{column}'")
            return False
        _ = _graphql(
            self.client,
            _SET_STATUS_MUTATION,
            {"project": self.project_id, "item": item_id, "field": self.status_field_id, "option": option_id},
        )
        return True
