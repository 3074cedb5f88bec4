"""
Creation of GitHub milestones from ADO iterations.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import TYPE_CHECKING, Any

from github import GithubException

from .exceptions import MigrationError

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable

    from github.Repository import Repository

    from .state import MigrationState

logger: logging.Logger = logging.getLogger(__name__)


def _parse_date(value: str | None) -> dt.datetime | None:
    if not value:
        return None
    try:
        parsed = dt.datetime.fromisoformat(value)
    except ValueError:
        logger.debug(f"Ignoring unparsable iteration date {value!r}")
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=dt.UTC)


def ensure_iteration_milestones(
    github_repo: Repository,
    iterations: Iterable[dict[str, Any]],
    state: MigrationState,
    *,
    prefix: str = "",
    only: Collection[str] | None = None,
    now: dt.datetime | None = None,
) -> list[str]:
    """Create a milestone per iteration, due at the iteration's finish date.

    Args:
        github_repo: Repository to create milestones in
        iterations: Iterations as returned by ``AdoClient.get_iterations``
        state: Migration state whose milestone cache is consulted and updated
        prefix: Prepended to the iteration name to form the milestone title
        only: If given, only iterations with these names are considered
        now: Reference time deciding whether a finished iteration's milestone is closed

    Returns:
        Titles of the created milestones
    """
    now = now or dt.datetime.now(dt.UTC)
    created: list[str] = []

    for iteration in iterations:
        name: str = iteration.get("name", "")
        if not name or (only is not None and name not in only):
            continue
        title = f"{prefix}{name}"
        if title in state.milestones:
            continue

        finish = _parse_date(iteration.get("finish_date"))
        milestone_params: dict[str, Any] = {
            "title": title,
            "state": "closed" if finish is not None and finish < now else "open",
            "description": f"Azure DevOps iteration {iteration.get('path', name)}",
        }
        if finish is not None:
            milestone_params["due_on"] = finish.date()

        try:
            milestone = github_repo.create_milestone(**milestone_params)
        except GithubException as e:
            msg = f"Failed to create milestone {title}: {e}"
            raise MigrationError(msg) from e

        state.milestones[title] = milestone
        created.append(title)
        logger.info(f"Created milestone '{title}'")

    return created
