"""
Creation of the configured labels in the GitHub repository.

Issue updates never create labels; this runs once before the first work item
and only when requested on the command line.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

from github import GithubException

from .exceptions import MigrationError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from github.Repository import Repository as GithubRepository

    from .state import MigrationState

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_LABEL_COLOR: Final[str] = "0078d7"


def _is_already_exists_error(exc: GithubException) -> bool:
    """Check if a GithubException is a 422 'already_exists' validation error."""
    if not isinstance(exc.data, dict):
        return False
    errors: object = exc.data.get("errors")  # pyright: ignore[reportUnknownVariableType]
    if not isinstance(errors, list):
        return False
    return any(isinstance(e, dict) and e.get("code") == "already_exists" for e in errors)  # pyright: ignore[reportUnknownArgumentType,reportUnknownVariableType]


def ensure_labels(
    github_repo: GithubRepository,
    names: Iterable[str],
    state: MigrationState,
    *,
    color: str = DEFAULT_LABEL_COLOR,
) -> list[str]:
    """Create labels missing from the repository and add them to the state's label cache.

    Matching is case-insensitive, as GitHub labels are.

    Returns:
        Names of the labels that were created

    Raises:
        MigrationError: If a label cannot be created
    """
    created: list[str] = []
    for name in dict.fromkeys(n.strip() for n in names if n and n.strip()):
        if state.label_name(name) is not None:
            continue

        try:
            label = github_repo.create_label(
                name=name,
                color=color,
                description="Created by the Azure DevOps migration",
            )
            created.append(label.name)
            logger.info(f"Created label: {label.name}")
        except GithubException as e:
            if e.status == 422 and _is_already_exists_error(e):
                # Created concurrently since the label cache was filled
                label = github_repo.get_label(name)
                logger.debug(f"Label already existed: {label.name}")
            else:
                msg = f"Failed to create label {name}"
                raise MigrationError(msg) from e

        state.labels[label.name.lower()] = label.name

    return created
