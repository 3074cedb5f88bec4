"""
Detection of work items that already have a GitHub issue, by title.

This is a best-effort heuristic: unrelated items sharing a title are
matched to the same issue. Results are merged into the migration state with
first-writer-wins, so checkpoint entries always take precedence.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Literal

from .content import build_title
from .links import issue_number

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from .models import IssueSnapshot, WorkItem
    from .state import MigrationState

logger: logging.Logger = logging.getLogger(__name__)

TieBreak = Literal["first", "last"]


def resolve_duplicate_titles(
    existing_issues: Mapping[str, IssueSnapshot],
    tie_break: TieBreak = "first",
) -> dict[str, str]:
    """Build a title -> issue URL index, keeping one issue per duplicated title.

    ``"first"`` keeps the issue with the lowest number, ``"last"`` the highest.
    """
    if tie_break not in ("first", "last"):
        msg = f"Invalid tie-break policy: {tie_break!r} (expected 'first' or 'last')"
        raise ValueError(msg)

    urls_by_title: dict[str, list[str]] = defaultdict(list)
    for url, issue in existing_issues.items():
        urls_by_title[issue.title].append(url)

    index: dict[str, str] = {}
    if len(urls_by_title) < len(existing_issues):
        logger.warning(
            f"{len(existing_issues)} issues share only {len(urls_by_title)} distinct titles, "
            f"keeping the {tie_break} issue of each duplicate group"
        )

    for title, urls in urls_by_title.items():
        if len(urls) == 1:
            index[title] = urls[0]
            continue

        candidates = sorted(urls, key=issue_number, reverse=tie_break == "last")
        selected = candidates[0]
        listing = ", ".join(f"{url} (selected)" if url == selected else url for url in candidates)
        logger.warning(f"Duplicate issues titled {title!r}: {listing}")
        index[title] = selected

    return index


def reconcile(
    source_batch: Iterable[WorkItem],
    existing_issues: Mapping[str, IssueSnapshot],
    tie_break: TieBreak = "first",
    state: MigrationState | None = None,
) -> dict[str, str]:
    """Map work item URLs to existing issues with the same title.

    Items that ``state`` already maps under any of their identities are
    skipped, so a checkpoint entry kept under an alias URL is never shadowed
    by a title match stored under the canonical URL.
    """
    index = resolve_duplicate_titles(existing_issues, tie_break)

    matches: dict[str, str] = {}
    for item in source_batch:
        if state is not None and state.lookup(*item.identities()):
            continue
        url = index.get(build_title(item))
        if url:
            matches[item.html_url] = url
            logger.debug(f"Work item {item.id} matches existing issue {url} by title")

    logger.info(f"Matched {len(matches)} work items to existing issues by title")
    return matches
