"""Build GitHub issue bodies and migration comments from ADO work items."""

from __future__ import annotations

import datetime as dt
import json
import re
from typing import TYPE_CHECKING, Any, Final
from urllib.parse import parse_qsl, quote, urlencode

from .links import issue_number, parse_github_reference, work_item_id

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from .models import ResolvedRelation, WorkItem, WorkItemComment
    from .state import MigrationState

PLACEHOLDER_BODY: Final[str] = "_No description provided._"

# First line of the single comment carrying the work item's metadata
MIGRATION_COMMENT_MARKER: Final[str] = "<!-- ado-work-item-migration -->"

SOURCE_PREFIX: Final[str] = "AB"

# GitHub rejects issue and comment bodies longer than this
MAX_BODY_LENGTH: Final[int] = 65536

_DEFECT_TYPES: Final[tuple[str, ...]] = ("bug", "defect")

_GITHUB_SOURCE_LINK_RE: Final[re.Pattern[str]] = re.compile(
    r"(?P<base>https://github\.com/[^/\s\"'<>]+/[^/\s\"'<>]+)/(?:tree|blob)/(?P<path>[^\s\"'<>?#]+)(?:\?(?P<query>[^\s\"'<>#]*))?"
)
_LINE_PARAMS: Final[frozenset[str]] = frozenset({"line", "lineEnd", "lineStartColumn", "lineEndColumn", "plain"})

_BADGE_STYLES: Final[dict[str, tuple[str, str, str]]] = {
    # kind -> (label, logo, color)
    "pull": ("Pull Request", "github", "8957e5"),
    "issues": ("Issue", "github", "238636"),
    "commit": ("Commit", "git", "f05032"),
}
_ADO_LOGO: Final[str] = "azuredevops"
_ADO_COLOR: Final[str] = "0078d7"
_COMMIT_ID_RE: Final[re.Pattern[str]] = re.compile(r"^[0-9a-f]{40}$", re.IGNORECASE)


def format_timestamp(iso_timestamp: str) -> str:
    """Format ISO 8601 timestamp to human-readable format.

    Returns original value if parsing fails.
    """
    if not iso_timestamp:
        return iso_timestamp

    try:
        timestamp_dt = dt.datetime.fromisoformat(iso_timestamp)
        formatted = timestamp_dt.isoformat(sep=" ", timespec="seconds")
        return formatted.replace("+00:00", "Z")
    except (ValueError, AttributeError):
        return iso_timestamp


def is_defect(item: WorkItem) -> bool:
    item_type = item.type.lower()
    return any(defect in item_type for defect in _DEFECT_TYPES)


def build_title(item: WorkItem) -> str:
    """Issue title for a work item.

    Whitespace runs (including newlines) are collapsed; quotes are kept
    as-is since the title is sent as JSON.
    """
    title = " ".join(item.title.split())
    return title or f"Work item {item.id}"


def rewrite_source_links(text: str) -> str:
    """Point GitHub source links at the blob view and turn line parameters into anchors.

    ``https://github.com/o/r/tree/main/a.py?line=3&lineEnd=5`` becomes
    ``https://github.com/o/r/blob/main/a.py#L3-L5``.
    """

    def _rewrite(match: re.Match[str]) -> str:
        url = f"{match.group('base')}/blob/{match.group('path')}"
        query = (match.group("query") or "").replace("&amp;", "&")
        params = parse_qsl(query, keep_blank_values=True)

        kept = [(key, value) for key, value in params if key not in _LINE_PARAMS]
        if kept:
            url += "?" + urlencode(kept)

        values = dict(params)
        line = values.get("line")
        if line and line.isdigit():
            url += f"#L{line}"
            line_end = values.get("lineEnd")
            if line_end and line_end.isdigit() and line_end != line:
                url += f"-L{line_end}"
        return url

    return _GITHUB_SOURCE_LINK_RE.sub(_rewrite, text)


def build_pull_request_checklist(relations: Sequence[ResolvedRelation]) -> str:
    """Task list of linked pull requests, checked when merged or closed."""
    lines: list[str] = []
    for relation in relations:
        reference = parse_github_reference(relation.url)
        if reference is None or reference.kind != "pull":
            continue
        status = relation.pull_request
        mention = reference.mention()
        if status is not None and status.merged:
            lines.append(f"- [x] {mention}")
        elif status is not None and status.closed:
            lines.append(f"- [x] ~~{mention}~~")
        else:
            lines.append(f"- [ ] {mention}")

    if not lines:
        return ""
    return "## Pull Requests\n\n" + "\n".join(lines)


def build_description(item: WorkItem, relations: Sequence[ResolvedRelation] = ()) -> str:
    """Describe the work item; never returns an empty string."""
    sections: list[str] = []

    if is_defect(item):
        if item.repro_steps.strip():
            sections.append(f"## Repro Steps\n\n{rewrite_source_links(item.repro_steps.strip())}")
        if item.system_info.strip():
            sections.append(f"## System Info\n\n{item.system_info.strip()}")
    else:
        if item.description.strip():
            sections.append(item.description.strip())
        if item.acceptance_criteria.strip():
            sections.append(f"## Acceptance Criteria\n\n{item.acceptance_criteria.strip()}")

    checklist = build_pull_request_checklist(relations)
    if checklist:
        sections.append(checklist)

    return "\n\n".join(sections) or PLACEHOLDER_BODY


def _cell(value: object) -> str:
    text = str(value) if value else ""
    return text.replace("|", "\\|").replace("\r", " ").replace("\n", " ")


def build_metadata_table(item: WorkItem) -> str:
    header = (
        "| Created date | Created by | Changed date | Changed by | Assigned To "
        "| State | Type | Area Path | Iteration Path |"
    )
    cells = [
        format_timestamp(item.created_date),
        item.created_by,
        format_timestamp(item.changed_date),
        item.changed_by,
        item.assigned_to,
        item.state,
        item.type,
        item.area_path,
        item.iteration_path,
    ]
    row = "| " + " | ".join(_cell(c) for c in cells) + " |"
    return (
        "<details><summary>Original Work Item Details</summary>\n\n"
        f"{header}\n|{'---|' * len(cells)}\n{row}\n\n"
        "</details>"
    )


def relation_link_text(
    relation: ResolvedRelation,
    state: MigrationState | None = None,
    *,
    mention: bool = False,
) -> str:
    """Link text for a relation.

    GitHub artifacts render as ``owner/repo#12`` (``owner/repo@abc1234`` for
    commits) when ``mention`` is set and as the bare id otherwise. Work items
    already migrated render as ``#<issue number>``, other work items as
    ``AB#<id>``.
    """
    url = relation.url or relation.relation.url
    reference = parse_github_reference(url)
    if reference is not None:
        return reference.mention() if mention else reference.short_id

    if state is not None:
        mapped = state.lookup(url, relation.relation.url)
        if mapped:
            return f"#{issue_number(mapped)}"

    item_id = work_item_id(url)
    if item_id is not None:
        return f"{SOURCE_PREFIX}#{item_id}"

    return "link"


def build_relations_table(
    relations: Sequence[ResolvedRelation],
    query_index: Mapping[str, str],
    state: MigrationState | None = None,
    *,
    mention: bool = False,
) -> str:
    """Markdown table of the work item's relations; unresolvable ones are omitted."""
    rows: list[str] = []
    for relation in relations:
        if relation.url is None:
            continue
        text = relation_link_text(relation, state, mention=mention)
        title = query_index.get(relation.url) or query_index.get(relation.relation.url, "")
        rows.append(f"| {_cell(relation.kind)} | [{text}]({relation.url}) | {_cell(title)} |")

    if not rows:
        return ""
    return "## Related Items\n\n| Relationship | Link | Title |\n|---|---|---|\n" + "\n".join(rows)


def _shields_escape(text: str) -> str:
    return quote(text.replace("-", "--").replace("_", "__"), safe="")


def badge(label: str, message: str, color: str, *, logo: str | None = None, link: str | None = None) -> str:
    """Markdown for a shields.io static badge, optionally wrapped in a link."""
    url = f"https://img.shields.io/badge/{_shields_escape(label)}-{_shields_escape(message)}-{color}"
    if logo:
        url += f"?logo={logo}"
    image = f"![{label}: {message}]({url})"
    return f"[{image}]({link})" if link else image


def _short_id(value: str) -> str:
    return value[:7] if _COMMIT_ID_RE.match(value) else value


def badge_for_relation(relation: ResolvedRelation) -> str:
    url = relation.url or relation.relation.url
    reference = parse_github_reference(url)
    if reference is not None:
        label, logo, color = _BADGE_STYLES[reference.kind]
        return badge(label, reference.short_id, color, logo=logo, link=url)

    item_id = work_item_id(url)
    message = str(item_id) if item_id is not None else _short_id(url.rstrip("/").rsplit("/", 1)[-1])
    return badge(relation.kind, message, _ADO_COLOR, logo=_ADO_LOGO, link=url)


def build_comment_header(
    item: WorkItem,
    relations: Sequence[ResolvedRelation] = (),
    tags: Iterable[str] = (),
) -> str:
    badges = [badge("Azure DevOps", f"{item.type} {item.id}", _ADO_COLOR, logo=_ADO_LOGO, link=item.html_url)]
    badges.extend(badge_for_relation(relation) for relation in relations if relation.url)

    seen: set[str] = set()
    for raw_tag in tags:
        tag = raw_tag.strip()
        if tag and tag not in seen:
            seen.add(tag)
            badges.append(badge("tag", tag, "lightgrey"))

    return " ".join(badges)


def build_comment_body(details_raw: Any) -> str:  # noqa: ANN401 - raw JSON payload
    details = json.dumps(details_raw, indent=2, sort_keys=True, ensure_ascii=False, default=str)
    return f"<details><summary>Original Work Item JSON</summary>\n\n```json\n{details}\n```\n\n</details>"


def format_work_item_comments(comments: Sequence[WorkItemComment]) -> str:
    if not comments:
        return ""
    parts = ["## Azure DevOps Comments"]
    parts.extend(
        f"**{comment.author or 'Unknown'}** commented on {format_timestamp(comment.created_date)}\n\n{comment.text}"
        for comment in comments
    )
    return "\n\n---\n\n".join(parts)


def build_issue_body(
    item: WorkItem,
    relations: Sequence[ResolvedRelation],
    query_index: Mapping[str, str],
    state: MigrationState | None = None,
    *,
    mention: bool = False,
) -> str:
    """Complete issue body: description, metadata table and relations table."""
    sections = [build_description(item, relations), build_metadata_table(item)]
    relations_table = build_relations_table(relations, query_index, state, mention=mention)
    if relations_table:
        sections.append(relations_table)
    return truncate("\n\n".join(sections))


def build_migration_comment(
    item: WorkItem,
    relations: Sequence[ResolvedRelation] = (),
    comments: Sequence[WorkItemComment] | None = None,
) -> str:
    """The single migration comment, identified by its first line."""
    sections = [MIGRATION_COMMENT_MARKER + "\n" + build_comment_header(item, relations, item.tags)]
    if comments:
        sections.append(format_work_item_comments(comments))
    sections.append(build_comment_body(item.raw))
    return truncate("\n\n".join(sections))


def is_migration_comment(body: str | None) -> bool:
    return bool(body) and body.lstrip().startswith(MIGRATION_COMMENT_MARKER)  # pyright: ignore[reportOptionalMemberAccess]


def truncate(body: str, limit: int = MAX_BODY_LENGTH) -> str:
    if len(body) <= limit:
        return body
    notice = "\n\n_Truncated: content exceeded GitHub's size limit._"
    return body[: limit - len(notice)] + notice
