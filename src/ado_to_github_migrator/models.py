"""Data models for migration between Azure DevOps and GitHub.

Work items are read-only snapshots fetched from the ADO REST API. Their
fields are addressed by reference name in the payload; ``WorkItem.from_api``
maps the fields the migration uses onto named attributes and tolerates
missing keys. The raw payload is kept verbatim for the audit block.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Final
from urllib.parse import quote

# Work item states treated as closed on the GitHub side
CLOSED_STATES: Final[frozenset[str]] = frozenset({"Closed", "Done", "Removed", "Resolved"})

# States closed on GitHub as "not planned" instead of "completed"
NOT_PLANNED_STATES: Final[frozenset[str]] = frozenset({"Removed"})

ADO_BASE_URL: Final[str] = "https://dev.azure.com"


def work_item_web_url(org: str, project: str, work_item_id: int | str) -> str:
    """Return the canonical public URL of a work item."""
    return f"{ADO_BASE_URL}/{quote(org)}/{quote(project)}/_workitems/edit/{work_item_id}"


@dataclass(frozen=True)
class Identity:
    """An ADO user reference."""

    unique_name: str
    display_name: str = ""

    @classmethod
    def from_api(cls, value: Any) -> Identity | None:  # noqa: ANN401 - ADO identity fields are untyped
        if not value:
            return None
        if isinstance(value, str):
            # Older API versions return "Display Name <unique@name>"
            name, _, rest = value.partition("<")
            unique_name = rest.rstrip(">").strip() or name.strip()
            return cls(unique_name=unique_name, display_name=name.strip())
        return cls(
            unique_name=value.get("uniqueName", "") or "",
            display_name=value.get("displayName", "") or "",
        )

    def __str__(self) -> str:
        return self.display_name or self.unique_name


@dataclass(frozen=True)
class Relation:
    """A link from a work item to another artifact.

    ``rel`` is the ADO link type reference name (e.g.
    ``System.LinkTypes.Hierarchy-Forward`` or ``ArtifactLink``) and ``name``
    the human readable relationship kind (e.g. ``Child``, ``GitHub Pull Request``).
    """

    url: str
    rel: str
    name: str = ""

    @property
    def kind(self) -> str:
        return self.name or self.rel.rsplit(".", 1)[-1]

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> Relation:
        attributes: dict[str, Any] = payload.get("attributes") or {}
        return cls(
            url=payload.get("url", "") or "",
            rel=payload.get("rel", "") or "",
            name=attributes.get("name", "") or "",
        )


@dataclass(frozen=True)
class PullRequestStatus:
    """State of a GitHub pull request linked from a work item."""

    merged: bool
    closed: bool


@dataclass(frozen=True)
class ResolvedRelation:
    """A relation together with its resolved URL.

    ``url`` is None when the reference could not be resolved.
    """

    relation: Relation
    url: str | None
    pull_request: PullRequestStatus | None = None

    @property
    def kind(self) -> str:
        return self.relation.kind


@dataclass
class WorkItem:
    """An ADO work item snapshot."""

    id: int
    title: str
    type: str
    state: str
    html_url: str
    api_url: str = ""
    description: str = ""
    repro_steps: str = ""
    system_info: str = ""
    acceptance_criteria: str = ""
    assigned_to: Identity | None = None
    tags: list[str] = field(default_factory=list)
    area_path: str = ""
    iteration_path: str = ""
    relations: list[Relation] = field(default_factory=list)
    created_date: str = ""
    created_by: Identity | None = None
    changed_date: str = ""
    changed_by: Identity | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, payload: dict[str, Any], *, web_url: str | None = None) -> WorkItem:
        """Build a work item from a ``GET _apis/wit/workitems/{id}`` response."""
        fields: dict[str, Any] = payload.get("fields") or {}
        links: dict[str, Any] = payload.get("_links") or {}
        html_link: str = (links.get("html") or {}).get("href", "")

        return cls(
            id=int(payload["id"]),
            title=fields.get("System.Title", "") or "",
            type=fields.get("System.WorkItemType", "") or "",
            state=fields.get("System.State", "") or "",
            html_url=web_url or html_link,
            api_url=payload.get("url", "") or "",
            description=fields.get("System.Description", "") or "",
            repro_steps=fields.get("Microsoft.VSTS.TCM.ReproSteps", "") or "",
            system_info=fields.get("Microsoft.VSTS.TCM.SystemInfo", "") or "",
            acceptance_criteria=fields.get("Microsoft.VSTS.Common.AcceptanceCriteria", "") or "",
            assigned_to=Identity.from_api(fields.get("System.AssignedTo")),
            tags=split_tags(fields.get("System.Tags", "")),
            area_path=fields.get("System.AreaPath", "") or "",
            iteration_path=fields.get("System.IterationPath", "") or "",
            relations=[Relation.from_api(r) for r in payload.get("relations") or []],
            created_date=fields.get("System.CreatedDate", "") or "",
            created_by=Identity.from_api(fields.get("System.CreatedBy")),
            changed_date=fields.get("System.ChangedDate", "") or "",
            changed_by=Identity.from_api(fields.get("System.ChangedBy")),
            raw=payload,
        )

    @property
    def iteration_name(self) -> str:
        """Leaf segment of the iteration path."""
        return self.iteration_path.rsplit("\\", 1)[-1] if self.iteration_path else ""

    @property
    def alternate_url(self) -> str:
        """The ``_links.html`` form of the detail view, which uses the project GUID."""
        links: dict[str, Any] = self.raw.get("_links") or {}
        return (links.get("html") or {}).get("href", "") or ""

    def identities(self) -> list[str]:
        """All identity strings under which this work item may be mapped, canonical first."""
        identities: list[str] = []
        for identity in (self.html_url, self.api_url, self.alternate_url):
            if identity and identity not in identities:
                identities.append(identity)
        return identities

    def is_closed(self, closed_states: frozenset[str] = CLOSED_STATES) -> bool:
        return self.state in closed_states


@dataclass(frozen=True)
class WorkItemComment:
    """A discussion comment on a work item."""

    text: str
    author: str = ""
    created_date: str = ""

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> WorkItemComment:
        created_by = Identity.from_api(payload.get("createdBy"))
        return cls(
            text=payload.get("text", "") or "",
            author=str(created_by) if created_by else "",
            created_date=payload.get("createdDate", "") or "",
        )


@dataclass
class IssueSnapshot:
    """Cached view of a GitHub issue, keyed by its URL in the migration state."""

    url: str
    number: int
    title: str
    state: str = "open"
    state_reason: str | None = None
    labels: list[str] = field(default_factory=list)
    milestone: str | None = None
    assignees: list[str] = field(default_factory=list)

    @classmethod
    def from_issue(cls, issue: Any) -> IssueSnapshot:  # noqa: ANN401 - github.Issue.Issue or test double
        return cls(
            url=issue.html_url,
            number=issue.number,
            title=issue.title,
            state=issue.state,
            state_reason=getattr(issue, "state_reason", None),
            labels=[label.name for label in issue.labels],
            milestone=issue.milestone.title if issue.milestone else None,
            assignees=[assignee.login for assignee in issue.assignees],
        )


def split_tags(value: str | None) -> list[str]:
    """Split an ADO ``System.Tags`` value into unique trimmed tags, preserving order."""
    tags: list[str] = []
    for raw_tag in (value or "").split(";"):
        tag = raw_tag.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags
