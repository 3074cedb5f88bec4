"""
Pytest configuration and shared fixtures.

Work items are built from ADO REST payloads and GitHub objects are Mocks, so
no test touches the network.
"""

from __future__ import annotations

import datetime as dt
from typing import Any
from unittest.mock import Mock

import pytest

from ado_to_github_migrator.config import MigrationConfig, MigrationOptions
from ado_to_github_migrator.models import WorkItem, work_item_web_url
from ado_to_github_migrator.state import MigrationState

ORG = "contoso"
PROJECT = "Fabrikam"
GITHUB_ORG = "contoso-gh"
GITHUB_REPO = "fabrikam"


def work_item_payload(
    work_item_id: int = 42,
    *,
    title: str = "Login page crashes",
    item_type: str = "Bug",
    state: str = "Active",
    relations: list[dict[str, Any]] | None = None,
    **fields: Any,
) -> dict[str, Any]:
    """A ``GET _apis/wit/workitems/{id}?$expand=all`` response."""
    payload_fields: dict[str, Any] = {
        "System.Title": title,
        "System.WorkItemType": item_type,
        "System.State": state,
        "System.AreaPath": f"{PROJECT}\\Web",
        "System.IterationPath": f"{PROJECT}\\Sprint 1",
        "System.CreatedDate": "2024-03-01T10:00:00+00:00",
        "System.CreatedBy": {"displayName": "Ada Lovelace", "uniqueName": "ada@contoso.com"},
        "System.ChangedDate": "2024-03-02T11:30:00+00:00",
        "System.ChangedBy": {"displayName": "Ada Lovelace", "uniqueName": "ada@contoso.com"},
    }
    payload_fields.update(fields)
    return {
        "id": work_item_id,
        "rev": 3,
        "url": f"https://dev.azure.com/{ORG}/_apis/wit/workItems/{work_item_id}",
        "fields": payload_fields,
        "relations": relations or [],
        "_links": {
            "html": {"href": f"https://dev.azure.com/{ORG}/0f5e-guid/_workitems/edit/{work_item_id}"},
        },
    }


def make_work_item(work_item_id: int = 42, **kwargs: Any) -> WorkItem:
    return WorkItem.from_api(
        work_item_payload(work_item_id, **kwargs),
        web_url=work_item_web_url(ORG, PROJECT, work_item_id),
    )


def make_label(name: str) -> Mock:
    label = Mock()
    label.name = name
    return label


def make_issue(
    number: int = 1,
    *,
    title: str = "Login page crashes",
    state: str = "open",
    labels: list[str] | None = None,
    assignees: list[str] | None = None,
    comments: list[Mock] | None = None,
) -> Mock:
    issue = Mock()
    issue.number = number
    issue.title = title
    issue.state = state
    issue.state_reason = None
    issue.html_url = f"https://github.com/{GITHUB_ORG}/{GITHUB_REPO}/issues/{number}"
    issue.node_id = f"I_node{number}"
    issue.labels = [make_label(name) for name in labels or []]
    issue.milestone = None
    issue.assignees = [Mock(login=login) for login in assignees or []]
    issue.pull_request = None
    issue.get_comments.return_value = comments or []
    return issue


def make_comment(body: str, comment_id: int = 1, *, created_at: dt.datetime | None = None) -> Mock:
    comment = Mock()
    comment.id = comment_id
    comment.body = body
    comment.created_at = created_at or dt.datetime(2024, 1, comment_id, tzinfo=dt.UTC)
    return comment


@pytest.fixture
def config() -> MigrationConfig:
    return MigrationConfig(
        type_labels={"Bug": "bug", "User Story": "enhancement"},
        state_labels={"Active": "in progress"},
        state_columns={"Active": "In Progress", "Closed": "Done"},
        user_logins={"ada@contoso.com": "ada-gh"},
        tag_labels={"frontend": "area: frontend"},
        repositories={"1234abcd": "web-app"},
    )


@pytest.fixture
def options() -> MigrationOptions:
    return MigrationOptions(
        ado_org=ORG,
        ado_project=PROJECT,
        github_org=GITHUB_ORG,
        github_repo=GITHUB_REPO,
    )


@pytest.fixture
def state() -> MigrationState:
    migration_state = MigrationState()
    migration_state.labels = {
        name.lower(): name for name in ("bug", "enhancement", "in progress", "area: frontend", "archived")
    }
    return migration_state


@pytest.fixture
def github_repo() -> Mock:
    repo = Mock()
    repo.full_name = f"{GITHUB_ORG}/{GITHUB_REPO}"
    repo.get_labels.return_value = []
    repo.get_milestones.return_value = []
    repo.get_issues.return_value = []
    return repo
