"""
Tests for GitHub utilities module.
"""

from unittest.mock import Mock

import pytest
import requests
from conftest import make_issue
from github import GithubException, UnknownObjectException

from ado_to_github_migrator import MigrationError
from ado_to_github_migrator.github_utils import (
    ProjectBoard,
    PullRequestLookup,
    get_repo,
    has_project_scope,
    list_issues,
)

PROJECT_NODE = {
    "id": "PVT_1",
    "title": "Roadmap",
    "field": {"id": "PVTSSF_1", "options": [{"id": "opt_todo", "name": "Todo"}, {"id": "opt_done", "name": "Done"}]},
}


def _graphql_client(*payloads: dict) -> Mock:
    client = Mock()
    client.requester.graphql_query.side_effect = [({}, {"data": payload}) for payload in payloads]
    return client


@pytest.mark.unit
class TestGetRepo:
    """Test repository lookup."""

    def test_missing_repository(self) -> None:
        client = Mock()
        client.get_repo.side_effect = UnknownObjectException(404, {"message": "Not Found"}, headers={})

        with pytest.raises(MigrationError, match="not found or not accessible"):
            _ = get_repo(client, "o/missing")

    def test_other_error(self) -> None:
        client = Mock()
        client.get_repo.side_effect = GithubException(500, {"message": "boom"}, headers={})

        with pytest.raises(MigrationError, match="Error loading GitHub repository o/r"):
            _ = get_repo(client, "o/r")


@pytest.mark.unit
class TestListIssues:
    """Test listing existing issues."""

    def test_pull_requests_are_excluded(self) -> None:
        issue = make_issue(1, title="Real issue", labels=["bug"])
        pull = make_issue(2, title="A pull request")
        pull.pull_request = Mock()
        repo = Mock()
        repo.full_name = "o/r"
        repo.get_issues.return_value = [issue, pull]

        issues = list_issues(repo)

        assert list(issues) == [issue.html_url]
        assert issues[issue.html_url].labels == ["bug"]
        repo.get_issues.assert_called_once_with(state="all")


@pytest.mark.unit
class TestHasProjectScope:
    @pytest.mark.parametrize(
        ("scopes", "expected"),
        [(["repo", "project"], True), (["repo"], False), (None, True)],
    )
    def test_scopes(self, scopes: list[str] | None, expected: bool) -> None:
        client = Mock()
        client.oauth_scopes = scopes
        assert has_project_scope(client) is expected


@pytest.mark.unit
class TestPullRequestLookup:
    """Test pull request state lookup."""

    def test_merged_pull_request_is_cached(self) -> None:
        client = Mock()
        client.get_repo.return_value.get_pull.return_value = Mock(merged=True, state="closed")
        lookup = PullRequestLookup(client)

        first = lookup.status("https://github.com/o/r/pull/5")
        second = lookup.status("https://github.com/o/r/pull/5")

        assert first is not None
        assert first.merged
        assert first.closed
        assert second is first
        client.get_repo.assert_called_once_with("o/r")
        client.get_repo.return_value.get_pull.assert_called_once_with(5)

    def test_non_pull_urls(self) -> None:
        client = Mock()
        lookup = PullRequestLookup(client)

        assert lookup.status("https://github.com/o/r/issues/5") is None
        assert lookup.status(None) is None
        client.get_repo.assert_not_called()

    def test_errors_give_unknown_status(self) -> None:
        client = Mock()
        client.get_repo.side_effect = GithubException(404, {"message": "Not Found"}, headers={})

        assert PullRequestLookup(client).status("https://github.com/o/r/pull/5") is None

    def test_connection_error_gives_unknown_status_and_is_retried(self) -> None:
        client = Mock()
        client.get_repo.return_value.get_pull.side_effect = [
            requests.ConnectionError("Connection reset by peer"),
            Mock(merged=False, state="open"),
        ]
        lookup = PullRequestLookup(client)

        assert lookup.status("https://github.com/o/r/pull/5") is None
        status = lookup.status("https://github.com/o/r/pull/5")
        assert status is not None
        assert not status.closed


@pytest.mark.unit
class TestProjectBoard:
    """Test Projects (v2) GraphQL calls."""

    def test_find_by_exact_title(self) -> None:
        client = _graphql_client(
            {"repositoryOwner": {"projectsV2": {"nodes": [{"id": "PVT_0", "title": "Roadmap 2"}, PROJECT_NODE]}}}
        )

        board = ProjectBoard.find(client, "contoso-gh", "Roadmap")

        assert board is not None
        assert board.project_id == "PVT_1"
        assert board.status_options == {"Todo": "opt_todo", "Done": "opt_done"}
        variables = client.requester.graphql_query.call_args.args[1]
        assert variables == {"login": "contoso-gh", "title": "Roadmap"}

    def test_find_missing_project(self) -> None:
        client = _graphql_client({"repositoryOwner": None})
        assert ProjectBoard.find(client, "contoso-gh", "Roadmap") is None

    def test_add_issue_and_set_status(self) -> None:
        client = _graphql_client(
            {"repositoryOwner": {"projectsV2": {"nodes": [PROJECT_NODE]}}},
            {"addProjectV2ItemById": {"item": {"id": "PVTI_9"}}},
            {"updateProjectV2ItemFieldValue": {"projectV2Item": {"id": "PVTI_9"}}},
        )
        board = ProjectBoard.find(client, "contoso-gh", "Roadmap")
        assert board is not None

        item_id = board.add_issue(make_issue(3))
        moved = board.set_status(item_id, "Done")

        assert item_id == "PVTI_9"
        assert moved
        variables = client.requester.graphql_query.call_args.args[1]
        assert variables == {"project": "PVT_1", "item": "PVTI_9", "field": "PVTSSF_1", "option": "opt_done"}

    def test_unknown_status_column(self) -> None:
        board = ProjectBoard(
            client=Mock(), project_id="PVT_1", title="Roadmap", status_field_id="F", status_options={"Todo": "o"}
        )

        assert not board.set_status("PVTI_9", "Blocked")
        board.client.requester.graphql_query.assert_not_called()  # pyright: ignore[reportAttributeAccessIssue]
