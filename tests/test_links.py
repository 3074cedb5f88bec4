"""
Tests for relation URL resolution.
"""

from __future__ import annotations

import logging

import pytest
from conftest import GITHUB_ORG, ORG, PROJECT

from ado_to_github_migrator.config import MigrationConfig
from ado_to_github_migrator.links import (
    LinkResolver,
    issue_number,
    parse_github_reference,
    work_item_id,
)
from ado_to_github_migrator.state import MigrationState


def _resolver(state: MigrationState | None = None, **repositories: str) -> LinkResolver:
    return LinkResolver(
        MigrationConfig(repositories=dict(repositories)),
        state or MigrationState(),
        ado_org=ORG,
        ado_project=PROJECT,
        github_org=GITHUB_ORG,
    )


@pytest.mark.unit
class TestLinkResolver:
    """Test LinkResolver.resolve."""

    def test_work_item_api_url_becomes_web_url(self) -> None:
        resolved = _resolver().resolve(f"https://dev.azure.com/{ORG}/_apis/wit/workItems/17")
        assert resolved == f"https://dev.azure.com/{ORG}/{PROJECT}/_workitems/edit/17"

    def test_pull_request_artifact(self) -> None:
        resolved = _resolver(abc123="web-app").resolve("vstfs:///GitHub/PullRequest/abc123%2F7")
        assert resolved == f"https://github.com/{GITHUB_ORG}/web-app/pull/7"

    def test_commit_artifact(self) -> None:
        sha = "0123456789abcdef0123456789abcdef01234567"
        resolved = _resolver(abc123="web-app").resolve(f"vstfs:///GitHub/Commit/abc123%2F{sha}")
        assert resolved == f"https://github.com/{GITHUB_ORG}/web-app/commit/{sha}"

    def test_issue_artifact_with_owner_in_repository_name(self) -> None:
        resolved = _resolver(abc123="other-org/lib").resolve("vstfs:///GitHub/Issue/abc123%2F99")
        assert resolved == "https://github.com/other-org/lib/issues/99"

    def test_unknown_repository_returns_none_with_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            resolved = _resolver().resolve("vstfs:///GitHub/PullRequest/unknown%2F7")

        assert resolved is None
        assert "unknown" in caplog.text

    def test_plain_hyperlink_is_returned_unchanged(self) -> None:
        url = "https://wiki.contoso.com/page?id=3"
        assert _resolver().resolve(url) == url

    def test_prefer_mapped_returns_issue_url(self) -> None:
        state = MigrationState({"https://dev.azure.com/x/_apis/wit/workItems/5": "https://github.com/o/r/issues/2"})
        resolver = _resolver(state)

        assert resolver.resolve("https://dev.azure.com/x/_apis/wit/workItems/5", prefer_mapped=True) == (
            "https://github.com/o/r/issues/2"
        )
        assert resolver.resolve("https://dev.azure.com/x/_apis/wit/workItems/5") == (
            f"https://dev.azure.com/{ORG}/{PROJECT}/_workitems/edit/5"
        )


@pytest.mark.unit
class TestGithubReferences:
    """Test parsing of GitHub URLs."""

    def test_parse_pull_request(self) -> None:
        reference = parse_github_reference("https://github.com/o/r/pull/12")
        assert reference is not None
        assert reference.full_name == "o/r"
        assert reference.mention() == "o/r#12"

    def test_commit_mention_uses_short_sha(self) -> None:
        reference = parse_github_reference("https://github.com/o/r/commit/0123456789abcdef")
        assert reference is not None
        assert reference.short_id == "0123456"
        assert reference.mention() == "o/r@0123456"

    def test_non_github_url(self) -> None:
        assert parse_github_reference("https://example.com/o/r/pull/1") is None
        assert parse_github_reference(None) is None

    def test_work_item_id(self) -> None:
        assert work_item_id("https://dev.azure.com/o/_apis/wit/workItems/31") == 31
        assert work_item_id("https://dev.azure.com/o/p/_workitems/edit/32/") == 32
        assert work_item_id("https://example.com") is None

    def test_issue_number(self) -> None:
        assert issue_number("https://github.com/o/r/issues/45") == 45
        assert issue_number("https://github.com/o/r/issues/") == 0
