"""
Tests for the command-line interface.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import Mock, patch

import pytest

from ado_to_github_migrator import cli
from ado_to_github_migrator.exceptions import ConfigurationError, MigrationError
from ado_to_github_migrator.migrator import MigrationReport
from ado_to_github_migrator.synchronizer import ItemReport, StepResult
from ado_to_github_migrator.utils import InvalidPassPathError

if TYPE_CHECKING:
    from collections.abc import Iterator

REQUIRED = ["--ado-org", "contoso", "--ado-project", "Fabrikam", "--github-org", "contoso-gh", "--github-repo", "r"]


@pytest.mark.unit
class TestParseArguments:
    """Test argument parsing."""

    def test_defaults(self) -> None:
        options = cli.build_options(cli.parse_arguments(REQUIRED))

        assert options.github_repo_path == "contoso-gh/r"
        assert options.update_existing
        assert options.handle_rate_limit
        assert not options.production_run
        assert options.labels == []
        assert options.tie_break == "first"

    def test_all_toggles(self) -> None:
        args = cli.parse_arguments(
            [
                *REQUIRED,
                "--ado-area-path",
                "Fabrikam\\Web",
                "--include-closed",
                "--production-run",
                "--update-assignee",
                "--assignee-suffix",
                "_corp",
                "--import-comments",
                "--project-name",
                "Roadmap",
                "-l",
                "migrated",
                "--label",
                "ado",
                "--milestone-prefix",
                "S-",
                "--archive-label",
                "archived",
                "--no-update-existing",
                "--no-rate-limit-handling",
                "--mention-links",
                "--tie-break",
                "last",
                "--checkpoint",
                "state.json",
                "--config",
                "a.json",
                "--config",
                "b.json",
                "--resume-from-id",
                "100",
                "--create-labels",
                "--create-milestones",
            ]
        )

        options = cli.build_options(args)

        assert options.ado_area_path == "Fabrikam\\Web"
        assert options.include_closed
        assert options.production_run
        assert options.update_assignee
        assert options.assignee_suffix == "_corp"
        assert options.import_comments
        assert options.project_name == "Roadmap"
        assert options.labels == ["migrated", "ado"]
        assert options.milestone_prefix == "S-"
        assert options.archive_label == "archived"
        assert not options.update_existing
        assert not options.handle_rate_limit
        assert options.mention_links
        assert options.tie_break == "last"
        assert options.checkpoint_path == "state.json"
        assert options.config_paths == ["a.json", "b.json"]
        assert options.resume_from_id == 100
        assert options.create_labels
        assert options.create_milestones

    def test_missing_required_argument(self) -> None:
        with pytest.raises(SystemExit):
            _ = cli.parse_arguments(["--ado-org", "contoso"])


@pytest.mark.unit
class TestResolveTokens:
    """Test credential resolution."""

    def test_explicit_tokens(self) -> None:
        args = cli.parse_arguments([*REQUIRED, "--ado-pat", "a", "--github-token", "g"])
        assert cli.resolve_tokens(args) == ("a", "g")

    def test_missing_token_is_a_configuration_error(self) -> None:
        args = cli.parse_arguments(REQUIRED)
        with (
            patch("ado_to_github_migrator.ado_utils.get_token", return_value=None),
            patch("ado_to_github_migrator.github_utils.get_token", return_value="g"),
            pytest.raises(ConfigurationError, match="No Azure DevOps token"),
        ):
            _ = cli.resolve_tokens(args)

    def test_pass_errors_are_configuration_errors(self) -> None:
        args = cli.parse_arguments([*REQUIRED, "--ado-pass-token", "missing/entry"])
        with (
            patch("ado_to_github_migrator.ado_utils.get_token", side_effect=InvalidPassPathError("not found")),
            pytest.raises(ConfigurationError, match="Failed to read token"),
        ):
            _ = cli.resolve_tokens(args)


@pytest.mark.unit
class TestMain:
    """Test the exit code of main."""

    @pytest.fixture(autouse=True)
    def _no_log_file(self) -> Iterator[None]:
        with patch("ado_to_github_migrator.cli.setup_logging"):
            yield

    def test_success_exits_zero_even_with_failed_items(self, capsys: pytest.CaptureFixture[str]) -> None:
        report = MigrationReport(ado_project="contoso/Fabrikam", github_repo="contoso-gh/r")
        report.items.append(
            ItemReport(work_item_id=1, outcome="failed", steps=[StepResult("create issue", success=False, detail="422")])
        )
        migrator = Mock()
        migrator.migrate.return_value = report

        with (
            patch("ado_to_github_migrator.cli.AdoToGithubMigrator", return_value=migrator),
            pytest.raises(SystemExit) as exc_info,
        ):
            cli.main([*REQUIRED, "--ado-pat", "a", "--github-token", "g"])

        assert exc_info.value.code == 0
        output = capsys.readouterr().out
        assert "work_items_failed: 1" in output
        assert "work item 1: create issue failed: 422" in output

    def test_migration_error_exits_one(self) -> None:
        migrator = Mock()
        migrator.migrate.side_effect = MigrationError("GitHub API access failed")

        with (
            patch("ado_to_github_migrator.cli.AdoToGithubMigrator", return_value=migrator),
            pytest.raises(SystemExit) as exc_info,
        ):
            cli.main([*REQUIRED, "--ado-pat", "a", "--github-token", "g"])

        assert exc_info.value.code == 1

    def test_missing_credentials_exit_one(self) -> None:
        with (
            patch("ado_to_github_migrator.ado_utils.get_token", return_value=None),
            patch("ado_to_github_migrator.github_utils.get_token", return_value=None),
            patch("ado_to_github_migrator.cli.AdoToGithubMigrator") as migrator_class,
            pytest.raises(SystemExit) as exc_info,
        ):
            cli.main(REQUIRED)

        assert exc_info.value.code == 1
        migrator_class.assert_not_called()
