"""
Command-line interface for the Azure DevOps to GitHub migration tool.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import TYPE_CHECKING

from . import ado_utils, github_utils
from .config import MigrationConfig, MigrationOptions
from .exceptions import ConfigurationError, MigrationError
from .migrator import AdoToGithubMigrator
from .utils import PassError, setup_logging

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .migrator import MigrationReport

logger: logging.Logger = logging.getLogger(__name__)


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Migrate Azure DevOps Boards work items to GitHub issues")

    ado = parser.add_argument_group("Azure DevOps")
    _ = ado.add_argument("--ado-org", required=True, help="Azure DevOps organization")
    _ = ado.add_argument("--ado-project", required=True, help="Azure DevOps project")
    _ = ado.add_argument("--ado-area-path", default="", help="Only migrate work items under this area path")
    _ = ado.add_argument("--ado-pat", help="Azure DevOps personal access token (default: $ADO_PAT)")
    _ = ado.add_argument(
        "--ado-pass-token", help="Path for the Azure DevOps PAT in pass utility (default: azure-devops/cli/pat)"
    )

    gh = parser.add_argument_group("GitHub")
    _ = gh.add_argument("--github-org", required=True, help="GitHub organization or user owning the repository")
    _ = gh.add_argument("--github-repo", required=True, help="GitHub repository name")
    _ = gh.add_argument("--github-token", help="GitHub token (default: $GITHUB_TOKEN)")
    _ = gh.add_argument("--github-pass-token", help="Path for GitHub token in pass utility (default: github/cli/token)")
    _ = gh.add_argument("--project-name", help="GitHub project (v2) to add issues to")

    _ = parser.add_argument(
        "--include-closed", action="store_true", help="Also migrate work items in a closed state"
    )
    _ = parser.add_argument(
        "--production-run",
        action="store_true",
        help="Tag migrated work items in Azure DevOps and link them to their issue",
    )
    _ = parser.add_argument("--update-assignee", action="store_true", help="Assign issues from the work item assignee")
    _ = parser.add_argument(
        "--assignee-suffix", default="", help="Suffix appended to logins derived from ADO unique names"
    )
    _ = parser.add_argument("--import-comments", action="store_true", help="Include work item discussion comments")
    _ = parser.add_argument(
        "--label",
        "-l",
        dest="labels",
        action="append",
        default=[],
        help="Label added to every migrated issue. Can be specified multiple times.",
    )
    _ = parser.add_argument("--milestone-prefix", default="", help="Prefix for milestone titles derived from iterations")
    _ = parser.add_argument("--archive-label", help="Label added to issues closed by the migration")
    _ = parser.add_argument(
        "--no-update-existing",
        dest="update_existing",
        action="store_false",
        help="Skip work items that already have an issue",
    )
    _ = parser.add_argument(
        "--no-rate-limit-handling",
        dest="handle_rate_limit",
        action="store_false",
        help="Fail issue creation immediately when rate limited instead of waiting",
    )
    _ = parser.add_argument(
        "--mention-links",
        action="store_true",
        help="Render GitHub links as owner/repo#number mentions, notifying the linked items",
    )
    _ = parser.add_argument(
        "--tie-break",
        choices=["first", "last"],
        default="first",
        help="Which issue wins when several existing issues share a title (default: first)",
    )
    _ = parser.add_argument("--checkpoint", dest="checkpoint_path", help="JSON file mapping work items to issues")
    _ = parser.add_argument(
        "--config",
        dest="config_paths",
        action="append",
        default=[],
        help="JSON config file with label, column, user and repository maps. Can be specified multiple times.",
    )
    _ = parser.add_argument("--resume-from-id", type=int, default=0, help="Start at this work item id")
    _ = parser.add_argument("--create-labels", action="store_true", help="Create configured labels if missing")
    _ = parser.add_argument(
        "--create-milestones", action="store_true", help="Create milestones from the project's iterations"
    )
    _ = parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return parser.parse_args(argv)


def build_options(args: argparse.Namespace) -> MigrationOptions:
    return MigrationOptions(
        ado_org=args.ado_org,
        ado_project=args.ado_project,
        github_org=args.github_org,
        github_repo=args.github_repo,
        ado_area_path=args.ado_area_path,
        include_closed=args.include_closed,
        production_run=args.production_run,
        update_assignee=args.update_assignee,
        assignee_suffix=args.assignee_suffix,
        import_comments=args.import_comments,
        project_name=args.project_name,
        labels=list(args.labels),
        milestone_prefix=args.milestone_prefix,
        archive_label=args.archive_label,
        update_existing=args.update_existing,
        handle_rate_limit=args.handle_rate_limit,
        mention_links=args.mention_links,
        tie_break=args.tie_break,
        resume_from_id=args.resume_from_id,
        create_labels=args.create_labels,
        create_milestones=args.create_milestones,
        checkpoint_path=args.checkpoint_path,
        config_paths=list(args.config_paths),
    )


def resolve_tokens(args: argparse.Namespace) -> tuple[str, str]:
    """Resolve both platform tokens.

    Raises:
        ConfigurationError: If a token cannot be found
    """
    try:
        ado_token = ado_utils.get_token(args.ado_pat, args.ado_pass_token)
        github_token = github_utils.get_token(args.github_token, args.github_pass_token)
    except (PassError, ValueError) as e:
        msg = f"Failed to read token: {e}"
        raise ConfigurationError(msg) from e

    if not ado_token:
        msg = "No Azure DevOps token: use --ado-pat, --ado-pass-token or set ADO_PAT"
        raise ConfigurationError(msg)
    if not github_token:
        msg = "No GitHub token: use --github-token, --github-pass-token or set GITHUB_TOKEN"
        raise ConfigurationError(msg)
    return ado_token, github_token


def print_report(report: MigrationReport) -> None:
    print(f"Migration {report.ado_project} -> {report.github_repo}")  # noqa: T201
    for key, value in report.statistics.items():
        print(f"  {key}: {value}")  # noqa: T201
    for item in report.items:
        for failure in item.failures:
            print(f"  work item {item.work_item_id}: {failure.name} failed: {failure.detail}")  # noqa: T201


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)
    setup_logging(verbose=args.verbose)

    try:
        options = build_options(args)
        config = MigrationConfig.load(options.config_paths)
        ado_token, github_token = resolve_tokens(args)

        migrator = AdoToGithubMigrator(options, config, ado_token=ado_token, github_token=github_token)
        report = migrator.migrate()
    except MigrationError:
        logger.exception("Migration failed")
        sys.exit(1)

    print_report(report)
    sys.exit(0)
