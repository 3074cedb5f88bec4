"""
Main migration class for Azure DevOps to GitHub migration.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

import github.Repository
from github import Github, GithubException

from . import github_utils as ghu
from .ado_utils import AdoClient
from .dedup import reconcile
from .exceptions import AdoApiError, MigrationError
from .labels import ensure_labels
from .links import LinkResolver
from .milestones import ensure_iteration_milestones
from .models import ResolvedRelation
from .state import MigrationState
from .synchronizer import IssueSynchronizer, ItemReport, StepResult

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from .config import MigrationConfig, MigrationOptions
    from .models import WorkItem, WorkItemComment

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

MIGRATED_TAG: Final[str] = "migrated-to-github"


def build_query_index(items: Iterable[WorkItem]) -> dict[str, str]:
    """Work item URL (every identity form) -> title, for the relations table."""
    index: dict[str, str] = {}
    for item in items:
        for identity in item.identities():
            index[identity] = item.title
    return index


@dataclass
class MigrationReport:
    """Outcome of a migration run."""

    ado_project: str
    github_repo: str
    items: list[ItemReport] = field(default_factory=list)

    def count(self, outcome: str) -> int:
        return sum(1 for item in self.items if item.outcome == outcome)

    @property
    def migrated(self) -> int:
        """Work items created or updated without any failed step."""
        return sum(1 for item in self.items if item.migrated)

    @property
    def statistics(self) -> dict[str, int]:
        return {
            "work_items_total": len(self.items),
            "issues_created": self.count("created"),
            "issues_updated": self.count("updated"),
            "work_items_skipped": self.count("skipped"),
            "work_items_failed": self.count("failed"),
            "work_items_migrated": self.migrated,
            "failed_steps": sum(len(item.failures) for item in self.items),
        }


class AdoToGithubMigrator:
    """Main migration class."""

    def __init__(
        self,
        options: MigrationOptions,
        config: MigrationConfig,
        *,
        ado_token: str | None = None,
        github_token: str | None = None,
        ado_client: AdoClient | None = None,
        github_client: Github | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.options: MigrationOptions = options
        self.config: MigrationConfig = config

        self.ado: AdoClient = ado_client or AdoClient(options.ado_org, options.ado_project, ado_token)
        self.github_client: Github = github_client or ghu.get_client(github_token)
        self._github_repo: github.Repository.Repository | None = None
        self._sleep: Callable[[float], None] = sleep

        self.state: MigrationState = MigrationState()
        self.link_resolver: LinkResolver = LinkResolver(
            config,
            self.state,
            ado_org=options.ado_org,
            ado_project=options.ado_project,
            github_org=options.github_org,
        )
        self.pull_requests: ghu.PullRequestLookup = ghu.PullRequestLookup(self.github_client)
        self.board: ghu.ProjectBoard | None = None

        logger.info(
            f"Initialized migrator for {options.ado_org}/{options.ado_project} -> {options.github_repo_path}"
        )

    @property
    def github_repo(self) -> github.Repository.Repository:
        if self._github_repo is None:
            msg = "GitHub repository not loaded yet. Call validate_api_access() first."
            raise MigrationError(msg)
        return self._github_repo

    @github_repo.setter
    def github_repo(self, value: github.Repository.Repository) -> None:
        self._github_repo = value

    def validate_api_access(self) -> None:
        """Validate Azure DevOps and GitHub API access and load the target repository."""
        try:
            self.ado.validate_access()
        except AdoApiError as e:
            msg = f"Azure DevOps API access failed: {e}"
            raise MigrationError(msg) from e

        try:
            _ = self.github_client.get_user().login
            logger.info("GitHub API access validated")
        except GithubException as e:
            msg = f"GitHub API access failed: {e}"
            raise MigrationError(msg) from e

        self.github_repo = ghu.get_repo(self.github_client, self.options.github_repo_path)

    def load_state(self) -> None:
        """Load the checkpoint and cache the repository's labels, milestones and issues."""
        self.state = MigrationState.load(self.options.checkpoint_path)
        self.link_resolver.state = self.state
        try:
            self.state.refresh_repository_metadata(self.github_repo)
            self.state.issues = ghu.list_issues(self.github_repo)
        except GithubException as e:
            msg = f"Failed to read {self.options.github_repo_path}: {e}"
            raise MigrationError(msg) from e

    def prepare_repository(self, items: list[WorkItem]) -> None:
        """Create configured labels and iteration milestones when requested."""
        if self.options.create_labels:
            names = [
                *self.options.labels,
                *self.config.type_labels.values(),
                *self.config.state_labels.values(),
                *self.config.tag_labels.values(),
            ]
            if self.options.archive_label:
                names.append(self.options.archive_label)
            created = ensure_labels(self.github_repo, names, self.state)
            logger.info(f"Created {len(created)} labels")

        if self.options.create_milestones:
            try:
                iterations = self.ado.get_iterations()
            except AdoApiError as e:
                msg = f"Failed to read iterations: {e}"
                raise MigrationError(msg) from e
            created = ensure_iteration_milestones(
                self.github_repo,
                iterations,
                self.state,
                prefix=self.options.milestone_prefix,
                only={item.iteration_name for item in items if item.iteration_name},
            )
            logger.info(f"Created {len(created)} milestones")

    def find_board(self) -> ghu.ProjectBoard | None:
        if not self.options.project_name:
            return None
        try:
            if not ghu.has_project_scope(self.github_client):
                logger.warning("GitHub token lacks the 'project' scope, issues will not be added to the project")
                return None
            return ghu.ProjectBoard.find(self.github_client, self.options.github_org, self.options.project_name)
        except GithubException as e:
            logger.warning(f"Could not load project '{self.options.project_name}': {e}")
            return None

    def fetch_work_items(self) -> list[WorkItem]:
        try:
            items = list(
                self.ado.iter_work_items(
                    self.options.ado_area_path,
                    after_id=max(0, self.options.resume_from_id - 1),
                    include_closed=self.options.include_closed,
                )
            )
        except AdoApiError as e:
            msg = f"Failed to query work items: {e}"
            raise MigrationError(msg) from e
        items.sort(key=lambda item: item.id)
        return items

    def resolve_relations(self, item: WorkItem) -> list[ResolvedRelation]:
        resolved: list[ResolvedRelation] = []
        for relation in item.relations:
            url = self.link_resolver.resolve(relation.url)
            if url is None:
                logger.info(f"Work item {item.id}: omitting unresolvable {relation.kind} link {relation.url}")
            resolved.append(
                ResolvedRelation(relation=relation, url=url, pull_request=self.pull_requests.status(url))
            )
        return resolved

    def fetch_comments(self, item: WorkItem) -> list[WorkItemComment] | None:
        if not self.options.import_comments:
            return None
        try:
            return self.ado.get_comments(item.id)
        except AdoApiError as e:
            logger.warning(f"Work item {item.id}: could not read comments ({e}), migrating without them")
            return None

    def tag_work_item(self, item: WorkItem, report: ItemReport) -> None:
        """Tag a migrated work item and note the issue URL in its discussion (production runs only)."""
        if MIGRATED_TAG in item.tags or not report.issue_url:
            return
        note = f'Migrated to GitHub: <a href="{report.issue_url}">{report.issue_url}</a>'
        step = f"tag work item '{MIGRATED_TAG}'"
        try:
            self.ado.update_work_item(item.id, tags=[*item.tags, MIGRATED_TAG], note=note)
        except AdoApiError as e:
            report.steps.append(StepResult(name=step, success=False, detail=str(e)))
            logger.warning(f"Work item {item.id}: {step}: FAILED ({e})")
            return
        report.steps.append(StepResult(name=step, success=True))
        logger.info(f"Work item {item.id}: {step}: SUCCESS")

    def migrate_item(
        self, synchronizer: IssueSynchronizer, item: WorkItem, query_index: dict[str, str]
    ) -> ItemReport:
        logger.info(f"Migrating work item {item.id} ({item.type}, {item.state}): {item.title}")
        relations = self.resolve_relations(item)
        comments = self.fetch_comments(item)
        report = synchronizer.sync(item, relations, comments, query_index)

        if self.options.production_run and report.outcome in ("created", "updated"):
            self.tag_work_item(item, report)
        return report

    def migrate(self) -> MigrationReport:
        """Execute the complete migration.

        Raises:
            MigrationError: On configuration or access errors that prevent
                processing any work item. Failures of single work items are
                reported, not raised.
        """
        logger.info("Starting Azure DevOps to GitHub migration")
        report = MigrationReport(
            ado_project=f"{self.options.ado_org}/{self.options.ado_project}",
            github_repo=self.options.github_repo_path,
        )

        self.validate_api_access()
        self.load_state()

        items = self.fetch_work_items()
        self.prepare_repository(items)

        self.state.merge(reconcile(items, self.state.issues, self.options.tie_break, self.state))
        self.state.save()

        self.board = self.find_board()
        synchronizer = IssueSynchronizer(
            self.github_repo,
            self.state,
            self.config,
            self.options,
            board=self.board,
            sleep=self._sleep,
        )
        query_index = build_query_index(items)

        for position, item in enumerate(items, start=1):
            logger.debug(f"Work item {position}/{len(items)}")
            try:
                item_report = self.migrate_item(synchronizer, item, query_index)
            except (GithubException, MigrationError, OSError) as e:
                logger.exception(f"Work item {item.id}: migration aborted")
                item_report = ItemReport(
                    work_item_id=item.id,
                    outcome="failed",
                    steps=[StepResult(name="migrate work item", success=False, detail=str(e))],
                )
            report.items.append(item_report)

        statistics = report.statistics
        logger.info(
            f"Migrated {statistics['work_items_migrated']} of {statistics['work_items_total']} work items "
            f"({statistics['issues_created']} created, {statistics['issues_updated']} updated, "
            f"{statistics['work_items_skipped']} skipped, {statistics['work_items_failed']} failed)"
        )
        return report
