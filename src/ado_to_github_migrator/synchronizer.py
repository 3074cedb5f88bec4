"""
Creation and idempotent update of the GitHub issue for one work item.

Per work item the synchronizer:

1. Looks the work item up in the migration state under all its identities.
   A mapped item is skipped when updates are disabled, otherwise its issue
   is loaded (update path). An unmapped item gets a new issue (create path),
   retried with a fixed cooldown while GitHub reports rate limiting.
2. Ensures assignee, milestone and labels, upserts the single migration
   comment, saves the checkpoint and closes the issue when the work item
   is in a closed state.

Every write in step 2 is independent: a failure is recorded in the item's
report and the remaining steps still run. Steps whose target state is
already reached make no API call.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final, Literal

from github import GithubException, GithubObject, RateLimitExceededException

from .content import build_issue_body, build_migration_comment, build_title, is_migration_comment
from .exceptions import IssueCreationError, MigrationError
from .links import issue_number, parse_github_reference
from .models import NOT_PLANNED_STATES, IssueSnapshot

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from github.Issue import Issue
    from github.IssueComment import IssueComment
    from github.Repository import Repository

    from .config import MigrationConfig, MigrationOptions
    from .github_utils import ProjectBoard
    from .models import ResolvedRelation, WorkItem, WorkItemComment
    from .state import MigrationState

logger: logging.Logger = logging.getLogger(__name__)

RATE_LIMIT_COOLDOWN_SECONDS: Final[int] = 15 * 60
MAX_CREATE_ATTEMPTS: Final[int] = 6

CLOSE_COMMENT: Final[str] = "Closing: the Azure DevOps work item is in state **{state}**."

_RATE_LIMIT_MARKERS: Final[tuple[str, ...]] = ("rate limit", "secondary rate", "abuse")

Outcome = Literal["created", "updated", "skipped", "failed"]


@dataclass
class StepResult:
    """Result of one write to GitHub."""

    name: str
    success: bool
    detail: str = ""


@dataclass
class ItemReport:
    """What happened to one work item."""

    work_item_id: int
    outcome: Outcome = "skipped"
    issue_url: str | None = None
    steps: list[StepResult] = field(default_factory=list)

    @property
    def failures(self) -> list[StepResult]:
        return [step for step in self.steps if not step.success]

    @property
    def migrated(self) -> bool:
        """Issue created or updated with every step succeeding."""
        return self.outcome in ("created", "updated") and not self.failures


def is_rate_limit_error(error: GithubException) -> bool:
    if isinstance(error, RateLimitExceededException):
        return True
    if error.status not in (403, 429):
        return False
    text = str(error.data).lower()
    return any(marker in text for marker in _RATE_LIMIT_MARKERS)


def _normalize(body: str | None) -> str:
    return (body or "").replace("\r\n", "\n").strip()


class IssueSynchronizer:
    """Drives work items through issue creation or update."""

    def __init__(
        self,
        repo: Repository,
        state: MigrationState,
        config: MigrationConfig,
        options: MigrationOptions,
        *,
        board: ProjectBoard | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.repo: Repository = repo
        self.state: MigrationState = state
        self.config: MigrationConfig = config
        self.options: MigrationOptions = options
        self.board: ProjectBoard | None = board
        self._sleep: Callable[[float], None] = sleep

    # Value mapping

    def type_label(self, item: WorkItem) -> str:
        return self.config.type_labels.get(item.type) or item.type.lower()

    def milestone_title(self, item: WorkItem) -> str | None:
        if not item.iteration_name:
            return None
        return f"{self.options.milestone_prefix}{item.iteration_name}"

    def resolve_login(self, unique_name: str) -> str | None:
        """GitHub login for an ADO user: explicit mapping, else the local part plus suffix."""
        if not unique_name:
            return None
        for ado_name, login in self.config.user_logins.items():
            if ado_name.lower() == unique_name.lower():
                return login
        local_part = unique_name.split("@", 1)[0].rsplit("\\", 1)[-1]
        return f"{local_part}{self.options.assignee_suffix}" if local_part else None

    def wanted_labels(self, item: WorkItem) -> list[str]:
        """Labels the issue should carry, in application order, without duplicates."""
        candidates = [
            *self.options.labels,
            *(self.config.tag_labels[tag] for tag in item.tags if tag in self.config.tag_labels),
            self.type_label(item),
            self.config.state_labels.get(item.state),
        ]
        wanted: list[str] = []
        for name in candidates:
            if name and name not in wanted:
                wanted.append(name)
        return wanted

    # State machine

    def sync(
        self,
        item: WorkItem,
        relations: Sequence[ResolvedRelation] = (),
        comments: Sequence[WorkItemComment] | None = None,
        query_index: Mapping[str, str] | None = None,
    ) -> ItemReport:
        """Create or update the issue of a work item."""
        report = ItemReport(work_item_id=item.id)
        issue_url = self.state.lookup(*item.identities())

        if issue_url and not self.options.update_existing:
            logger.info(f"Work item {item.id} already migrated to {issue_url}, skipping")
            report.issue_url = issue_url
            return report

        if issue_url:
            try:
                issue = self.load_issue(issue_url)
            except (GithubException, MigrationError) as e:
                report.outcome = "failed"
                self._record(report, f"load issue {issue_url}", success=False, detail=str(e))
                return report
            report.outcome = "updated"
        else:
            try:
                issue = self.create_issue(item, relations, query_index or {})
            except IssueCreationError as e:
                logger.error(f"Work item {item.id}: {e}")
                report.outcome = "failed"
                self._record(report, "create issue", success=False, detail=str(e))
                return report
            report.outcome = "created"
            self._record(report, f"create issue #{issue.number}", success=True)
            if self.board is not None:
                self._run(report, f"add to project '{self.board.title}'", lambda: self.add_to_board(issue, item))

        report.issue_url = issue.html_url

        if self.options.update_assignee:
            self.ensure_assignee(issue, item, report)
        self.ensure_milestone(issue, item, report)
        self.ensure_labels(issue, item, report)
        self.upsert_migration_comment(issue, item, relations, comments, report)
        self._run(report, "save checkpoint", self.state.save)
        self.ensure_closed(issue, item, report)

        return report

    def load_issue(self, issue_url: str) -> Issue:
        reference = parse_github_reference(issue_url)
        if reference is not None and reference.full_name.lower() != self.repo.full_name.lower():
            msg = f"Mapped issue {issue_url} is not in {self.repo.full_name}"
            raise MigrationError(msg)
        issue = self.repo.get_issue(issue_number(issue_url))
        self.state.issues[issue.html_url] = IssueSnapshot.from_issue(issue)
        return issue

    # Create path

    def create_issue(self, item: WorkItem, relations: Sequence[ResolvedRelation], query_index: Mapping[str, str]) -> Issue:
        """Create the issue, record it in the state and save the checkpoint.

        Raises:
            IssueCreationError: If creation fails for a reason other than rate
                limiting, or is still rate limited after MAX_CREATE_ATTEMPTS
        """
        title = build_title(item)
        body = build_issue_body(item, relations, query_index, self.state, mention=self.options.mention_links)

        # Labels missing from the repository would be created implicitly by GitHub
        type_label = self.state.label_name(self.type_label(item))
        labels = [type_label] if type_label else []

        milestone_title = self.milestone_title(item)
        milestone = self.state.milestones.get(milestone_title) if milestone_title else None

        issue = self.create_issue_with_retry(
            item.id,
            title=title,
            body=body,
            labels=labels,
            milestone=milestone if milestone is not None else GithubObject.NotSet,
        )
        logger.info(f"Created issue #{issue.number} for work item {item.id}: {issue.html_url}")

        self.state.insert_all(item.identities(), issue.html_url)
        self.state.issues[issue.html_url] = IssueSnapshot.from_issue(issue)
        try:
            self.state.save()
        except OSError:
            logger.exception(f"Failed to save checkpoint after creating {issue.html_url}")
        return issue

    def create_issue_with_retry(self, work_item_id: int, **kwargs: object) -> Issue:
        for attempt in range(1, MAX_CREATE_ATTEMPTS + 1):
            try:
                return self.repo.create_issue(**kwargs)  # pyright: ignore[reportArgumentType]
            except GithubException as e:
                if not (self.options.handle_rate_limit and is_rate_limit_error(e)):
                    msg = f"Failed to create issue: {e.status} {e.data}"
                    raise IssueCreationError(msg) from e
                if attempt == MAX_CREATE_ATTEMPTS:
                    msg = f"Still rate limited after {MAX_CREATE_ATTEMPTS} attempts"
                    raise IssueCreationError(msg) from e
                logger.warning(
                    f"Rate limited creating issue for work item {work_item_id} "
                    f"(attempt {attempt}/{MAX_CREATE_ATTEMPTS}), waiting {RATE_LIMIT_COOLDOWN_SECONDS}s"
                )
                self._sleep(RATE_LIMIT_COOLDOWN_SECONDS)

        msg = "Issue creation was not attempted"
        raise IssueCreationError(msg)

    def add_to_board(self, issue: Issue, item: WorkItem) -> None:
        if self.board is None:
            return
        item_id = self.board.add_issue(issue)
        column = self.config.state_columns.get(item.state)
        if column and not self.board.set_status(item_id, column):
            msg = f"Project has no status column '{column}'"
            raise MigrationError(msg)

    # Common tail

    def ensure_assignee(self, issue: Issue, item: WorkItem, report: ItemReport) -> None:
        if item.assigned_to is None:
            return
        if issue.assignees:
            logger.debug(f"Issue #{issue.number} is already assigned, keeping assignees")
            return
        login = self.resolve_login(item.assigned_to.unique_name)
        if not login:
            return
        self._run(report, f"assign {login}", lambda: issue.add_to_assignees(login))

    def ensure_milestone(self, issue: Issue, item: WorkItem, report: ItemReport) -> None:
        title = self.milestone_title(item)
        if not title:
            return
        if issue.milestone is not None and issue.milestone.title == title:
            return
        milestone = self.state.milestones.get(title)
        if milestone is None:
            logger.debug(f"Milestone '{title}' does not exist in {self.repo.full_name}, skipping")
            return
        self._run(report, f"set milestone '{title}'", lambda: issue.edit(milestone=milestone))

    def ensure_labels(self, issue: Issue, item: WorkItem, report: ItemReport) -> None:
        current = {label.name.lower() for label in issue.labels}
        for name in self.wanted_labels(item):
            label = self.state.label_name(name)
            if label is None:
                logger.debug(f"Label '{name}' does not exist in {self.repo.full_name}, skipping")
                continue
            if label.lower() in current:
                continue
            if self._run(report, f"add label '{label}'", lambda label=label: issue.add_to_labels(label)):
                current.add(label.lower())

    def upsert_migration_comment(
        self,
        issue: Issue,
        item: WorkItem,
        relations: Sequence[ResolvedRelation],
        comments: Sequence[WorkItemComment] | None,
        report: ItemReport,
    ) -> None:
        """Create the migration comment, or edit the latest one if its content changed.

        When an issue carries several migration comments only the most recent
        (by creation time, then id) is considered. If its normalized body
        already matches, nothing is written, even though older copies may
        differ; the older comments are never edited or deleted.
        """
        body = build_migration_comment(item, relations, comments if self.options.import_comments else None)

        try:
            existing: list[IssueComment] = [c for c in issue.get_comments() if is_migration_comment(c.body)]
        except (GithubException, OSError) as e:
            self._record(report, "list comments", success=False, detail=str(e))
            return

        if not existing:
            self._run(report, "create migration comment", lambda: issue.create_comment(body))
            return

        if len(existing) > 1:
            logger.warning(
                f"Issue #{issue.number} has {len(existing)} migration comments, updating the most recent one"
            )
        latest = max(existing, key=lambda c: (c.created_at, c.id))
        if _normalize(latest.body) == _normalize(body):
            logger.debug(f"Migration comment on issue #{issue.number} is up to date")
            return
        self._run(report, "update migration comment", lambda: latest.edit(body))

    def ensure_closed(self, issue: Issue, item: WorkItem, report: ItemReport) -> None:
        if not item.is_closed():
            return
        if issue.state == "closed":
            logger.debug(f"Issue #{issue.number} is already closed")
            return

        reason = "not_planned" if item.state in NOT_PLANNED_STATES else "completed"

        def _close() -> None:
            _ = issue.create_comment(CLOSE_COMMENT.format(state=item.state))
            issue.edit(state="closed", state_reason=reason)

        if not self._run(report, f"close issue ({reason})", _close):
            return

        if not self.options.archive_label:
            return
        label = self.state.label_name(self.options.archive_label)
        if label is None:
            logger.debug(f"Archive label '{self.options.archive_label}' does not exist, skipping")
            return
        if any(existing.name.lower() == label.lower() for existing in issue.labels):
            return
        self._run(report, f"add label '{label}'", lambda: issue.add_to_labels(label))

    # Ledger

    def _record(self, report: ItemReport, name: str, *, success: bool, detail: str = "") -> None:
        report.steps.append(StepResult(name=name, success=success, detail=detail))
        if success:
            logger.info(f"Work item {report.work_item_id}: {name}: SUCCESS")
        else:
            logger.warning(f"Work item {report.work_item_id}: {name}: FAILED ({detail})")

    def _run(self, report: ItemReport, name: str, action: Callable[[], object]) -> bool:
        try:
            _ = action()
        except (GithubException, MigrationError, OSError) as e:
            self._record(report, name, success=False, detail=str(e))
            return False
        self._record(report, name, success=True)
        return True
