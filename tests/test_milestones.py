"""
Tests for milestone creation from iterations.
"""

from __future__ import annotations

import datetime as dt
from unittest.mock import Mock

import pytest
from github import GithubException

from ado_to_github_migrator.exceptions import MigrationError
from ado_to_github_migrator.milestones import ensure_iteration_milestones
from ado_to_github_migrator.state import MigrationState

NOW = dt.datetime(2024, 6, 1, tzinfo=dt.UTC)

ITERATIONS = [
    {"name": "Sprint 1", "path": "\\P\\Iteration\\Sprint 1", "finish_date": "2024-01-14T00:00:00Z"},
    {"name": "Sprint 9", "path": "\\P\\Iteration\\Sprint 9", "finish_date": "2024-12-20T00:00:00Z"},
    {"name": "Backlog", "path": "\\P\\Iteration\\Backlog", "finish_date": None},
]


@pytest.mark.unit
class TestEnsureIterationMilestones:
    """Test ensure_iteration_milestones."""

    def test_creates_milestones_with_due_dates(self) -> None:
        repo = Mock()
        state = MigrationState()

        created = ensure_iteration_milestones(repo, ITERATIONS, state, prefix="S-", now=NOW)

        assert created == ["S-Sprint 1", "S-Sprint 9", "S-Backlog"]
        calls = [call.kwargs for call in repo.create_milestone.call_args_list]
        assert calls[0]["state"] == "closed"
        assert calls[0]["due_on"] == dt.date(2024, 1, 14)
        assert calls[1]["state"] == "open"
        assert "due_on" not in calls[2]
        assert set(state.milestones) == set(created)

    def test_existing_and_unused_iterations_are_skipped(self) -> None:
        repo = Mock()
        state = MigrationState()
        state.milestones = {"Sprint 1": Mock()}

        created = ensure_iteration_milestones(repo, ITERATIONS, state, only={"Sprint 1", "Sprint 9"}, now=NOW)

        assert created == ["Sprint 9"]
        repo.create_milestone.assert_called_once()

    def test_creation_failure_raises(self) -> None:
        repo = Mock()
        repo.create_milestone.side_effect = GithubException(422, {"message": "Validation Failed"}, headers={})

        with pytest.raises(MigrationError, match="Failed to create milestone Sprint 1"):
            _ = ensure_iteration_milestones(repo, ITERATIONS[:1], MigrationState(), now=NOW)
