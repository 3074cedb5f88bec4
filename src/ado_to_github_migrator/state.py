"""
Migration state: the checkpoint mapping work items to GitHub issues.

The checkpoint file is a flat JSON object of work item identity -> GitHub
issue URL. A work item is stored under several identity strings (canonical
web URL, REST API URL, GUID-based web URL) that all point at the same issue.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .exceptions import ConfigurationError
from .models import IssueSnapshot

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from github.Milestone import Milestone
    from github.Repository import Repository

logger: logging.Logger = logging.getLogger(__name__)


def backup_path_for(path: Path, now: dt.datetime | None = None) -> Path:
    """Return the timestamped sibling backup path for a checkpoint file."""
    timestamp = (now or dt.datetime.now()).strftime("%Y%m%dT%H%M%S")  # noqa: DTZ005 - local time in file names
    return path.with_name(f"{path.stem}.{timestamp}.bak{path.suffix}")


class MigrationState:
    """Work item -> issue mapping plus caches of GitHub data for one run."""

    def __init__(self, mappings: Mapping[str, str] | None = None, path: str | Path | None = None) -> None:
        self._mappings: dict[str, str] = dict(mappings or {})
        self.path: Path | None = Path(path) if path else None

        # Issue URL -> snapshot, filled from the bulk issue listing
        self.issues: dict[str, IssueSnapshot] = {}
        # Lowercase label name -> actual name, as GitHub labels are case-insensitive
        self.labels: dict[str, str] = {}
        self.milestones: dict[str, Milestone] = {}

    @classmethod
    def load(cls, path: str | Path | None) -> MigrationState:
        """Load the checkpoint, backing it up first.

        Raises:
            ConfigurationError: If a path is given but the file does not exist
        """
        if not path:
            logger.info("No checkpoint file given, starting with an empty migration state")
            return cls()

        checkpoint = Path(path)
        if not checkpoint.exists():
            msg = f"Checkpoint file does not exist: {checkpoint}"
            raise ConfigurationError(msg)

        backup = backup_path_for(checkpoint)
        _ = shutil.copy2(checkpoint, backup)
        logger.info(f"Backed up checkpoint to {backup}")

        try:
            data: Any = json.loads(checkpoint.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Checkpoint {checkpoint} is not valid JSON ({e}), starting with an empty migration state")
            return cls(path=checkpoint)

        if not isinstance(data, dict):
            logger.warning(f"Checkpoint {checkpoint} is not a JSON object, starting with an empty migration state")
            return cls(path=checkpoint)

        mappings = {str(k): str(v) for k, v in data.items() if v}
        logger.info(f"Loaded {len(mappings)} mappings from {checkpoint}")
        return cls(mappings, path=checkpoint)

    def save(self, path: str | Path | None = None) -> None:
        """Write the full mapping to the checkpoint path. No-op without a path."""
        target = Path(path) if path else self.path
        if target is None:
            return

        tmp = target.with_name(f"{target.name}.tmp")
        _ = tmp.write_text(json.dumps(self._mappings, indent=2, sort_keys=True) + "\n", encoding="utf-8")
        _ = tmp.replace(target)
        logger.debug(f"Saved {len(self._mappings)} mappings to {target}")

    @property
    def mappings(self) -> dict[str, str]:
        return dict(self._mappings)

    def __len__(self) -> int:
        return len(self._mappings)

    def __contains__(self, identity: object) -> bool:
        return identity in self._mappings

    def lookup(self, *identities: str) -> str | None:
        """Return the issue URL mapped to the first known identity."""
        for identity in identities:
            url = self._mappings.get(identity)
            if url:
                return url
        return None

    def insert(self, identity: str, issue_url: str) -> bool:
        """Map an identity to an issue URL. An existing mapping is never overwritten."""
        existing = self._mappings.get(identity)
        if existing:
            if existing != issue_url:
                logger.debug(f"Keeping existing mapping {identity} -> {existing} (ignoring {issue_url})")
            return False
        self._mappings[identity] = issue_url
        return True

    def insert_all(self, identities: Iterable[str], issue_url: str) -> int:
        return sum(self.insert(identity, issue_url) for identity in identities)

    def merge(self, mappings: Mapping[str, str]) -> int:
        """Merge mappings (e.g. from title deduplication); returns the number added."""
        added = sum(self.insert(identity, url) for identity, url in mappings.items())
        if added:
            logger.info(f"Merged {added} new mappings into migration state")
        return added

    def refresh_repository_metadata(self, repo: Repository) -> None:
        """Cache the repository's labels and milestones."""
        self.labels = {label.name.lower(): label.name for label in repo.get_labels()}
        self.milestones = {milestone.title: milestone for milestone in repo.get_milestones(state="all")}
        logger.info(f"Cached {len(self.labels)} labels and {len(self.milestones)} milestones of {repo.full_name}")

    def label_name(self, name: str) -> str | None:
        """Return the repository's spelling of a label, or None if it does not exist."""
        return self.labels.get(name.lower())
