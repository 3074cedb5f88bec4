"""
Migration configuration: value mappings from ADO to GitHub and run options.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from .exceptions import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable

logger: logging.Logger = logging.getLogger(__name__)


@dataclass
class MigrationConfig:
    """Value mappings used while building and updating issues.

    All maps are optional. ``repositories`` maps the internal repository id
    used in ADO ``vstfs:///GitHub/...`` artifact links to a GitHub
    repository name (``repo`` or ``owner/repo``).
    """

    type_labels: dict[str, str] = field(default_factory=dict)
    """Work item type -> GitHub label."""
    state_labels: dict[str, str] = field(default_factory=dict)
    """Work item state -> GitHub label."""
    state_columns: dict[str, str] = field(default_factory=dict)
    """Work item state -> GitHub project status column."""
    user_logins: dict[str, str] = field(default_factory=dict)
    """ADO unique name (email) -> GitHub login."""
    tag_labels: dict[str, str] = field(default_factory=dict)
    """ADO tag -> GitHub label."""
    repositories: dict[str, str] = field(default_factory=dict)
    """ADO internal repository id -> GitHub repository name."""

    @classmethod
    def field_names(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def load(cls, paths: Iterable[str | Path] | str | Path | None) -> MigrationConfig:
        """Load and merge configuration files in order.

        Missing or unknown fields are warned about, never fatal. A field
        populated by an earlier file is not overwritten by an empty one.
        """
        config = cls()
        if paths is None:
            paths = []
        elif isinstance(paths, (str, Path)):
            paths = [paths]

        for path in paths:
            config.merge(cls._read(Path(path)))

        config.apply_defaults()
        return config

    @classmethod
    def _read(cls, path: Path) -> dict[str, Any]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            msg = f"Config file not found: {path}"
            raise ConfigurationError(msg) from e
        except json.JSONDecodeError as e:
            msg = f"Config file {path} is not valid JSON: {e}"
            raise ConfigurationError(msg) from e

        if not isinstance(data, dict):
            msg = f"Config file {path} must contain a JSON object"
            raise ConfigurationError(msg)

        known = cls.field_names()
        for name in data:
            if name not in known:
                logger.warning(f"Ignoring unknown config field '{name}' in {path}")
        for name in known:
            if name not in data:
                logger.warning(f"Config field '{name}' missing in {path}, defaulting to empty")
        return data

    def merge(self, data: dict[str, Any]) -> None:
        """Merge raw config data into this config without clearing populated fields."""
        for name in self.field_names():
            value = data.get(name)
            if value is None:
                continue
            if not isinstance(value, dict):
                logger.warning(f"Config field '{name}' must be an object, ignoring {type(value).__name__}")
                continue
            if not value and getattr(self, name):
                continue
            mapping: dict[str, str] = getattr(self, name)
            mapping.update({str(k): str(v) for k, v in value.items()})

    def apply_defaults(self) -> None:
        """Use the state -> column map as state -> label map when the latter is unset."""
        if not self.state_labels and self.state_columns:
            self.state_labels = dict(self.state_columns)


@dataclass
class MigrationOptions:
    """Options for one migration run, as given on the command line."""

    ado_org: str
    ado_project: str
    github_org: str
    github_repo: str
    ado_area_path: str = ""
    include_closed: bool = False
    production_run: bool = False
    update_assignee: bool = False
    assignee_suffix: str = ""
    import_comments: bool = False
    project_name: str | None = None
    labels: list[str] = field(default_factory=list)
    milestone_prefix: str = ""
    archive_label: str | None = None
    update_existing: bool = True
    handle_rate_limit: bool = True
    mention_links: bool = False
    tie_break: Literal["first", "last"] = "first"
    resume_from_id: int = 0
    create_labels: bool = False
    create_milestones: bool = False
    checkpoint_path: str | None = None
    config_paths: list[str] = field(default_factory=list)

    @property
    def github_repo_path(self) -> str:
        return f"{self.github_org}/{self.github_repo}"
