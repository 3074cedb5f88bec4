"""
Azure DevOps to GitHub Migration Tool

Migrates Azure DevOps Boards work items to GitHub issues, keeping a
checkpoint of work item to issue mappings so that repeated runs converge
instead of creating duplicates.
"""

from __future__ import annotations

from .cli import main
from .config import MigrationConfig, MigrationOptions
from .exceptions import ConfigurationError, IssueCreationError, MigrationError
from .links import LinkResolver
from .migrator import AdoToGithubMigrator, MigrationReport
from .state import MigrationState
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "AdoToGithubMigrator",
    "ConfigurationError",
    "IssueCreationError",
    "LinkResolver",
    "MigrationConfig",
    "MigrationError",
    "MigrationOptions",
    "MigrationReport",
    "MigrationState",
    "main",
    "setup_logging",
]
