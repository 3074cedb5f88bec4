"""
Custom exception classes for the Azure DevOps to GitHub migration tool.
"""

from __future__ import annotations


class MigrationError(Exception):
    """Base exception for migration errors."""


class ConfigurationError(MigrationError):
    """Raised for usage errors that must abort the run before any item is processed."""


class IssueCreationError(MigrationError):
    """Raised when a GitHub issue could not be created for a work item."""


class AdoApiError(MigrationError):
    """Raised when an Azure DevOps REST call fails."""
