"""Compliance checks and the registry that orders them."""

from __future__ import annotations

from .archived_repos import ArchivedReposCheck
from .base import BaseCheck, CheckContext, RemediatingCheck
from .branch_protection import BranchProtectionCheck
from .merge_methods import MergeMethodsCheck
from .registry import CheckRegistry, build_registry
from .repository_settings import RepositorySettingsCheck
from .security_scanning import SecurityScanningCheck
from .team_permissions import TeamPermissionsCheck

__all__ = [
    "ArchivedReposCheck",
    "BaseCheck",
    "BranchProtectionCheck",
    "CheckContext",
    "CheckRegistry",
    "MergeMethodsCheck",
    "RemediatingCheck",
    "RepositorySettingsCheck",
    "SecurityScanningCheck",
    "TeamPermissionsCheck",
    "build_registry",
]
