"""Registry of the compliance checks known to the runner."""

from __future__ import annotations

import typing as typ

from bylaw.errors import UnknownCheckError

from .archived_repos import ArchivedReposCheck
from .branch_protection import BranchProtectionCheck
from .merge_methods import MergeMethodsCheck
from .repository_settings import RepositorySettingsCheck
from .security_scanning import SecurityScanningCheck
from .team_permissions import TeamPermissionsCheck

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .base import BaseCheck


class CheckRegistry:
    """Map check names to check classes in registration order."""

    def __init__(self) -> None:
        """Initialise an empty registry."""
        self._entries: dict[str, type[BaseCheck]] = {}

    def register(self, check_class: type[BaseCheck]) -> None:
        """Register a check class under its `name`; re-registering replaces it."""
        self._entries[check_class.name] = check_class

    @property
    def names(self) -> list[str]:
        """Return registered names in registration order."""
        return list(self._entries)

    @property
    def rules(self) -> list[type[BaseCheck]]:
        """Expose the registered classes for SARIF output."""
        return list(self._entries.values())

    def __contains__(self, name: object) -> bool:
        """Return True when `name` is registered."""
        return name in self._entries

    def get(self, name: str) -> type[BaseCheck]:
        """Return the class registered under `name`."""
        try:
            return self._entries[name]
        except KeyError:
            raise UnknownCheckError(name) from None

    def create(self, name: str) -> BaseCheck:
        """Instantiate the check registered under `name`."""
        return self.get(name)()

    def select(self, names: cabc.Iterable[str] | None = None) -> list[BaseCheck]:
        """Instantiate the requested checks, keeping registration order.

        With `names` of None every registered check is returned.
        """
        if names is None:
            return [check_class() for check_class in self._entries.values()]
        requested = set(names)
        for name in requested:
            self.get(name)
        return [
            check_class()
            for name, check_class in self._entries.items()
            if name in requested
        ]


def build_registry() -> CheckRegistry:
    """Build the default set of checks."""
    registry = CheckRegistry()
    registry.register(MergeMethodsCheck)
    registry.register(TeamPermissionsCheck)
    registry.register(BranchProtectionCheck)
    registry.register(SecurityScanningCheck)
    registry.register(ArchivedReposCheck)
    registry.register(RepositorySettingsCheck)
    return registry
