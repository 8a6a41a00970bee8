"""Shared exception types for bylaw."""

from __future__ import annotations


class BylawError(RuntimeError):
    """Base error for bylaw operations."""


class ConfigError(BylawError):
    """Raised when the policy document cannot be loaded."""

    def __init__(self, message: str, issues: tuple[str, ...] = ()) -> None:
        """Record the individual problems alongside the summary message."""
        detail = message
        if issues:
            detail = "\n".join([message, *(f"  - {issue}" for issue in issues)])
        super().__init__(detail)
        self.issues = issues


class ListingError(BylawError):
    """Raised when the target repositories cannot be enumerated."""


class ForgeError(BylawError):
    """Raised when the GitHub API returns a non-successful response."""


class ForgeNotFoundError(ForgeError):
    """Raised when the GitHub API returns a 404 for an optional resource."""


class ForgeForbiddenError(ForgeError):
    """Raised when the token lacks the scope to read or write a resource."""


class RemediationActionError(BylawError):
    """Raised when a single remediation action cannot be applied."""


class UnknownCheckError(BylawError):
    """Raised when a check name is not registered."""

    def __init__(self, name: str) -> None:
        """Store the unknown name for callers that want to report it."""
        super().__init__(f"Unknown check: {name!r}")
        self.name = name
